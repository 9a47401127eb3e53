"""Twilio connector for alerting contacts and emergency services."""

import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from emergency_buddy.config import settings
from emergency_buddy.escalation.messages import EMERGENCY_SERVICES_NUMBER
from emergency_buddy.utils.logging import get_logger, log_external_api_call
from emergency_buddy.utils.validation import mask_phone_number, validate_phone

logger = get_logger(__name__)

EMERGENCY_CALL_TWIML = (
    "<Response><Say>This is an automated emergency alert. "
    "A person using Emergency Buddy needs immediate help and none of their "
    "emergency contacts could be reached.</Say></Response>"
)


class TwilioTelephonyConnector:
    """Fire-and-forget telephony via Twilio.

    Calls are handed to a small worker pool; the caller never waits for the
    HTTP round trip and never learns whether delivery succeeded.
    """

    def __init__(self, executor: Optional[Executor] = None, client: Optional[Client] = None):
        self.account_sid = settings.TWILIO_ACCOUNT_SID
        self.auth_token = settings.TWILIO_AUTH_TOKEN
        self.from_number = settings.TWILIO_FROM_NUMBER
        self.sms_enabled = settings.ENABLE_SMS_ALERTS
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2,
            thread_name_prefix="telephony"
        )

        if client is not None:
            self.client = client
        elif self.account_sid and self.auth_token:
            self.client = Client(self.account_sid, self.auth_token)
        else:
            self.client = None
            logger.warning("Twilio credentials not configured")

    def notify_contact(self, phone: str, message: str) -> None:
        """Send the alert SMS to one contact without waiting for the result."""
        if not self.sms_enabled:
            logger.info("SMS alerts disabled, contact not messaged", to_number=mask_phone_number(phone))
            return
        self._submit(self.send_sms, phone, message)

    def notify_emergency_services(self) -> None:
        """Place the fallback call to emergency services without waiting."""
        self._submit(self.place_emergency_call)

    def send_sms(
        self,
        to_number: str,
        message: str,
        from_number: Optional[str] = None
    ) -> Optional[str]:
        """Send SMS message."""
        if not self.client:
            logger.error("Twilio client not initialized")
            return None

        if not validate_phone(to_number):
            logger.error("Invalid phone number format", phone=mask_phone_number(to_number))
            return None

        from_num = from_number or self.from_number
        started = time.monotonic()

        try:
            message_obj = self.client.messages.create(
                body=message[:1600],  # SMS limit with buffer
                from_=from_num,
                to=to_number
            )

            log_external_api_call(
                logger,
                "twilio",
                "send_sms",
                success=True,
                duration_ms=(time.monotonic() - started) * 1000,
                to_number=mask_phone_number(to_number),
                message_sid=message_obj.sid,
                message_length=len(message)
            )
            return message_obj.sid

        except TwilioException as e:
            log_external_api_call(
                logger,
                "twilio",
                "send_sms",
                success=False,
                duration_ms=(time.monotonic() - started) * 1000,
                to_number=mask_phone_number(to_number),
                error_code=getattr(e, 'code', None),
                error=str(e)
            )
            return None

    def place_emergency_call(self) -> Optional[str]:
        """Dial the fixed emergency services number."""
        if not self.client:
            logger.error(
                "Twilio client not initialized, cannot dial emergency services",
                to_number=EMERGENCY_SERVICES_NUMBER
            )
            return None

        started = time.monotonic()

        try:
            call = self.client.calls.create(
                to=EMERGENCY_SERVICES_NUMBER,
                from_=self.from_number,
                twiml=EMERGENCY_CALL_TWIML
            )

            log_external_api_call(
                logger,
                "twilio",
                "emergency_call",
                success=True,
                duration_ms=(time.monotonic() - started) * 1000,
                to_number=EMERGENCY_SERVICES_NUMBER,
                call_sid=call.sid
            )
            return call.sid

        except TwilioException as e:
            log_external_api_call(
                logger,
                "twilio",
                "emergency_call",
                success=False,
                duration_ms=(time.monotonic() - started) * 1000,
                to_number=EMERGENCY_SERVICES_NUMBER,
                error_code=getattr(e, 'code', None),
                error=str(e)
            )
            return None

    def check_connection(self) -> bool:
        """Check Twilio connection by validating credentials."""
        if not self.client:
            logger.error("Twilio client not initialized")
            return False

        try:
            account = self.client.api.accounts(self.account_sid).fetch()

            logger.info(
                "Twilio connection test successful",
                account_sid=account.sid,
                status=account.status
            )
            return True

        except TwilioException as e:
            logger.error(
                "Twilio connection test failed",
                error_code=getattr(e, 'code', None),
                error=str(e)
            )
            return False

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for in-flight deliveries."""
        self._executor.shutdown(wait=wait)

    def _submit(self, func: Callable[..., Any], *args: Any) -> None:
        future = self._executor.submit(func, *args)
        future.add_done_callback(self._report_failure)

    @staticmethod
    def _report_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("Unexpected error in telephony delivery", error=str(error))
