"""Platform and telephony connectors for Emergency Buddy."""

from .audio_capture import SoundDeviceAudioCapture
from .twilio_telephony import TwilioTelephonyConnector

__all__ = [
    "SoundDeviceAudioCapture",
    "TwilioTelephonyConnector",
]
