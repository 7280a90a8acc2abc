"""
TwiML Builder Module

Builds the TwiML document returned to the telephony platform when a call
starts: speak the greeting, then record the caller and submit the recording
to the done endpoint.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from twilio.twiml.voice_response import VoiceResponse

if TYPE_CHECKING:
    from voicemail_bridge.config import Config


# Longest recording the platform will capture, in seconds
MAX_RECORDING_LENGTH = 30

TWIML_CONTENT_TYPE = "text/xml"


@dataclass
class SayVerb:
    """
    <Say> verb

    Speaks a message to the caller.

    Attributes:
        text: message to speak
    """
    text: str

    def apply(self, response: VoiceResponse) -> None:
        response.say(self.text)


@dataclass
class RecordVerb:
    """
    <Record> verb

    Records the caller and posts the recording details to ``action``.

    Attributes:
        action: absolute URL the recording is submitted to
        max_length: maximum recording length in seconds
    """
    action: str
    max_length: int = MAX_RECORDING_LENGTH

    def apply(self, response: VoiceResponse) -> None:
        response.record(action=self.action, max_length=self.max_length)


class TwiMLBuilder:
    """
    Builds the voicemail TwiML document from the application settings

    Attributes:
        config: application settings
    """

    def __init__(self, config: 'Config'):
        self.config = config

    def build_voicemail_twiml(self) -> str:
        """
        Build the greet-and-record document

        The <Say> verb comes first so the greeting finishes before the
        recording starts.

        Returns:
            TwiML document with XML declaration
        """
        response = VoiceResponse()

        for verb in (self._build_say_verb(), self._build_record_verb()):
            verb.apply(response)

        return response.to_xml(xml_declaration=True)

    def _build_say_verb(self) -> SayVerb:
        return SayVerb(text=self.config.greeting_message)

    def _build_record_verb(self) -> RecordVerb:
        return RecordVerb(action=self.config.done_url)
