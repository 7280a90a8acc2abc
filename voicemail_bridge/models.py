"""
Data Models Module

Defines the recording event forwarded to the outbound queue.
"""

from dataclasses import dataclass
import json


class SerializationError(Exception):
    """Raised when a recording cannot be encoded for the outbound queue"""
    pass


@dataclass(frozen=True)
class Recording:
    """
    A completed voicemail recording

    Created for one verified done request and serialized straight away; the
    encoded bytes are the only representation that outlives the request.

    Attributes:
        from_number: caller identifier
        to_number: callee identifier
        url: where the recording can be fetched from
    """
    from_number: str
    to_number: str
    url: str

    def to_dict(self) -> dict:
        """Field names as consumers of the voicemail queue expect them"""
        return {
            "From": self.from_number,
            "To": self.to_number,
            "Url": self.url,
        }

    def to_json(self) -> bytes:
        """
        Encode the recording as compact UTF-8 JSON

        Raises:
            SerializationError: when a field cannot be encoded
        """
        try:
            return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to serialize recording: {e}") from e
