"""
Recording model tests
"""

import json

import pytest

from voicemail_bridge.models import Recording, SerializationError


class TestRecording:

    def test_to_dict_uses_queue_field_names(self):
        recording = Recording(
            from_number="+15551230000",
            to_number="+15559990000",
            url="http://rec.example/abc123"
        )

        assert recording.to_dict() == {
            "From": "+15551230000",
            "To": "+15559990000",
            "Url": "http://rec.example/abc123",
        }

    def test_to_json_is_compact(self):
        recording = Recording(
            from_number="+15551230000",
            to_number="+15559990000",
            url="http://rec.example/abc123"
        )

        assert recording.to_json() == (
            b'{"From":"+15551230000","To":"+15559990000","Url":"http://rec.example/abc123"}'
        )

    def test_to_json_keeps_empty_values(self):
        payload = Recording(from_number="", to_number="", url="").to_json()

        assert json.loads(payload) == {"From": "", "To": "", "Url": ""}

    def test_to_json_handles_non_ascii(self):
        payload = Recording(from_number="Zoë", to_number="+1", url="http://rec.example/é").to_json()

        assert json.loads(payload.decode("utf-8"))["From"] == "Zoë"

    def test_unencodable_value_raises_serialization_error(self):
        recording = Recording(from_number=object(), to_number="+1", url="http://rec.example/x")

        with pytest.raises(SerializationError):
            recording.to_json()
