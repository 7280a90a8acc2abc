"""
Webhook signature tests
"""

from unittest import mock

import pytest
from twilio.request_validator import RequestValidator

from voicemail_bridge.signature import (
    compute_signature,
    join_values,
    sorted_keys,
    verify_signature,
)


HOST = "https://voicemail.example.com"
TOKEN = "12345"


@pytest.fixture
def form_fields():
    return {
        "CallSid": "CA1234567890ABCDE",
        "Caller": "+14158675310",
        "Digits": "1234",
        "From": "+14158675310",
        "To": "+18005551212",
    }


class TestSortedKeys:

    def test_sorted_keys_orders_lexicographically(self):
        fields = {"To": "", "From": "", "CallSid": "", "Caller": ""}
        assert sorted_keys(fields) == ["CallSid", "Caller", "From", "To"]

    def test_sorted_keys_is_case_sensitive(self):
        # Uppercase sorts before lowercase
        assert sorted_keys({"b": "", "B": "", "a": ""}) == ["B", "a", "b"]

    def test_join_values_concatenates_without_separator(self):
        assert join_values(["abc", "def"]) == "abcdef"
        assert join_values("abc") == "abc"
        assert join_values([]) == ""


class TestComputeSignature:

    def test_matches_twilio_request_validator(self, form_fields):
        """The signature agrees with the reference implementation for single-valued forms"""
        expected = RequestValidator(TOKEN).compute_signature(HOST + "/start", form_fields)

        assert compute_signature("POST", "/start", form_fields, HOST, TOKEN) == expected

    def test_matches_twilio_request_validator_with_query(self, form_fields):
        expected = RequestValidator(TOKEN).compute_signature(HOST + "/start?foo=bar", form_fields)

        assert compute_signature("POST", "/start?foo=bar", form_fields, HOST, TOKEN) == expected

    def test_submission_order_does_not_matter(self, form_fields):
        reversed_fields = dict(reversed(list(form_fields.items())))

        assert (
            compute_signature("POST", "/done", form_fields, HOST, TOKEN)
            == compute_signature("POST", "/done", reversed_fields, HOST, TOKEN)
        )

    def test_repeated_values_are_joined(self):
        repeated = {"From": ["+1415", "8675310"]}
        joined = {"From": "+14158675310"}

        assert (
            compute_signature("POST", "/done", repeated, HOST, TOKEN)
            == compute_signature("POST", "/done", joined, HOST, TOKEN)
        )

    def test_get_ignores_form_fields(self, form_fields):
        assert (
            compute_signature("GET", "/start", form_fields, HOST, TOKEN)
            == compute_signature("GET", "/start", {}, HOST, TOKEN)
        )

    def test_post_includes_form_fields(self, form_fields):
        assert (
            compute_signature("POST", "/start", form_fields, HOST, TOKEN)
            != compute_signature("POST", "/start", {}, HOST, TOKEN)
        )

    def test_method_is_case_insensitive(self, form_fields):
        assert (
            compute_signature("post", "/start", form_fields, HOST, TOKEN)
            == compute_signature("POST", "/start", form_fields, HOST, TOKEN)
        )


class TestVerifySignature:

    def test_valid_signature_verifies(self, form_fields):
        signature = compute_signature("POST", "/done", form_fields, HOST, TOKEN)

        assert verify_signature("POST", "/done", form_fields, signature, HOST, TOKEN)

    @pytest.mark.parametrize("supplied", [None, ""])
    def test_missing_signature_fails_without_computing(self, form_fields, supplied):
        with mock.patch("voicemail_bridge.signature.compute_signature") as compute:
            assert not verify_signature("POST", "/done", form_fields, supplied, HOST, TOKEN)
            compute.assert_not_called()

    @pytest.mark.parametrize("field", ["CallSid", "Caller", "Digits", "From", "To"])
    def test_tampered_field_fails(self, form_fields, field):
        signature = compute_signature("POST", "/done", form_fields, HOST, TOKEN)
        tampered = {**form_fields, field: form_fields[field] + "0"}

        assert not verify_signature("POST", "/done", tampered, signature, HOST, TOKEN)

    def test_added_field_fails(self, form_fields):
        signature = compute_signature("POST", "/done", form_fields, HOST, TOKEN)

        assert not verify_signature(
            "POST", "/done", {**form_fields, "Extra": "1"}, signature, HOST, TOKEN
        )

    def test_wrong_secret_fails(self, form_fields):
        signature = compute_signature("POST", "/done", form_fields, HOST, "other-token")

        assert not verify_signature("POST", "/done", form_fields, signature, HOST, TOKEN)

    def test_wrong_host_fails(self, form_fields):
        signature = compute_signature("POST", "/done", form_fields, "http://evil.example", TOKEN)

        assert not verify_signature("POST", "/done", form_fields, signature, HOST, TOKEN)

    def test_different_uri_fails(self, form_fields):
        signature = compute_signature("POST", "/start", form_fields, HOST, TOKEN)

        assert not verify_signature("POST", "/done", form_fields, signature, HOST, TOKEN)

    def test_garbage_signature_fails(self, form_fields):
        assert not verify_signature("POST", "/done", form_fields, "not-a-signature", HOST, TOKEN)

    def test_non_ascii_signature_fails(self, form_fields):
        assert not verify_signature("POST", "/done", form_fields, "sïgnature", HOST, TOKEN)
