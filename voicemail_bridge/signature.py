"""
Webhook Signature Module

Verifies that an inbound webhook was signed by the telephony platform holding
the shared auth token.

The signed material is the configured base host URL, the request URI (path
plus query string, exactly as received) and, for POST requests, every form
field name followed by its value with fields ordered by name. The signature
is the base64 encoded HMAC-SHA1 of that material keyed with the auth token.
"""

import base64
import hashlib
import hmac
from typing import Iterable, List, Mapping, Optional, Union


SIGNATURE_HEADER = "X-Twilio-Signature"

FormValue = Union[str, Iterable[str]]


def sorted_keys(form_fields: Mapping[str, FormValue]) -> List[str]:
    """Form field names in ascending lexicographic order"""
    return sorted(form_fields.keys())


def join_values(value: FormValue) -> str:
    """
    Collapse a form value into a single string

    Repeated fields are concatenated with no separator, so the signed material
    and the values the handlers read stay identical.
    """
    if isinstance(value, str):
        return value
    return "".join(value)


def compute_signature(
    method: str,
    request_uri: str,
    form_fields: Mapping[str, FormValue],
    host: str,
    secret: str
) -> str:
    """
    Compute the expected signature of a request

    Args:
        method: HTTP method of the request
        request_uri: path plus query string as received
        form_fields: decoded form body, field name to value or list of values
        host: externally visible base URL the platform was configured with
        secret: shared auth token

    Returns:
        Base64 encoded HMAC-SHA1 digest
    """
    mac = hmac.new(secret.encode("utf-8"), digestmod=hashlib.sha1)
    mac.update(host.encode("utf-8"))
    mac.update(request_uri.encode("utf-8"))

    if method.upper() == "POST":
        for key in sorted_keys(form_fields):
            mac.update(key.encode("utf-8"))
            mac.update(join_values(form_fields[key]).encode("utf-8"))

    return base64.b64encode(mac.digest()).decode("ascii")


def verify_signature(
    method: str,
    request_uri: str,
    form_fields: Mapping[str, FormValue],
    supplied_signature: Optional[str],
    host: str,
    secret: str
) -> bool:
    """
    Check a supplied signature against the expected one

    A missing or empty signature fails without computing anything.

    Returns:
        True only when the supplied signature matches exactly
    """
    if not supplied_signature:
        return False

    expected = compute_signature(method, request_uri, form_fields, host, secret)

    return hmac.compare_digest(
        expected.encode("ascii"),
        supplied_signature.encode("utf-8")
    )
