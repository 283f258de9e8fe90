"""
Gateway response model.

The PaymentResponse models the JSON packet returned by the CityPay
gateway. Decoding is lenient: every field has a default,
so an unexpected payload shape produces a response full of fallback
values instead of an exception. Trust is established separately by
the digest check (see citypay.digest).

Example usage:
    response = PaymentResponse.decode(body)
    if DigestVerifier.is_valid(response, licence_key) and response.authorised:
        fulfil_order(response.identifier)
"""

import json
import logging
from dataclasses import dataclass, asdict
from typing import Any, ClassVar, Dict, Mapping, Optional, Union

from .constants import Config, RESPONSE_DEFAULTS

logger = logging.getLogger(__name__)


def _int(data: Mapping, key: str) -> int:
    value = data.get(key)
    # bool is a subclass of int but never a valid numeric field
    if isinstance(value, bool):
        return RESPONSE_DEFAULTS[key]
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return RESPONSE_DEFAULTS[key]


def _str(data: Mapping, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else RESPONSE_DEFAULTS[key]


def _optional_str(data: Mapping, key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _bool(data: Mapping, key: str) -> bool:
    value = data.get(key)
    return value if isinstance(value, bool) else RESPONSE_DEFAULTS[key]


@dataclass(frozen=True)
class PaymentResponse:
    """
    Immutable gateway response.

    To determine if a transaction has been accepted check `authorised`
    after verifying the digest, and check `mode` to know whether it
    ran in test or live.
    """
    amount: int                       # Minor currency units
    currency: str                     # ISO 4217 code
    auth_code: Optional[str]          # Present on accepted transactions only
    authorised: bool
    avs_response: Optional[str]
    csc_response: Optional[str]
    error_code: str
    error_message: str
    expiry_month: int
    expiry_year: int
    identifier: str                   # Merchant transaction reference
    masked_pan: str
    merchant_id: int
    mode: str                         # "live", "test" or "?"
    result: int
    digest: str                       # Base64 SHA-256 ("sha256" on the wire)
    status: str
    title: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    postcode: Optional[str] = None
    transaction_number: int = -1

    # Wire name → attribute name
    FIELD_MAP: ClassVar[Dict[str, str]] = {
        "amount": "amount",
        "currency": "currency",
        "authcode": "auth_code",
        "authorised": "authorised",
        "AVSResponse": "avs_response",
        "CSCResponse": "csc_response",
        "errorcode": "error_code",
        "errormessage": "error_message",
        "expMonth": "expiry_month",
        "expYear": "expiry_year",
        "identifier": "identifier",
        "maskedPan": "masked_pan",
        "merchantid": "merchant_id",
        "mode": "mode",
        "result": "result",
        "sha256": "digest",
        "status": "status",
        "title": "title",
        "firstname": "first_name",
        "lastname": "last_name",
        "email": "email",
        "postcode": "postcode",
        "transno": "transaction_number",
    }

    @classmethod
    def decode(
        cls,
        data: Union[bytes, str],
        lenient: bool = Config.LENIENT_DECODE
    ) -> "PaymentResponse":
        """
        Decode a gateway reply body.

        In lenient mode (the default) this never raises: bodies that are
        not valid JSON, or not a JSON object, decode to a response made
        entirely of defaults. With lenient=False those bodies raise
        ValueError instead; missing fields still take their defaults.
        """
        parsed: Any = None
        try:
            if isinstance(data, (bytes, bytearray)):
                data = bytes(data).decode("utf-8")
            parsed = json.loads(data)
        except (UnicodeDecodeError, ValueError, TypeError, RecursionError) as e:
            if not lenient:
                raise ValueError(f"Invalid JSON response: {e}") from e
            logger.warning("Error parsing JSON response: %s", e)

        if not isinstance(parsed, dict):
            if not lenient:
                raise ValueError("JSON response is not an object")
            if parsed is not None:
                logger.warning("JSON response is not an object: %s", type(parsed).__name__)
            parsed = {}

        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls, data: Mapping) -> "PaymentResponse":
        """Build a response from an already decoded JSON object."""
        return cls(
            amount=_int(data, "amount"),
            currency=_str(data, "currency"),
            auth_code=_optional_str(data, "authcode"),
            authorised=_bool(data, "authorised"),
            avs_response=_optional_str(data, "AVSResponse"),
            csc_response=_optional_str(data, "CSCResponse"),
            error_code=_str(data, "errorcode"),
            error_message=_str(data, "errormessage"),
            expiry_month=_int(data, "expMonth"),
            expiry_year=_int(data, "expYear"),
            identifier=_str(data, "identifier"),
            masked_pan=_str(data, "maskedPan"),
            merchant_id=_int(data, "merchantid"),
            mode=_str(data, "mode"),
            result=_int(data, "result"),
            digest=_str(data, "sha256"),
            status=_str(data, "status"),
            title=_optional_str(data, "title"),
            first_name=_optional_str(data, "firstname"),
            last_name=_optional_str(data, "lastname"),
            email=_optional_str(data, "email"),
            postcode=_optional_str(data, "postcode"),
            transaction_number=_int(data, "transno"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation, omitting optional fields that are absent."""
        values = asdict(self)
        return {
            wire: values[attr]
            for wire, attr in self.FIELD_MAP.items()
            if values[attr] is not None
        }

    @property
    def has_rejection_code(self) -> bool:
        """
        True if the error code is the rejection code 099.

        ResponseReconciler.reject always sets it, but a gateway packet
        carrying 099 itself is indistinguishable here.
        """
        return self.error_code == Config.REJECTION_ERROR_CODE

    def log_line(self) -> str:
        """Summary safe for logs (no digest or cardholder details)."""
        return (
            f"RS:{self.identifier},amount={self.amount},card={self.masked_pan},"
            f"{self.expiry_month}{self.expiry_year},authorised={self.authorised},"
            f"mode={self.mode}"
        )
