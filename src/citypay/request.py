"""
Outbound request building.

CityPayRequest holds the merchant credentials for a transaction and
builds the JSON packets posted to the gateway. The licence key is part
of the gateway block because the Apple Pay endpoint authenticates the
merchant with it; it is never logged.
"""

import base64
import json
import logging
import platform
from dataclasses import dataclass
from importlib import metadata
from typing import Any, Dict, Optional

from .constants import Config, Policy
from .errors import InvalidRequestError

logger = logging.getLogger(__name__)


def sdk_version() -> str:
    """Version of the installed SDK distribution."""
    try:
        return metadata.version(Config.DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return Config.UNKNOWN_VERSION


@dataclass
class BillingContact:
    """Billing details collected by the payment sheet."""
    title: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    address1: str = ""         # Street
    address2: str = ""         # City
    area: str = ""             # State / county
    postcode: str = ""
    country: str = ""          # ISO 3166 country code

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "lastname": self.last_name,
            "firstname": self.first_name,
            "email": self.email,
            "address1": self.address1,
            "address2": self.address2,
            "area": self.area,
            "postcode": self.postcode,
            "country": self.country,
        }


@dataclass
class ApplePayment:
    """An authorized Apple Pay payment handed over by the UI layer."""
    payment_data: bytes                      # Encrypted wallet token
    transaction_identifier: str
    billing_contact: Optional[BillingContact] = None


class CityPayRequest:
    """
    Merchant credentials and payload builders.

    Usage:
        request = CityPayRequest(
            merchant_id=13245,
            licence_key="LK...",
            identifier="Order-0001",
            test=True
        )
        payload = request.apple_pay_payload(payment)
    """

    def __init__(
        self,
        merchant_id: int,
        licence_key: str,
        identifier: str,
        test: bool,
        avs_address_policy: Policy = Policy.DEFAULT,
        avs_postcode_policy: Policy = Policy.DEFAULT
    ):
        """
        Initialize the request.

        Args:
            merchant_id: CityPay merchant account id
            licence_key: Licence key, also the digest salt
            identifier: Merchant transaction reference (5 to 49 characters)
            test: Whether to process in test mode
            avs_address_policy: Address verification policy
            avs_postcode_policy: Postcode verification policy

        Raises:
            InvalidRequestError: If any credential is missing or malformed
        """
        if not isinstance(merchant_id, int) or isinstance(merchant_id, bool) or merchant_id <= 0:
            raise InvalidRequestError("Merchant ID is not valid", code="merchant_id")
        if not licence_key:
            raise InvalidRequestError("Licence Key is not provided", code="licence_key")
        if not identifier:
            raise InvalidRequestError("Identifier is not provided", code="identifier")
        if not Config.IDENTIFIER_MIN_LENGTH <= len(identifier) < Config.IDENTIFIER_MAX_LENGTH:
            raise InvalidRequestError(
                f"Identifier must be between {Config.IDENTIFIER_MIN_LENGTH} "
                f"and {Config.IDENTIFIER_MAX_LENGTH} characters",
                code="identifier"
            )

        self.merchant_id = merchant_id
        self.licence_key = licence_key
        self.identifier = identifier
        self.test = test
        self.avs_address_policy = Policy(avs_address_policy)
        self.avs_postcode_policy = Policy(avs_postcode_policy)
        self.version = sdk_version()

        logger.debug("CityPay SDK %s", self.version)

    def cp_json(self) -> Dict[str, Any]:
        """The gateway block identifying merchant, SDK and device."""
        return {
            "merchantId": self.merchant_id,
            "licenceKey": self.licence_key,
            "identifier": self.identifier,
            "test": self.test,
            "sdkVersion": self.version,
            "deviceVersion": platform.platform(),
        }

    def to_json(self) -> bytes:
        return json.dumps(self.cp_json()).encode("utf-8")

    def apple_pay_payload(self, payment: ApplePayment) -> Dict[str, Any]:
        """
        Build the Apple Pay transaction packet.

        Args:
            payment: The wallet payment to submit

        Returns:
            Packet ready for JSON serialization
        """
        payload: Dict[str, Any] = {
            "payment": base64.b64encode(payment.payment_data).decode("ascii"),
            "transactionIdentifier": payment.transaction_identifier,
            "gateway": self.cp_json(),
        }

        # Older wallets provide no contact record
        if payment.billing_contact is None:
            payload["billing"] = ""
        else:
            payload["billing"] = payment.billing_contact.to_dict()

        if (self.avs_address_policy != Policy.DEFAULT
                or self.avs_postcode_policy != Policy.DEFAULT):
            payload["options"] = {
                "avsAddressPolicy": str(self.avs_address_policy.value),
                "avsPostcodePolicy": str(self.avs_postcode_policy.value),
            }

        return payload

    def __repr__(self) -> str:
        return (
            f"CityPayRequest(merchant_id={self.merchant_id}, "
            f"identifier={self.identifier!r}, test={self.test})"
        )
