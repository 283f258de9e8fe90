"""CityPay SDK package initialization."""

from .constants import (
    AuthorizationStatus,
    Policy,
    Config,
    RESPONSE_DEFAULTS,
)

from .errors import (
    CityPayError,
    InvalidRequestError,
    TransportError,
)

from .response import PaymentResponse
from .digest import DigestVerifier
from .reconciler import ResponseReconciler

from .request import (
    CityPayRequest,
    ApplePayment,
    BillingContact,
)

from .client import (
    CityPayClient,
    urllib_transport,
)

__all__ = [
    # Constants
    "AuthorizationStatus",
    "Policy",
    "Config",
    "RESPONSE_DEFAULTS",
    # Errors
    "CityPayError",
    "InvalidRequestError",
    "TransportError",
    # Response integrity
    "PaymentResponse",
    "DigestVerifier",
    "ResponseReconciler",
    # Requests
    "CityPayRequest",
    "ApplePayment",
    "BillingContact",
    # Client
    "CityPayClient",
    "urllib_transport",
]
