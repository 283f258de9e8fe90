"""
Shared constants and configuration for the CityPay SDK.

This module defines the protocol constants used by the response
decoder, the digest verifier and the Apple Pay client.
"""

from enum import Enum

# =============================================================================
# AVS POLICIES
# =============================================================================

class Policy(int, Enum):
    """Address verification policy sent with a transaction."""
    DEFAULT = 0     # Use the merchant account setting
    ENFORCE = 1     # Decline on AVS mismatch
    BYPASS = 2      # Ignore AVS result


# =============================================================================
# AUTHORIZATION STATUS
# =============================================================================

class AuthorizationStatus(str, Enum):
    """Binary accept/reject signal handed to the payment sheet."""
    SUCCESS = "success"
    FAILURE = "failure"


# =============================================================================
# RESPONSE DEFAULTS
# =============================================================================
# Values used when the gateway packet omits a field (or sends the wrong type)

RESPONSE_DEFAULTS = {
    "amount": 0,
    "currency": "",
    "authorised": False,
    "errorcode": "F007",
    "errormessage": "No valid response from JSON packet",
    "expMonth": 0,
    "expYear": 0,
    "identifier": "unknown",
    "maskedPan": "n/a",
    "merchantid": 0,
    "mode": "?",
    "result": 20,  # unknown
    "sha256": "",
    "status": "?",  # unknown
    "transno": -1,
}


# =============================================================================
# CONFIGURATION
# =============================================================================

class Config:
    """Configuration constants."""

    # Gateway endpoints
    APPLE_PAY_URL = "https://secure.citypay.com/applepay/v1"

    # Transport
    TIMEOUT_SECONDS = 30
    CONTENT_TYPE = "application/json"

    # Decoding never fails; untrusted packets are caught by the digest check
    LENIENT_DECODE = True

    # Local rejection
    REJECTION_ERROR_CODE = "099"
    REJECTION_RESULT = 2
    DIGEST_MISMATCH = "Digest mismatch"

    # Merchant identifier length bounds (min inclusive, max exclusive)
    IDENTIFIER_MIN_LENGTH = 5
    IDENTIFIER_MAX_LENGTH = 50

    # SDK identification
    DISTRIBUTION_NAME = "citypay-kit"
    UNKNOWN_VERSION = "<Unknown>"
