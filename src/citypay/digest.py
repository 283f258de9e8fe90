"""
Response digest computation and verification.

The gateway signs each response with a SHA-256 digest over a fixed-order
concatenation of response fields salted with the merchant's licence key.
The licence key is never sent over the wire, so only the merchant and the
gateway can produce a matching digest.

    canonical = authcode + amount + errorcode + merchantid + transno
                + identifier + licence key
    digest    = base64(sha256(utf8(canonical)))
"""

import base64
import dataclasses
import hmac
import logging
from typing import Optional

from cryptography.hazmat.primitives import hashes

from .response import PaymentResponse

logger = logging.getLogger(__name__)


class DigestVerifier:
    """
    Compute and verify response digests.

    All methods are pure functions of their arguments; there is no
    state, so a verifier can be shared freely between threads.
    """

    @staticmethod
    def canonical_string(
        response: PaymentResponse,
        secret: str,
        error_code: Optional[str] = None
    ) -> str:
        """
        Build the digest input for a response.

        Args:
            response: The response to sign or verify
            secret: The merchant licence key
            error_code: Replaces the response's error code when given
                       (used when re-signing a locally rejected response)

        Returns:
            The canonical string. Field order is part of the protocol.
        """
        if error_code is None:
            error_code = response.error_code

        return (
            (response.auth_code or "")
            + str(response.amount)
            + error_code
            + str(response.merchant_id)
            + str(response.transaction_number)
            + response.identifier
            + secret
        )

    @staticmethod
    def digest(canonical: str) -> str:
        """
        SHA-256 over the UTF-8 bytes of the canonical string, base64 encoded.

        Raises:
            UnicodeEncodeError: If the string holds unpaired surrogates
        """
        h = hashes.Hash(hashes.SHA256())
        h.update(canonical.encode("utf-8"))
        return base64.b64encode(h.finalize()).decode("ascii")

    @classmethod
    def is_valid(cls, response: PaymentResponse, secret: str) -> bool:
        """
        Check the response digest against the licence key.

        Never raises; anything that prevents computing the expected
        digest makes the response invalid.
        """
        try:
            expected = cls.digest(cls.canonical_string(response, secret))
            provided = response.digest.encode("utf-8")
        except (UnicodeEncodeError, TypeError, AttributeError) as e:
            logger.warning("Unable to compute response digest: %s", e)
            return False

        # Constant-time comparison, exact and case-sensitive
        return hmac.compare_digest(expected.encode("ascii"), provided)

    @classmethod
    def sign(cls, response: PaymentResponse, secret: str) -> PaymentResponse:
        """Return a copy of the response carrying a freshly computed digest."""
        digest = cls.digest(cls.canonical_string(response, secret))
        return dataclasses.replace(response, digest=digest)
