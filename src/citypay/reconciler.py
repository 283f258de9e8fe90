"""
Response reconciliation.

Every response handed to the merchant is digest-consistent: either the
gateway's own response (when its digest checks out) or a rejected copy
re-signed locally. Code that re-verifies a response before acting on it
therefore behaves the same whichever path produced it.

    Unverified --is_valid--> Trusted   (same object)
               +-----------> Rejected  (new object, error code 099)
"""

import dataclasses

from .constants import AuthorizationStatus, Config
from .digest import DigestVerifier
from .response import PaymentResponse


class ResponseReconciler:
    """Verify responses and synthesize local rejections."""

    @staticmethod
    def reject(response: PaymentResponse, secret: str, reason: str) -> PaymentResponse:
        """
        Create a rejected copy of a response.

        The copy is declined (result 2, error code 099, the given reason as
        its message) and carries a digest recomputed with the rejection error
        code and the same licence key, so it passes DigestVerifier.is_valid.
        Every other field is copied from the source response, which is left
        untouched.

        If the canonical string cannot be UTF-8 encoded (unpaired surrogates
        from a hostile packet) the rejection carries an empty digest; it is
        still declined, it just cannot be re-verified.

        Args:
            response: The response being rejected
            secret: The merchant licence key
            reason: Human readable rejection reason

        Returns:
            A new PaymentResponse
        """
        error_code = Config.REJECTION_ERROR_CODE
        canonical = DigestVerifier.canonical_string(response, secret, error_code=error_code)
        try:
            digest = DigestVerifier.digest(canonical)
        except UnicodeEncodeError:
            digest = ""

        return dataclasses.replace(
            response,
            authorised=False,
            error_code=error_code,
            error_message=reason,
            result=Config.REJECTION_RESULT,
            digest=digest,
        )

    @classmethod
    def reconcile(
        cls,
        response: PaymentResponse,
        secret: str,
        reason: str = Config.DIGEST_MISMATCH
    ) -> PaymentResponse:
        """Return the response if its digest is valid, otherwise a rejection."""
        if DigestVerifier.is_valid(response, secret):
            return response
        return cls.reject(response, secret, reason)

    @staticmethod
    def authorization_status(response: PaymentResponse) -> AuthorizationStatus:
        """Signal for the payment sheet. Pass a reconciled response."""
        if response.authorised:
            return AuthorizationStatus.SUCCESS
        return AuthorizationStatus.FAILURE
