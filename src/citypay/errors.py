"""
Exceptions raised by the CityPay SDK.

A digest mismatch is never an exception: it is reported as a rejected
PaymentResponse. These errors cover invalid configuration and transport
failures only.
"""

from typing import Optional


class CityPayError(Exception):
    """Base exception for CityPay errors."""
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class InvalidRequestError(CityPayError):
    """Merchant credentials or request parameters are invalid."""
    pass


class TransportError(CityPayError):
    """The gateway could not be reached."""
    pass
