"""
CityPay Gateway Client

This is what a merchant app uses to submit Apple Pay payments to the
CityPay gateway and hand the verified outcome back to the payment
sheet.

Example usage:
    request = CityPayRequest(merchant_id=13245, licence_key="LK...",
                             identifier="Order-0001", test=True)
    client = CityPayClient(request)

    def on_response(response):
        record_transaction(response.identifier, response.authorised)

    client.apple_pay(payment, completion=sheet.finish, payment_response=on_response)
"""

import http.client
import json
import logging
import threading
import urllib.error
import urllib.request
from typing import Callable, Dict, Optional

from .constants import AuthorizationStatus, Config
from .errors import TransportError
from .reconciler import ResponseReconciler
from .request import ApplePayment, CityPayRequest
from .response import PaymentResponse

logger = logging.getLogger(__name__)

# (url, body, headers, timeout) -> response body
Transport = Callable[[str, bytes, Dict[str, str], float], bytes]


def urllib_transport(url: str, body: bytes, headers: Dict[str, str], timeout: float) -> bytes:
    """
    POST a body with urllib and return the response body.

    HTTP error statuses still return their body; the gateway reports
    declines in the JSON packet and the digest check decides trust.

    Raises:
        TransportError: If no well-formed HTTP response was received
    """
    request = urllib.request.Request(url, data=body, headers=headers, method="POST")

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            logger.info("Response: %s", response.status)
            return response.read()

    except urllib.error.HTTPError as e:
        logger.info("Response: %s", e.code)
        try:
            return e.read()
        except (OSError, http.client.HTTPException) as read_error:
            raise TransportError(f"Connection error: {read_error!r}")

    except urllib.error.URLError as e:
        raise TransportError(f"Connection error: {e.reason}")

    except OSError as e:
        raise TransportError(f"Connection error: {e}")

    except http.client.HTTPException as e:
        # Garbled status line, truncated body and the like
        raise TransportError(f"Invalid HTTP response: {e!r}")


class CityPayClient:
    """
    CityPay gateway client.

    The transport is a plain callable so that the core never depends on
    a particular HTTP stack: bytes in, bytes out.
    """

    def __init__(
        self,
        request: CityPayRequest,
        api_base: Optional[str] = None,
        timeout: float = Config.TIMEOUT_SECONDS,
        transport: Optional[Transport] = None
    ):
        """
        Initialize the client.

        Args:
            request: Merchant credentials for this transaction
            api_base: Apple Pay endpoint (default: CityPay production)
            timeout: Request timeout in seconds
            transport: Callable performing the POST (default: urllib)
        """
        self.request = request
        self.api_base = api_base or Config.APPLE_PAY_URL
        self.timeout = timeout
        self.transport = transport or urllib_transport

    def post(self, payload: Dict) -> bytes:
        """
        POST a JSON packet to the gateway.

        Raises:
            TransportError: If the gateway could not be reached
        """
        headers = {
            "Content-Type": Config.CONTENT_TYPE,
            "Accept": Config.CONTENT_TYPE,
        }
        body = json.dumps(payload).encode("utf-8")

        logger.info("Sending call to %s", self.api_base)
        return self.transport(self.api_base, body, headers, self.timeout)

    def process_response(self, body: bytes) -> PaymentResponse:
        """Decode a gateway reply and reconcile it against the licence key."""
        response = PaymentResponse.decode(body)
        reconciled = ResponseReconciler.reconcile(response, self.request.licence_key)

        if reconciled is not response:
            logger.warning("Rejecting auth: %s", reconciled.error_message)

        return reconciled

    def apple_pay(
        self,
        payment: ApplePayment,
        completion: Callable[[AuthorizationStatus], None],
        payment_response: Optional[Callable[[PaymentResponse], None]] = None
    ) -> Optional[PaymentResponse]:
        """
        Process an Apple Pay payment.

        Calls `completion` with the status for the payment sheet, then
        `payment_response` with the full (verified or rejected) response
        for the merchant's records. A response whose digest does not
        verify is reported as a failure.

        Args:
            payment: The authorized wallet payment
            completion: Payment sheet callback
            payment_response: Merchant observer callback

        Returns:
            The response handed to the callbacks, or None if the gateway
            could not be reached (completion still receives FAILURE)
        """
        logger.info("ApplePay payment started")

        payload = self.request.apple_pay_payload(payment)

        try:
            body = self.post(payload)
        except TransportError as e:
            logger.error("No response from gateway: %s", e.message)
            completion(AuthorizationStatus.FAILURE)
            return None

        response = self.process_response(body)
        status = ResponseReconciler.authorization_status(response)

        if status == AuthorizationStatus.SUCCESS:
            logger.info("Successful payment: %s", response.log_line())
        else:
            logger.info("Failed payment: %s", response.log_line())

        completion(status)

        if payment_response is not None:
            logger.debug("Calling payment response")
            payment_response(response)

        return response

    def apple_pay_async(
        self,
        payment: ApplePayment,
        completion: Callable[[AuthorizationStatus], None],
        payment_response: Optional[Callable[[PaymentResponse], None]] = None
    ) -> threading.Thread:
        """Run apple_pay on a background thread and return the started thread."""
        thread = threading.Thread(
            target=self.apple_pay,
            args=(payment, completion, payment_response),
            name=f"citypay-{self.request.identifier}",
            daemon=True
        )
        thread.start()
        return thread
