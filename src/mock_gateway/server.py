"""
Mock CityPay gateway.

A local stand-in for the Apple Pay endpoint, used by the demo runner and
the integration tests. It answers with packets in the CityPay response
schema, signed with the merchant's licence key the same way the real
gateway signs them.

The outcome is chosen by the merchant identifier:
    MockAuthSuccess...  authorised, authcode M12345
    MockAuthDecline...  declined by the "issuer"
    MockTamper...       authorised, but the amount is altered after signing

This uses Python's built-in http.server for simplicity.
"""

import json
import logging
import threading
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Dict, Optional
from urllib.parse import urlparse

from citypay.digest import DigestVerifier
from citypay.response import PaymentResponse

logger = logging.getLogger(__name__)

APPLE_PAY_PATH = "/applepay/v1"

TEST_MERCHANT_ID = 105
TEST_LICENCE_KEY = "A4123412341234"


class InvalidRequest(Exception):
    """Raised for invalid API requests."""
    pass


class MockGateway:
    """
    Gateway state: registered merchants and the transaction counter.
    """

    def __init__(self, first_transaction_number: int = 252):
        # merchant id → licence key
        self.merchants: Dict[int, str] = {}
        self._next_transno = first_transaction_number
        self._lock = threading.Lock()

        self.add_merchant(TEST_MERCHANT_ID, TEST_LICENCE_KEY)

    def add_merchant(self, merchant_id: int, licence_key: str):
        self.merchants[merchant_id] = licence_key

    def authenticate(self, merchant_id, licence_key) -> bool:
        """Check a merchant id / licence key pair."""
        return (
            isinstance(merchant_id, int)
            and self.merchants.get(merchant_id) == licence_key
        )

    def _allocate_transno(self) -> int:
        with self._lock:
            transno = self._next_transno
            self._next_transno += 1
        return transno

    def process_apple_pay(self, data: Dict, amount: int = 10000, currency: str = "GBP") -> Dict:
        """
        Authorise an Apple Pay packet and build the signed response.

        Raises:
            InvalidRequest: If the packet is missing its payment or gateway block
        """
        gateway = data.get("gateway")
        if not isinstance(gateway, dict):
            raise InvalidRequest("Missing required field: gateway")
        if not data.get("payment"):
            raise InvalidRequest("Missing required field: payment")

        merchant_id = gateway.get("merchantId")
        licence_key = self.merchants.get(merchant_id)
        if licence_key is None:
            raise InvalidRequest(f"Unknown merchant: {merchant_id}")
        identifier = str(gateway.get("identifier", ""))
        billing = data.get("billing") if isinstance(data.get("billing"), dict) else {}

        authorised = not identifier.startswith("MockAuthDecline")

        response = PaymentResponse(
            amount=amount,
            currency=currency,
            auth_code="M12345" if authorised else None,
            authorised=authorised,
            avs_response="Y" if authorised else "N",
            csc_response="M" if authorised else "N",
            error_code="000" if authorised else "001",
            error_message="Approved" if authorised else "Declined",
            expiry_month=12,
            expiry_year=2030,
            identifier=identifier,
            masked_pan="400000******0002",
            merchant_id=merchant_id,
            mode="test" if gateway.get("test") else "live",
            result=1 if authorised else 2,
            digest="",
            status="O" if authorised else "D",
            title=billing.get("title") or None,
            first_name=billing.get("firstname") or None,
            last_name=billing.get("lastname") or None,
            email=billing.get("email") or None,
            postcode=billing.get("postcode") or None,
            transaction_number=self._allocate_transno(),
        )

        packet = DigestVerifier.sign(response, licence_key).to_dict()

        if identifier.startswith("MockTamper"):
            # Altered in flight; the digest no longer matches
            packet["amount"] = packet["amount"] * 10

        logger.info("Mock auth %s: authorised=%s", identifier, authorised)
        return packet


class MockGatewayHandler(BaseHTTPRequestHandler):
    """
    HTTP request handler for the mock gateway.

    Endpoints:
        POST /applepay/v1 - Process an Apple Pay payment
        GET  /health      - Health check
    """

    gateway: MockGateway = None  # Set by server

    def do_POST(self):
        """Handle POST requests."""
        path = urlparse(self.path).path

        try:
            content_length = int(self.headers.get('Content-Length', 0))
            body = self.rfile.read(content_length).decode('utf-8')
            data = json.loads(body) if body else {}
            if not isinstance(data, dict):
                raise InvalidRequest("Request body must be a JSON object")

            if path != APPLE_PAY_PATH:
                self._send_error(404, f"Unknown endpoint: {path}")
                return

            gateway = data.get("gateway")
            if not isinstance(gateway, dict):
                gateway = {}
            if not self.gateway.authenticate(gateway.get("merchantId"), gateway.get("licenceKey")):
                self._send_error(401, "Invalid merchant credentials")
                return

            self._send_json(200, self.gateway.process_apple_pay(data))

        except InvalidRequest as e:
            self._send_error(400, str(e))
        except json.JSONDecodeError:
            self._send_error(400, "Invalid JSON")
        except Exception as e:
            logger.exception("Mock gateway failure")
            self._send_error(500, f"Internal error: {str(e)}")

    def do_GET(self):
        """Handle GET requests."""
        path = urlparse(self.path).path

        if path == "/health":
            self._send_json(200, {"status": "healthy"})
        else:
            self._send_error(404, "Not found")

    def _send_json(self, status: int, data: Dict):
        """Send JSON response."""
        body = json.dumps(data, indent=2).encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_error(self, status: int, message: str):
        """Send error response."""
        self._send_json(status, {
            "errorcode": "F%03d" % status,
            "errormessage": message,
        })

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def create_server(
    host: str = "localhost",
    port: int = 8080,
    gateway: Optional[MockGateway] = None
) -> HTTPServer:
    """Create the mock gateway server. Pass port 0 for an ephemeral port."""
    handler = type("BoundMockGatewayHandler", (MockGatewayHandler,), {
        "gateway": gateway or MockGateway()
    })
    return HTTPServer((host, port), handler)


def endpoint_url(server: HTTPServer) -> str:
    """Apple Pay endpoint URL of a running server."""
    host, port = server.server_address[:2]
    return f"http://{host}:{port}{APPLE_PAY_PATH}"


def start_in_background(host: str = "localhost", port: int = 0) -> HTTPServer:
    """Start a server on a daemon thread; call shutdown() when done."""
    server = create_server(host, port)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server


def run_server(host: str = "localhost", port: int = 8080):
    """Run the mock gateway until interrupted."""
    server = create_server(host, port)
    logger.info("Starting mock CityPay gateway on %s", endpoint_url(server))
    logger.info("Test merchant: %s", TEST_MERCHANT_ID)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        server.server_close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_server()
