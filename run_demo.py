#!/usr/bin/env python3
"""
CityPay SDK Demo Runner

Starts the mock gateway on a local port and runs Apple Pay payments
through the SDK, showing how verified, declined and tampered responses
reach the payment sheet and the merchant callback.

Usage:
    python run_demo.py          # Run all flows
    python run_demo.py success  # Run one flow (success, decline, tamper)
    python run_demo.py server   # Start the mock gateway only
"""

import logging
import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from citypay import (  # noqa: E402
    ApplePayment,
    BillingContact,
    CityPayClient,
    CityPayRequest,
    DigestVerifier,
)
from mock_gateway import (  # noqa: E402
    TEST_LICENCE_KEY,
    TEST_MERCHANT_ID,
    endpoint_url,
    run_server,
    start_in_background,
)

logger = logging.getLogger("run_demo")

FLOWS = {
    "success": "MockAuthSuccess",
    "decline": "MockAuthDecline",
    "tamper": "MockTamperDemo",
}


def print_header(title):
    """Print a nice header."""
    print("\n")
    print("=" * 70)
    print(f"  {title}")
    print("=" * 70)


def run_flow(name: str, url: str):
    """Run one Apple Pay payment against the mock gateway."""
    print_header(f"Flow: {name}")

    request = CityPayRequest(
        merchant_id=TEST_MERCHANT_ID,
        licence_key=TEST_LICENCE_KEY,
        identifier=FLOWS[name],
        test=True
    )
    client = CityPayClient(request, api_base=url)

    payment = ApplePayment(
        payment_data=b'{"version":"EC_v1","data":"demo"}',
        transaction_identifier="demo-" + name,
        billing_contact=BillingContact(
            first_name="Test",
            last_name="User",
            email="test@example.com",
            postcode="JE2 4WE",
            country="JE"
        )
    )

    def completion(status):
        print(f"   Payment sheet: {status.value}")

    def payment_response(response):
        print(f"   Merchant callback: {response.log_line()}")
        print(f"   Error: {response.error_code} {response.error_message}")
        print(f"   Re-verifies: {DigestVerifier.is_valid(response, TEST_LICENCE_KEY)}")

    client.apple_pay(payment, completion, payment_response)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if len(sys.argv) > 1 and sys.argv[1] == "server":
        run_server()
        return

    flows = sys.argv[1:] or list(FLOWS)
    unknown = [f for f in flows if f not in FLOWS]
    if unknown:
        print(f"Unknown flow(s): {', '.join(unknown)}")
        print(f"Available: {', '.join(FLOWS)}, server")
        sys.exit(1)

    server = start_in_background("127.0.0.1", 0)
    try:
        url = endpoint_url(server)
        logger.info("Mock gateway listening on %s", url)
        for name in flows:
            run_flow(name, url)
    finally:
        server.shutdown()
        server.server_close()


if __name__ == "__main__":
    main()
