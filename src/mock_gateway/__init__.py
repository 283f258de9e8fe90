"""Mock gateway package."""

from .server import (
    MockGateway,
    create_server,
    endpoint_url,
    start_in_background,
    run_server,
    TEST_MERCHANT_ID,
    TEST_LICENCE_KEY,
)

__all__ = [
    "MockGateway",
    "create_server",
    "endpoint_url",
    "start_in_background",
    "run_server",
    "TEST_MERCHANT_ID",
    "TEST_LICENCE_KEY",
]
