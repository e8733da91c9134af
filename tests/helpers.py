"""Shared test doubles for PayPal HTTP replies."""

from datetime import UTC, datetime

import requests

from payments.nvp import encode

NOW = datetime(2024, 5, 17, 12, 30, tzinfo=UTC)


class MockResponse:
    """Stand-in for requests.Response carrying an NVP or IPN-validation body."""

    def __init__(self, text="", status_code=200):
        self.status_code = status_code
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


def nvp_reply(**fields):
    return MockResponse(encode(fields))
