# tests/conftest.py
"""
Shared fixtures for the places gateway tests.

Required configuration is seeded before any application module is imported,
because places_gateway.main builds the application at import time.
"""
import os

PAY_TO = "0x209693bc6afc0c5328ba36faf03c514ef312287c"
PAYER_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

os.environ.setdefault("GOOGLE_PLACES_API_KEY", "test-google-key")
os.environ.setdefault("PAYMENT_WALLET_ADDRESS", PAY_TO)
os.environ.setdefault("NETWORK", "base-sepolia")
os.environ.setdefault("DISABLE_STACK_REGISTRATION", "true")

import pytest
from eth_account import Account

from places_gateway.core.config import Settings
from places_gateway.core.errors import FacilitatorUnavailable
from places_gateway.x402.types import SettleResponse, VerifyResponse

TEST_FACILITATOR_URL = "https://facilitator.test"
TX_HASH = "0x" + "ab" * 32


class StubFacilitator:
    """
    In-memory facilitator.

    Accepts every payment once: a (network, payer, nonce) that has been
    settled is refused on later verification, like a real facilitator
    refusing a used ERC-3009 nonce.
    """

    def __init__(self, verify_result=None, settle_result=None, unavailable=None):
        self.verify_result = verify_result
        self.settle_result = settle_result
        self.unavailable = unavailable or set()
        self.settled = set()
        self.verify_calls = []
        self.settle_calls = []

    async def verify(self, payment, requirement):
        self.verify_calls.append((payment, requirement))
        if "verify" in self.unavailable:
            raise FacilitatorUnavailable("Facilitator unreachable: connection refused")
        if payment.identity in self.settled:
            return VerifyResponse(is_valid=False, invalid_reason="authorization nonce already used", payer=None)
        if self.verify_result is not None:
            return self.verify_result
        return VerifyResponse(is_valid=True, payer=payment.authorization.from_)

    async def settle(self, payment, requirement):
        self.settle_calls.append((payment, requirement))
        if "settle" in self.unavailable:
            raise FacilitatorUnavailable("Facilitator unreachable: read timed out")
        if self.settle_result is not None:
            return self.settle_result
        self.settled.add(payment.identity)
        return SettleResponse(
            success=True,
            transaction=TX_HASH,
            network=payment.network,
            payer=payment.authorization.from_,
        )


def make_settings(**overrides) -> Settings:
    values = dict(
        GOOGLE_PLACES_API_KEY="test-google-key",
        PAYMENT_WALLET_ADDRESS=PAY_TO,
        NETWORK="base-sepolia",
        FACILITATOR_URL=TEST_FACILITATOR_URL,
        PAYMENT_PRICE_USD="0.01",
        STACK_URL="http://stack.test",
        SELF_URL="http://places.test:3000",
        DISABLE_STACK_REGISTRATION=True,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def facilitator() -> StubFacilitator:
    return StubFacilitator()


@pytest.fixture
def payer():
    return Account.from_key(PAYER_PRIVATE_KEY)


@pytest.fixture
def app(settings, facilitator):
    from places_gateway.main import create_app
    return create_app(settings, facilitator_client=facilitator)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)
