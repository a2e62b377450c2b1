# tests/test_x402_live.py
"""
Live integration tests for the x402 payment flow.

These tests require:
1. A running gateway on Base Sepolia with a real Google Places API key
2. A funded payer wallet on Base Sepolia (testnet USDC)
3. Network access to the x402 facilitator

To run these tests:
    # First, start the gateway in another terminal:
    NETWORK=base-sepolia PAYMENT_WALLET_ADDRESS=0x... GOOGLE_PLACES_API_KEY=... \
        python -m places_gateway.main

    # Then run the live tests:
    RUN_LIVE_TESTS=1 TEST_WALLET_PRIVATE_KEY=0x... pytest tests/test_x402_live.py -v

Environment variables:
    TEST_WALLET_PRIVATE_KEY  - Private key for the payer wallet (with testnet USDC)
    TEST_GATEWAY_URL         - Gateway URL (default: http://localhost:3000)
"""
import base64
import json
import os

import pytest
import requests

SEARCH_PATH = "/api/places/text-search"


def should_run_live_tests() -> bool:
    """Check if live tests are enabled via environment."""
    return os.environ.get("RUN_LIVE_TESTS", "").lower() in ("1", "true", "yes")


live_test = pytest.mark.skipif(
    not should_run_live_tests(),
    reason="Live tests disabled. Set RUN_LIVE_TESTS=1"
)


def get_test_config():
    """Get test configuration from environment."""
    return {
        "gateway_url": os.environ.get("TEST_GATEWAY_URL", "http://localhost:3000").rstrip("/"),
        "wallet_private_key": os.environ.get("TEST_WALLET_PRIVATE_KEY"),
        "network": "base-sepolia",
    }


class TestGatewayHealth:
    """Basic gateway connectivity tests."""

    @live_test
    def test_health_endpoint(self):
        config = get_test_config()
        response = requests.get(f"{config['gateway_url']}/health", timeout=10)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["payment"]["network"] == config["network"]

    @live_test
    def test_discovery_document(self):
        config = get_test_config()
        response = requests.get(f"{config['gateway_url']}/.well-known/x402", timeout=10)

        assert response.status_code == 200
        paths = [endpoint["path"] for endpoint in response.json()["endpoints"]]
        assert SEARCH_PATH in paths


class TestX402ResponseFormat:
    """Test that 402 responses are correctly formatted."""

    @live_test
    def test_search_without_payment_returns_402(self):
        config = get_test_config()
        response = requests.post(
            f"{config['gateway_url']}{SEARCH_PATH}", json={"query": "coffee"}, timeout=10
        )

        assert response.status_code == 402
        data = response.json()
        print(f"402 Response: {json.dumps(data, indent=2)}")

        assert data["x402Version"] == 1
        assert data["error"] == "X-PAYMENT header is required"
        requirement = data["accepts"][0]
        assert requirement["scheme"] == "exact"
        assert requirement["network"] == config["network"]
        assert requirement["resource"].endswith(SEARCH_PATH)
        assert requirement["payTo"].startswith("0x")
        assert len(requirement["payTo"]) == 42

        print(f"Payment required: {int(requirement['maxAmountRequired']) / 1_000_000} USDC")


class TestX402PaymentFlow:
    """Test the full paid search against a real facilitator."""

    @live_test
    def test_paid_search(self):
        config = get_test_config()
        if not config["wallet_private_key"]:
            pytest.skip("TEST_WALLET_PRIVATE_KEY not set")

        from eth_account import Account
        from places_gateway.x402.signer import post_with_payment

        account = Account.from_key(config["wallet_private_key"])
        response = post_with_payment(
            f"{config['gateway_url']}{SEARCH_PATH}",
            {"query": "coffee shops", "location": "37.7749,-122.4194", "radius": 1000},
            account,
        )

        print(f"Response status: {response.status_code}")
        print(f"Response body: {response.text}")
        assert response.status_code == 200, f"Payment failed: {response.text}"

        data = response.json()
        assert data["status"] in ("OK", "ZERO_RESULTS")
        assert data["metadata"]["payment_method"] == "gasless_micropayment"

        settlement = json.loads(base64.b64decode(response.headers["X-Payment-Response"]))
        assert settlement["success"] is True
        assert settlement["transaction"].startswith("0x")
        print(f"Settled in transaction {settlement['transaction']}")


if __name__ == "__main__":
    """
    Run live tests directly:
        python tests/test_x402_live.py
    """
    import sys

    os.environ["RUN_LIVE_TESTS"] = "1"
    sys.exit(pytest.main([__file__, "-v", "-s"]))
