"""
x402 Payment Protocol Integration Module.

This module implements the x402 payment protocol for the places gateway,
enabling pay-per-request access to the place search endpoint.

Key components:
- networks: Supported networks, SDK chain parameters and facilitator bindings
- pricing: Exact USD to stablecoin unit conversion
- requirements: PaymentRequirement construction for 402 challenges
- codec: X-Payment / X-Payment-Response header encoding
- facilitator: x402 SDK facilitator client for verify/settle, with CDP auth
- middleware: FastAPI middleware running the payment challenge
- signer: Payer-side EIP-712 authorization signing
- discovery: /.well-known/x402 capability manifest

Configuration is loaded from environment variables via places_gateway.core.config.
"""

__version__ = "0.1.0"
