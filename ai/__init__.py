"""
AI Decision Module

Turns a batch of market-metric records into buy/sell/hold decisions via a
single reasoning-service call, with a deterministic fallback rule for any
asset the service cannot answer for.

Core principle: the resolver always returns one decision per input.
"""
