"""Alternating buy/sell swap bot for a single token on a Uniswap V2-style router."""

__version__ = "0.1.0"
