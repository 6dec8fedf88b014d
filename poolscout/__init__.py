"""Simulated liquidity-pool scout: discovery, scoring and a virtual portfolio."""

__version__ = "0.1.0"
