"""Deterministic purchase-order spend forecasting for software asset management."""

__version__ = "0.1.0"
