"""Textile production order tracking: capacity and delivery-risk planning."""

__version__ = "0.1.0"
