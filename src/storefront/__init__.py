"""Storefront backend: cart, checkout, payment settlement and order lifecycle."""

__version__ = "0.1.0"
