"""Asynchronous building blocks for a store-and-forward anonymity network."""

__version__ = "0.1.0"