"""Shipping engine: box selection, hub routing, rate shopping, labels and tracking."""

__version__ = "1.0.0"
