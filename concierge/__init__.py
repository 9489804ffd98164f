"""Concierge -- calendar and mail assistant with a bounded, safety-gated tool loop."""

__version__ = "0.1.0"
