"""Retrieval-augmented expert routing and response arbitration engine."""

__version__ = "0.1.0"
