"""Intrusion detection core: rule loading, match nodes, decision tree and events."""

__version__ = "0.1.0"