"""Back-office sync adapter for commerce lifecycle events."""

__version__ = "1.0.0"
