"""Evidence acquisition and claim verification for governance proposals."""

__version__ = "0.1.0"
