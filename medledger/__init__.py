"""In-memory healthcare ledger contracts sharing one simulated environment."""

__version__ = "0.1.0"