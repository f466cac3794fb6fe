"""Authority Exchange - escrow transaction engine and credit ledger."""

__version__ = "0.1.0"
