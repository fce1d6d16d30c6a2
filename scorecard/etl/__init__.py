"""Public exports for ledger loading."""

from .ledger import LedgerLoadError, LedgerResult, load_ledger

__all__ = ["LedgerLoadError", "LedgerResult", "load_ledger"]
