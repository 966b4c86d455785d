"""Background jobs for the credits service."""

from .ledger_reconciliation import run_reconciliation  # noqa: F401
