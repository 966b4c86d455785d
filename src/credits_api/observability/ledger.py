from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LedgerSnapshot:
    transactions: Dict[str, int]
    rejections: Dict[str, int]
    redemptions: Dict[str, int]
    transitions: Dict[str, int]
    invariant_violations: int

    def as_dict(self) -> Dict[str, object]:
        return {
            "transactions": dict(self.transactions),
            "rejections": dict(self.rejections),
            "redemptions": dict(self.redemptions),
            "transitions": dict(self.transitions),
            "invariant_violations": self.invariant_violations,
        }


class LedgerObservabilityStore:
    """Collect ledger and fulfillment counters for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._transactions: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)
        self._redemptions: Dict[str, int] = defaultdict(int)
        self._transitions: Dict[str, int] = defaultdict(int)
        self._invariant_violations = 0

    def record_transaction(self, transaction_type: str, *, replayed: bool = False) -> None:
        with self._lock:
            self._transactions[transaction_type] += 1
            if replayed:
                self._transactions["replayed"] += 1

    def record_rejection(self, kind: str) -> None:
        with self._lock:
            self._rejections[kind] += 1

    def record_redemption(self, outcome: str) -> None:
        with self._lock:
            self._redemptions[outcome] += 1

    def record_transition(self, from_status: str, to_status: str) -> None:
        with self._lock:
            self._transitions[f"{from_status}->{to_status}"] += 1

    def record_invariant_violation(self) -> None:
        with self._lock:
            self._invariant_violations += 1

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                transactions=dict(self._transactions),
                rejections=dict(self._rejections),
                redemptions=dict(self._redemptions),
                transitions=dict(self._transitions),
                invariant_violations=self._invariant_violations,
            )

    def reset(self) -> None:
        with self._lock:
            self._transactions.clear()
            self._rejections.clear()
            self._redemptions.clear()
            self._transitions.clear()
            self._invariant_violations = 0


_STORE = LedgerObservabilityStore()


def get_ledger_store() -> LedgerObservabilityStore:
    return _STORE


__all__ = ["get_ledger_store", "LedgerObservabilityStore", "LedgerSnapshot"]
