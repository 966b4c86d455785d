"""Observability endpoints for ledger and fulfillment counters."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from credits_api.api.dependencies.session import require_admin_or_internal
from credits_api.observability.ledger import get_ledger_store


router = APIRouter(prefix="/observability", tags=["Observability"])


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} counter",
        f"{name}{label_fragment} {value}",
    ]


@router.get("/ledger", summary="Ledger observability snapshot")
async def get_ledger_snapshot(_: UUID | None = Depends(require_admin_or_internal)) -> dict[str, object]:
    return get_ledger_store().snapshot().as_dict()


@router.get(
    "/prometheus",
    summary="Prometheus-formatted ledger metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics(_: UUID | None = Depends(require_admin_or_internal)) -> PlainTextResponse:
    snapshot = get_ledger_store().snapshot()
    lines: list[str] = []

    for transaction_type, value in sorted(snapshot.transactions.items()):
        lines.extend(
            _format_metric(
                "credits_ledger_transactions_total",
                "Credit transactions applied grouped by type",
                value,
                labels={"type": transaction_type},
            )
        )
    for kind, value in sorted(snapshot.rejections.items()):
        lines.extend(
            _format_metric(
                "credits_ledger_rejections_total",
                "Ledger and fulfillment operations rejected grouped by error kind",
                value,
                labels={"kind": kind},
            )
        )
    for outcome, value in sorted(snapshot.redemptions.items()):
        lines.extend(
            _format_metric(
                "credits_gift_card_redemptions_total",
                "Gift card redemption attempts grouped by outcome",
                value,
                labels={"outcome": outcome},
            )
        )
    for edge, value in sorted(snapshot.transitions.items()):
        lines.extend(
            _format_metric(
                "credits_order_transitions_total",
                "Order and maker order transitions grouped by edge",
                value,
                labels={"edge": edge},
            )
        )
    lines.extend(
        _format_metric(
            "credits_ledger_invariant_violations_total",
            "Wallets found disagreeing with their transaction history",
            snapshot.invariant_violations,
        )
    )
    return PlainTextResponse("\n".join(lines) + "\n")
