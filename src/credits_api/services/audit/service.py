"""Audit log writes (inside the caller's unit of work) and filtered reads."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.models.audit import AuditActionType, AuditLogEntry, AuditTargetType
from credits_api.schemas.snapshots import Snapshot


@dataclass
class AuditLogPage:
    entries: list[AuditLogEntry]
    total_count: int
    limit: int
    offset: int


class AuditLogService:
    """Stages audit entries next to the mutation they describe.

    ``record`` only flushes; the surrounding unit commits the audit entry and
    the ledger/order mutation together or rolls both back.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        *,
        admin_id: UUID,
        action_type: AuditActionType,
        target_type: AuditTargetType,
        target_id: str,
        before_state: Snapshot | None,
        after_state: Snapshot | None,
        reason: str | None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            admin_id=admin_id,
            action_type=action_type.value,
            target_type=target_type.value,
            target_id=str(target_id),
            before_state=before_state.to_json() if before_state else None,
            after_state=after_state.to_json() if after_state else None,
            reason=reason,
        )
        self._session.add(entry)
        await self._session.flush()
        logger.info(
            "Audit entry staged",
            audit_id=str(entry.id),
            admin_id=str(admin_id),
            action_type=action_type.value,
            target_type=target_type.value,
            target_id=str(target_id),
        )
        return entry

    async def list_entries(
        self,
        *,
        action_type: str | None = None,
        target_type: str | None = None,
        admin_id: UUID | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> AuditLogPage:
        """Return audit entries newest first.

        ``search`` is a case-insensitive substring match over reason, target id
        and admin id.
        """

        bounded_limit = max(1, min(limit, 200))
        bounded_offset = max(0, offset)

        filters = []
        if action_type:
            filters.append(AuditLogEntry.action_type == action_type)
        if target_type:
            filters.append(AuditLogEntry.target_type == target_type)
        if admin_id:
            filters.append(AuditLogEntry.admin_id == admin_id)
        needle = (search or "").strip().lower()
        if needle:
            pattern = f"%{needle}%"
            clauses = [
                func.lower(func.coalesce(AuditLogEntry.reason, "")).like(pattern),
                func.lower(AuditLogEntry.target_id).like(pattern),
            ]
            admin_match = _parse_uuid(needle)
            if admin_match is not None:
                clauses.append(AuditLogEntry.admin_id == admin_match)
            filters.append(or_(*clauses))

        count_stmt = select(func.count(AuditLogEntry.id)).where(*filters)
        total = int((await self._session.execute(count_stmt)).scalar_one())

        stmt = (
            select(AuditLogEntry)
            .where(*filters)
            .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
            .limit(bounded_limit)
            .offset(bounded_offset)
        )
        result = await self._session.execute(stmt)
        entries = list(result.scalars().all())
        return AuditLogPage(entries=entries, total_count=total, limit=bounded_limit, offset=bounded_offset)


def _parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        return None
