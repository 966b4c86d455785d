"""Mapper hooks that make ledger and audit rows write-once."""

from __future__ import annotations

from sqlalchemy import event

from credits_api.services.errors import ImmutableRecordError


def register_append_only(model: type) -> type:
    """Reject ORM updates and deletes for ``model``; inserts stay allowed."""

    table_name = model.__tablename__

    def _reject_update(mapper, connection, target) -> None:  # noqa: ANN001
        raise ImmutableRecordError(f"{table_name} rows are append-only", record_id=target.id)

    def _reject_delete(mapper, connection, target) -> None:  # noqa: ANN001
        raise ImmutableRecordError(f"{table_name} rows cannot be deleted", record_id=target.id)

    event.listen(model, "before_update", _reject_update)
    event.listen(model, "before_delete", _reject_delete)
    return model
