"""Audit log exports."""

from .service import AuditLogPage, AuditLogService  # noqa: F401
