"""Audit logging package."""

from fieldledger.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
