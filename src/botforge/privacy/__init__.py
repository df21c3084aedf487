"""Audit logging for BotForge."""

from .audit import AuditEvent, AuditLogger

__all__ = ["AuditEvent", "AuditLogger"]
