"""Battle audit sink."""

from src.modules.audit.consumer import AuditConsumer

__all__ = ["AuditConsumer"]
