"""
Infrastructure services for the arena.

Module Contents
---------------
**Audit Logging**:
    - AuditLogger: event-driven audit trail producer for finished battles
    - AuditMetrics: counters for audit production

**Health Monitoring**:
    - UnifiedHealthCheck: aggregates PostgreSQL and Redis health
    - HealthStatus: HEALTHY / DEGRADED / UNHEALTHY
"""

from src.core.infra.audit_logger import AuditLogger, AuditMetrics
from src.core.infra.health import HealthStatus, UnifiedHealthCheck

__all__ = [
    "AuditLogger",
    "AuditMetrics",
    "HealthStatus",
    "UnifiedHealthCheck",
]
