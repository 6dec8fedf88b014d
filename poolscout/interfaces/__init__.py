"""Protocol interfaces for the pool scout."""
from .audit_sink import AuditSink
from .pool_source import PoolSource

__all__ = ["AuditSink", "PoolSource"]
