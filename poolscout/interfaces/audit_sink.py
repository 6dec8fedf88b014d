"""Audit sink protocol: fire-and-forget action recording."""
from typing import Protocol

from ..audit import ActionRecord


class AuditSink(Protocol):
    """Abstract interface for recording bot actions."""

    def record(self, action: ActionRecord) -> None: ...
