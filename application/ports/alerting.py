"""
Alerting port: fire-and-forget notification on critical payment failures.

Implementations must never raise into the caller; a failed alert cannot
change a financial outcome.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable


class AlertSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@runtime_checkable
class Alerter(Protocol):
    async def notify(
        self,
        event: str,
        *,
        severity: AlertSeverity = AlertSeverity.ERROR,
        context: dict[str, Any] | None = None,
    ) -> None: ...
