from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from flowforge.graph.model import CamelModel, new_id, utc_now


SYSTEM_NODE_ID = "system"
SYSTEM_NODE_NAME = "System"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TriggerType(str, Enum):
    MANUAL = "manual"
    WEBHOOK = "webhook"
    SCHEDULE = "schedule"
    EVENT = "event"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogEntry(CamelModel):
    id: str = Field(default_factory=lambda: new_id("log"))
    run_id: str
    node_id: str
    node_name: str | None = None
    level: LogLevel
    message: str
    data: Any = None
    created_at: datetime = Field(default_factory=utc_now)

    def to_execution_log(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": self.created_at.isoformat(),
            "level": self.level.value,
            "message": self.message,
        }
        if self.node_id != SYSTEM_NODE_ID:
            payload["nodeId"] = self.node_id
        if self.data is not None:
            payload["data"] = self.data
        return payload


class Run(CamelModel):
    id: str = Field(default_factory=lambda: new_id("run"))
    flow_id: str
    flow_name: str
    status: RunStatus = RunStatus.PENDING
    trigger_type: TriggerType = TriggerType.MANUAL
    logs: list[LogEntry] = Field(default_factory=list)
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.SUCCESS, RunStatus.FAILED, RunStatus.CANCELLED)
