# session/models.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class ProcessStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class _CamelModel(BaseModel):
    # Files use camelCase keys; Python code uses snake_case attributes
    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProcessRecord(_CamelModel):
    """One spawned OS process, as last recorded by the process that spawned it."""
    pid: int
    command: str
    cwd: str
    start_time: datetime = Field(default_factory=now_utc, alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    exit_code: Optional[int] = Field(default=None, alias="exitCode")
    status: ProcessStatus = ProcessStatus.RUNNING


class Session(_CamelModel):
    """
    One pack run for a configuration name.

    The file outlives the run that wrote it; that is how orphans are found.
    """
    config_name: str = Field(alias="configName")
    session_id: str = Field(alias="sessionId")
    started_at: datetime = Field(alias="startedAt")
    ended_at: Optional[datetime] = Field(default=None, alias="endedAt")
    last_updated: datetime = Field(alias="lastUpdated")
    processes: List[ProcessRecord] = Field(default_factory=list)

    def find(self, pid: int) -> Optional[ProcessRecord]:
        # Latest record wins if a pid was reused within one session
        for record in reversed(self.processes):
            if record.pid == pid:
                return record
        return None

    def recorded_running(self) -> List[ProcessRecord]:
        return [p for p in self.processes if p.status is ProcessStatus.RUNNING]
