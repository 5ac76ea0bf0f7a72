from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RuntimeState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class RuntimeStateTracker:
    state: RuntimeState = RuntimeState.IDLE
    last_error: str | None = None

    @property
    def running(self) -> bool:
        return self.state == RuntimeState.RUNNING

    def set_starting(self) -> None:
        self.state = RuntimeState.STARTING
        self.last_error = None

    def set_running(self) -> None:
        if self.state == RuntimeState.STARTING:
            self.state = RuntimeState.RUNNING

    def set_stopping(self) -> None:
        if self.state in (RuntimeState.STARTING, RuntimeState.RUNNING):
            self.state = RuntimeState.STOPPING

    def set_idle(self) -> None:
        self.state = RuntimeState.IDLE

    def set_error(self, detail: str) -> None:
        # Errors do not change the run state; the controller decides whether to stop.
        self.last_error = detail
