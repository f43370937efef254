# hostpulse/models/targets.py

from enum import Enum

from pydantic import BaseModel


class TargetState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    UNREACHABLE = "unreachable"


class TargetInfo(BaseModel):
    """A monitored host as reported by target discovery."""
    id: str
    state: TargetState

    @property
    def is_live(self) -> bool:
        return self.state == TargetState.RUNNING
