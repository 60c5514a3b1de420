from pydantic import BaseModel
from typing import Literal


class SystemEvent(BaseModel):
    """Join/leave notification synthesized by the relay itself."""
    type: Literal["system"] = "system"
    event: Literal["join", "leave"]
    id: str

    def to_wire(self) -> str:
        # compact JSON: {"type":"system","event":"join","id":"..."}
        return self.model_dump_json()


def join_event(connection_id: str) -> SystemEvent:
    return SystemEvent(event="join", id=connection_id)


def leave_event(connection_id: str) -> SystemEvent:
    return SystemEvent(event="leave", id=connection_id)
