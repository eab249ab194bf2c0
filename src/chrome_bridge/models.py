"""Wire envelopes exchanged between controllers, the relay and the endpoint.

All frames are single JSON objects sent as WebSocket text messages:

* controller -> relay: ``{"command": str, "params": {...}}`` (optional ``id``)
* relay -> endpoint: the controller frame plus the relay-assigned ``id``
* endpoint -> relay: ``{"id": int, "result": ...}`` or ``{"id": int, "error": str}``
* endpoint handshake: ``{"type": "connected", "message": str}``
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ValidationError, field_validator

HANDSHAKE_MESSAGE = "Chrome extension connected"
STATUS_COMMAND = "relayStatus"


class Handshake(BaseModel):
    type: Literal["connected"] = "connected"
    message: str = HANDSHAKE_MESSAGE


class CommandFrame(BaseModel):
    command: str
    params: dict[str, Any] = {}
    id: int | str | None = None

    @field_validator("params", mode="before")
    @classmethod
    def _none_params(cls, v: Any) -> Any:
        return {} if v is None else v

    def forwarded(self, request_id: int) -> dict[str, Any]:
        """The frame sent to the endpoint, tagged with the relay's request id."""
        return {"command": self.command, "params": self.params, "id": request_id}


class ResponseFrame(BaseModel):
    id: int | str | None = None
    result: Any = None
    error: str | None = None

    @field_validator("error", mode="before")
    @classmethod
    def _coerce_error(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return str(v.get("message") or v)
        if v is not None and not isinstance(v, str):
            return str(v)
        return v

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_wire(self) -> dict[str, Any]:
        """Dump with exactly one of ``result`` / ``error`` present."""
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        if self.error is not None:
            data["error"] = self.error
        else:
            data["result"] = self.result
        return data

    @classmethod
    def success(cls, request_id: int | str | None, result: Any) -> "ResponseFrame":
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: int | str | None, error: str) -> "ResponseFrame":
        return cls(id=request_id, error=error)


Frame = Handshake | CommandFrame | ResponseFrame


class FrameError(ValueError):
    """Raised for frames that are not valid JSON envelopes."""


def parse_frame(raw: str | bytes) -> Frame:
    """Decode a text frame into one of the envelope models."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FrameError(f"Invalid JSON frame: {e}") from e
    if not isinstance(data, dict):
        raise FrameError("Frame must be a JSON object")

    try:
        if data.get("type") == "connected":
            return Handshake.model_validate(data)
        if "command" in data:
            return CommandFrame.model_validate(data)
        if "id" in data and ("result" in data or "error" in data):
            return ResponseFrame.model_validate(data)
    except ValidationError as e:
        raise FrameError(f"Malformed frame: {e.errors()[0]['msg']}") from e
    raise FrameError("Unrecognized frame")


def dump_frame(frame: Frame | dict[str, Any]) -> str:
    if isinstance(frame, ResponseFrame):
        return json.dumps(frame.to_wire())
    if isinstance(frame, BaseModel):
        return frame.model_dump_json(exclude_none=True)
    return json.dumps(frame)
