"""Error taxonomy for proposal sessions."""

from __future__ import annotations

from typing import Any


class PlanStreamError(RuntimeError):
    """Base error for proposal session failures."""

    code = "session_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {"code": self.code, "message": self.message}


class ProtocolError(PlanStreamError):
    """The stream violated the proposal protocol (missing id, malformed payload)."""

    code = "protocol_error"


class TransportError(PlanStreamError):
    """The transport or the key listener failed."""

    code = "transport_error"


class PersistenceError(PlanStreamError):
    """Reading or writing plan state failed."""

    code = "persistence_error"


class SessionCancelled(PlanStreamError):
    """The user stopped the proposal."""

    code = "cancelled"

    def __init__(self, message: str = "Proposal stopped") -> None:
        super().__init__(message)
