from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class AuthContext:
    """Acting identity as seen by the gate, row scoping and side effects."""

    user_id: uuid.UUID
    role: str
    email: str | None = None
    correlation_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
