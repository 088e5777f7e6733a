"""Declared reference expansion for API responses.

Each entity kind lists which id columns are expanded into a summary of the
referenced row, and which fields that summary carries. Referenced rows are
loaded in one query per expansion for a whole page of records.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from salesdesk.crm.models import Account, Campaign, Contact
from salesdesk.identity.models import User


@dataclass(frozen=True, slots=True)
class Expansion:
    column: str
    key: str
    model: type[Any]
    fields: tuple[str, ...]


USER_SUMMARY = ("first_name", "last_name", "email")

_ASSIGNEE = Expansion("assigned_to", "assigned_to", User, USER_SUMMARY)
_CREATOR = Expansion("created_by", "created_by", User, USER_SUMMARY)
_SOURCE = Expansion("source_id", "source", Campaign, ("name", "type"))
_ACCOUNT = Expansion("account_id", "account", Account, ("name", "industry"))

PROJECTIONS: Mapping[str, tuple[Expansion, ...]] = {
    "Lead": (_ASSIGNEE, _SOURCE),
    "Contact": (_ASSIGNEE, _ACCOUNT),
    "Account": (_ASSIGNEE,),
    "Deal": (
        _ASSIGNEE,
        Expansion("account_id", "account", Account, ("name",)),
        Expansion("contact_id", "contact", Contact, ("first_name", "last_name", "email")),
        _SOURCE,
    ),
    "Task": (_ASSIGNEE,),
    "Communication": (_CREATOR,),
    "Campaign": (_CREATOR,),
    "AuditLog": (Expansion("user_id", "user", User, ("first_name", "last_name", "email", "role")),),
}


def _summary(row: Any, fields: Sequence[str]) -> dict[str, Any]:
    return {"id": row.id, **{field: getattr(row, field) for field in fields}}


def _load(db: Session, expansion: Expansion, ids: set[uuid.UUID]) -> dict[uuid.UUID, dict[str, Any]]:
    if not ids:
        return {}
    rows = db.scalars(select(expansion.model).where(expansion.model.id.in_(ids))).all()
    return {row.id: _summary(row, expansion.fields) for row in rows}


def project_many(
    db: Session,
    entity_type: str,
    records: Sequence[Any],
    schema: type[BaseModel],
) -> list[dict[str, Any]]:
    """Serialize ``records`` with ``schema`` and expand declared references."""

    payloads = [schema.model_validate(record).model_dump() for record in records]
    for expansion in PROJECTIONS.get(entity_type, ()):
        ids = {payload[expansion.column] for payload in payloads if payload.get(expansion.column) is not None}
        summaries = _load(db, expansion, ids)
        for payload in payloads:
            ref = payload.get(expansion.column)
            payload[expansion.key] = summaries.get(ref) if ref is not None else None
    return jsonable_encoder(payloads)


def project_one(db: Session, entity_type: str, record: Any, schema: type[BaseModel]) -> dict[str, Any]:
    return project_many(db, entity_type, [record], schema)[0]
