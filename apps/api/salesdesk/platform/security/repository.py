from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement, Select

from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.rls import OWNER_COLUMN, apply_row_scope, effective_assignee, validate_row_access


ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    """Query builder shared by entity services.

    Subclasses declare the mapped ``model``, the ``resource`` name used in
    messages and metrics, the equality ``filter_fields`` accepted from the query
    string and the ``search_fields`` OR-matched by free-text search.
    """

    model: type[ModelT]
    resource = ""
    filter_fields: tuple[str, ...] = ()
    search_fields: tuple[str, ...] = ()

    def get(self, db: Session, entity_id: uuid.UUID) -> ModelT | None:
        return db.get(self.model, entity_id)

    def ordering(self) -> Sequence[ColumnElement[Any]]:
        return (getattr(self.model, "created_at").desc(),)

    def apply_filters(self, query: Select[Any], filters: Mapping[str, Any]) -> Select[Any]:
        for field in self.filter_fields:
            value = filters.get(field)
            if value is None or value == "":
                continue
            query = query.where(getattr(self.model, field) == value)
        return query

    def apply_search(self, query: Select[Any], q: str | None) -> Select[Any]:
        term = (q or "").strip()
        if not term or not self.search_fields:
            return query
        pattern = f"%{term}%"
        return query.where(or_(*(getattr(self.model, field).ilike(pattern) for field in self.search_fields)))

    def apply_scope_query(self, query: Select[Any], ctx: AuthContext) -> Select[Any]:
        return apply_row_scope(query, self.resource, ctx, model=self.model)

    def build_list_query(
        self,
        ctx: AuthContext,
        *,
        filters: Mapping[str, Any] | None = None,
        q: str | None = None,
    ) -> Select[Any]:
        resolved = dict(filters or {})
        if hasattr(self.model, OWNER_COLUMN):
            # A restricted caller's own id replaces whatever assignee was asked for.
            resolved[OWNER_COLUMN] = effective_assignee(ctx, resolved.get(OWNER_COLUMN))

        query = select(self.model)
        query = self.apply_filters(query, resolved)
        query = self.apply_search(query, q)
        query = self.apply_scope_query(query, ctx)
        return query.order_by(*self.ordering())

    def list(
        self,
        db: Session,
        ctx: AuthContext,
        *,
        filters: Mapping[str, Any] | None = None,
        q: str | None = None,
        limit: int | None = None,
    ) -> list[ModelT]:
        query = self.build_list_query(ctx, filters=filters, q=q)
        if limit is not None:
            query = query.limit(limit)
        return list(db.scalars(query).all())

    def validate_read_scope(self, record: ModelT, ctx: AuthContext, *, action: str = "read") -> None:
        validate_row_access(self.resource, record, ctx, action=action)
