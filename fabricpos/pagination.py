import math
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from fastapi import Query
from sqlalchemy.orm import Query as SAQuery

from fabricpos.schemas.common import PageMeta


class Pagination:
    """Query-string paging shared by every list endpoint."""

    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        sort_by: str = Query("created_at"),
        sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    ):
        self.page = page
        self.limit = limit
        self.sort_by = sort_by.strip()
        self.sort_order = sort_order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def order(self, query: SAQuery, model, allowed: Optional[Iterable[str]] = None) -> SAQuery:
        """Apply sort_by if it names a known column; otherwise created_at."""
        columns = set(allowed) if allowed else set(model.__table__.columns.keys())
        field = self.sort_by if self.sort_by in columns else "created_at"
        column = getattr(model, field)
        return query.order_by(column.asc() if self.sort_order == "asc" else column.desc(), model.id.desc())

    def paginate(self, query: SAQuery, model, allowed: Optional[Iterable[str]] = None) -> dict:
        total = query.order_by(None).count()
        items = self.order(query, model, allowed).offset(self.offset).limit(self.limit).all()
        return {"items": items, "pagination": self.meta(total)}

    def meta(self, total: int) -> PageMeta:
        return PageMeta(
            page=self.page,
            limit=self.limit,
            total=total,
            pages=math.ceil(total / self.limit) if total else 0,
        )


def sanitize_query(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def day_start(day: date) -> datetime:
    return datetime.combine(day, datetime.min.time())


def between_dates(query: SAQuery, column, date_from: Optional[date] = None, date_to: Optional[date] = None) -> SAQuery:
    """Inclusive calendar-day range on a timestamp column."""
    if date_from:
        query = query.filter(column >= day_start(date_from))
    if date_to:
        query = query.filter(column < day_start(date_to + timedelta(days=1)))
    return query
