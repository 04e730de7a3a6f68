"""
Entity store used by the workflow services.

Services only talk to a `Repository`; they never build SQLAlchemy queries
themselves. `SqlRepository` is the production backend. `MemoryRepository`
keeps process-local lists, which is handy for tests and demos.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.seacert.models import Base

M = TypeVar("M", bound=Base)


class Repository:
    def get(self, model: type[M], entity_id: int | None) -> M | None:
        raise NotImplementedError

    def list(self, model: type[M], **equals: Any) -> list[M]:
        """All rows matching the equality filters, in insertion (id) order."""
        raise NotImplementedError

    def add(self, obj: M) -> M:
        """Insert and assign an id."""
        raise NotImplementedError

    def update(self, obj: M, **changes: Any) -> M:
        raise NotImplementedError

    def count(self, model: type[Base], **equals: Any) -> int:
        return len(self.list(model, **equals))

    def first(self, model: type[M], **equals: Any) -> M | None:
        rows = self.list(model, **equals)
        return rows[0] if rows else None

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass


@dataclass
class SqlRepository(Repository):
    session: Session

    def get(self, model: type[M], entity_id: int | None) -> M | None:
        if entity_id is None:
            return None
        return self.session.get(model, entity_id)

    def list(self, model: type[M], **equals: Any) -> list[M]:
        q = select(model).filter_by(**equals).order_by(model.id.asc())  # type: ignore[attr-defined]
        return list(self.session.scalars(q).all())

    def add(self, obj: M) -> M:
        self.session.add(obj)
        self.session.flush()
        return obj

    def update(self, obj: M, **changes: Any) -> M:
        for key, value in changes.items():
            setattr(obj, key, value)
        self.session.flush()
        return obj

    def count(self, model: type[Base], **equals: Any) -> int:
        q = select(func.count()).select_from(model).filter_by(**equals)
        return int(self.session.scalar(q) or 0)

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


def _apply_column_defaults(obj: Base) -> None:
    # The database fills these in on flush; transient objects never see them.
    for column in obj.__table__.columns:  # type: ignore[attr-defined]
        if getattr(obj, column.key, None) is not None or column.default is None:
            continue
        default = column.default
        if default.is_callable:
            value = default.arg(None)  # type: ignore[operator]
        elif default.is_scalar:
            value = default.arg
        else:
            continue
        setattr(obj, column.key, value)


@dataclass
class MemoryRepository(Repository):
    """Process-local store; single writer, no isolation, no persistence."""

    _rows: dict[type, list[Any]] = field(default_factory=dict)
    _next_id: dict[type, int] = field(default_factory=dict)

    def get(self, model: type[M], entity_id: int | None) -> M | None:
        if entity_id is None:
            return None
        for row in self._rows.get(model, []):
            if row.id == entity_id:
                return row
        return None

    def list(self, model: type[M], **equals: Any) -> list[M]:
        match: Callable[[Any], bool] = lambda row: all(getattr(row, k) == v for k, v in equals.items())
        return [row for row in self._rows.get(model, []) if match(row)]

    def add(self, obj: M) -> M:
        model = type(obj)
        _apply_column_defaults(obj)
        if getattr(obj, "id", None) is None:
            obj.id = self._next_id.get(model, 1)  # type: ignore[attr-defined]
        self._next_id[model] = max(self._next_id.get(model, 1), obj.id + 1)  # type: ignore[attr-defined]
        self._rows.setdefault(model, []).append(obj)
        return obj

    def update(self, obj: M, **changes: Any) -> M:
        for key, value in changes.items():
            setattr(obj, key, value)
        return obj
