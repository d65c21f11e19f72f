from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import Enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def str_enum(enum_cls: type[PyEnum], name: str) -> Enum:
    """Column type storing an enum by its string value (VARCHAR + CHECK-free)."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=30,
        values_callable=lambda members: [m.value for m in members],
    )
