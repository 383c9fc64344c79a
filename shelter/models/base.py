# shelter/models/base.py
from enum import Enum as PyEnum

from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all ORM models of the inventory schema.
    """

    pass


def enum_type(enum_cls: type[PyEnum], name: str) -> SAEnum:
    """
    Column type storing enum *values* (lowercase wire values such as
    "available"), not member names.
    """
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
