from __future__ import annotations

from sqlalchemy import JSON, BigInteger, Integer, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JsonDocument = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(12, 2, asdecimal=True)
Percent = Numeric(5, 2, asdecimal=True)


class Base(DeclarativeBase):
    pass
