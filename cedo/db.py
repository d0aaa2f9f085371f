from enum import Enum as PyEnum
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine, BigInteger, Integer, JSON, Enum
from sqlalchemy.dialects.postgresql import JSONB
from os import getenv
from typing import Generator

class Base(DeclarativeBase):
    pass


# BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid alias) on SQLite
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JSONDocument = JSON().with_variant(JSONB, "postgresql")


def value_enum(enum_cls: type[PyEnum], name: str) -> Enum:
    """Enum column storing member values ('pending'), not member names"""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )

DATABASE_URL = getenv("DATABASE_URL")
if DATABASE_URL:
    connect_args = {}
    if DATABASE_URL.startswith("postgresql"):
        # connecting must also fit inside the request deadline
        connect_args["connect_timeout"] = int(getenv("DB_CONNECT_TIMEOUT", "5"))
    engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
else:
    engine = None
    SessionLocal = None


def get_db() -> Generator:
    """FastAPI dependency yielding a request-scoped DB session"""
    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL is not set")
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
