"""Standard column definitions for consistency."""
import uuid

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime


def new_id() -> str:
    return str(uuid.uuid4())


def uuid_pk():
    # Ids travel inside JSON payloads, so they are stored as canonical strings.
    return Column(
        String(36),
        primary_key=True,
        default=new_id,
        nullable=False
    )

def uuid_fk(table: str, nullable: bool = False, ondelete: str = "CASCADE"):
    return Column(
        String(36),
        ForeignKey(f"{table}.id", ondelete=ondelete),
        nullable=nullable,
        index=True
    )

def timestamp_created():
    return Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

def timestamp_updated():
    return Column(
        DateTime(timezone=True),
        onupdate=func.now()
    )
