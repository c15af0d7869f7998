"""
SQLModel database models for mediahub.

The SQLite backend stores opaque string values by key; the persistent
cache and the continue-watching store own the format of those values.
"""

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Return current UTC time as naive datetime for SQLite compatibility.

    SQLite stores datetimes as strings without timezone info. When retrieved,
    they become timezone-naive datetimes. Using naive datetimes consistently
    prevents comparison errors between aware and naive datetimes.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StorageItem(SQLModel, table=True):
    """A single key-value entry of the persisted store."""

    __tablename__ = "storage_item"

    key: str = Field(primary_key=True, max_length=1024, description="Storage key")
    value: str = Field(description="Serialized value (JSON)")
    updated_at: datetime = Field(
        default_factory=utcnow,
        index=True,
        description="When the entry was last written",
    )
