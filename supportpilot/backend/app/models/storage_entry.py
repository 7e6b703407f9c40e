# supportpilot/backend/app/models/storage_entry.py

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from ..db import Base


class StorageEntry(Base):
    """
    Key/value slot, the server-side stand-in for browser local storage.
    The whole ticket collection lives in one row as a JSON array.
    """
    __tablename__ = "local_storage"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
