"""Database models for the on-device cache."""

from datetime import datetime

from sqlalchemy import Column, DateTime, JSON, LargeBinary, String
from sqlalchemy.orm import declarative_base


Base = declarative_base()


class CollectionRecord(Base):
    """Full collection document, nested items included."""

    __tablename__ = "collections"

    id = Column(String(100), primary_key=True)
    document = Column(JSON, nullable=False)
    stored_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AssetRecord(Base):
    """Image bytes for one variant of an item photo."""

    __tablename__ = "assets"

    item_id = Column(String(100), primary_key=True)
    variant = Column(String(20), primary_key=True)
    data = Column(LargeBinary, nullable=False)
    stored_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SettingRecord(Base):
    """Key/value store for sync bookkeeping and app metadata."""

    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)
