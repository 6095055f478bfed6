"""Sync manifest and sync lease models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from langcms.models.base import Base


class SyncManifest(Base):
    """Sync manifest entry tracking a source file's hash at last sync."""

    __tablename__ = "sync_manifest"

    file_path: Mapped[str] = mapped_column(String(512), primary_key=True)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    table_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_synced: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SyncLock(Base):
    """Named lease row guarding sync runs across processes."""

    __tablename__ = "sync_locks"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    holder: Mapped[str] = mapped_column(String(128), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
