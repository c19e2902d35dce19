"""Catalog ORM models."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

SYNC_STATUSES = ('synced', 'stale', 'syncing', 'error')


class Base(DeclarativeBase):
    pass


class RemoteRom(Base):
    """One file of a remote listing snapshot."""

    __tablename__ = "remote_roms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    system: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_modified: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    rom_metadata: Mapped[Optional["RomMetadata"]] = relationship(
        back_populates="remote_rom", cascade="all, delete-orphan", uselist=False,
        passive_deletes=True
    )
    local_roms: Mapped[List["LocalRom"]] = relationship(
        back_populates="remote_rom", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("system", "source", "filename", name="uq_remote_roms_system_source_filename"),
        Index("idx_remote_roms_system", "system"),
        Index("idx_remote_roms_filename", "filename"),
        Index("idx_remote_roms_system_filename", "system", "filename"),
    )


class RomMetadata(Base):
    """Metadata derived from a remote filename; owned by catalog sync."""

    __tablename__ = "rom_metadata"

    remote_rom_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("remote_roms.id", ondelete="CASCADE"), primary_key=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    regions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)    # JSON list of labels
    languages: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON list of codes
    revision: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_beta: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_demo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_proto: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_sample: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_unlicensed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_homebrew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_hack: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_virtual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_compilation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    remote_rom: Mapped[RemoteRom] = relationship(back_populates="rom_metadata")


class LocalRom(Base):
    """A file present in the local collection."""

    __tablename__ = "local_roms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remote_rom_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("remote_roms.id", ondelete="SET NULL"), nullable=True
    )
    local_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    system: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    sha1: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    crc32: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Remote size / last-modified observed when this file was last fetched or checked
    remote_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    remote_last_modified: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    downloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    remote_rom: Mapped[Optional[RemoteRom]] = relationship(back_populates="local_roms")

    __table_args__ = (
        Index("idx_local_roms_system", "system"),
        Index("idx_local_roms_system_filename", "system", "filename"),
        Index("idx_local_roms_remote_rom_id", "remote_rom_id"),
    )


class SyncState(Base):
    """Per (system, source) remote sync bookkeeping."""

    __tablename__ = "sync_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    system: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    remote_last_modified: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    local_last_synced: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    remote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="stale")
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("system", "source", name="uq_sync_state_system_source"),
    )
