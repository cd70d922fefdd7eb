"""Declarative SQLAlchemy models for template store bookkeeping."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Type

import sqlalchemy as sa
from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, MetaData, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..domain.models import DataStoreRole, DownloadStatus, ObjectInStoreState


NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class that applies a deterministic naming convention."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enum_column(enum_cls: Type[Enum]) -> sa.Enum:
    """Store enum values (not member names) in a portable VARCHAR column."""

    return sa.Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class TemplateStoreRefModel(Base):
    """Association between a template and the store holding a copy of it."""

    __tablename__ = "template_store_ref"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(Integer, nullable=False)
    store_id: Mapped[int] = mapped_column(Integer, nullable=False)
    store_role: Mapped[DataStoreRole] = mapped_column(enum_column(DataStoreRole), nullable=False)
    state: Mapped[ObjectInStoreState] = mapped_column(
        enum_column(ObjectInStoreState), nullable=False
    )
    download_state: Mapped[DownloadStatus | None] = mapped_column(enum_column(DownloadStatus))
    download_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    download_url: Mapped[str | None] = mapped_column(String(2048))
    error_string: Mapped[str | None] = mapped_column(Text)
    install_path: Mapped[str | None] = mapped_column(String(512))
    size: Mapped[int | None] = mapped_column(BigInteger)
    physical_size: Mapped[int | None] = mapped_column(BigInteger)
    ref_cnt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    destroyed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.false()
    )
    updated_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        sa.CheckConstraint("ref_cnt >= 0", name="ref_cnt_non_negative"),
        Index("ix_template_store_ref_store_template", "store_id", "template_id"),
        Index("ix_template_store_ref_template_role", "template_id", "store_role"),
    )


class ImageStoreModel(Base):
    """Secondary storage endpoint; a NULL ``zone_id`` marks a region-wide store."""

    __tablename__ = "image_store"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[DataStoreRole] = mapped_column(enum_column(DataStoreRole), nullable=False)
    zone_id: Mapped[int | None] = mapped_column(Integer, index=True)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class VMTemplateModel(Base):
    __tablename__ = "vm_template"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cross_zones: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.false()
    )
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TemplateZoneRefModel(Base):
    """Zone availability of a template; NULL ``zone_id`` stands for every zone."""

    __tablename__ = "template_zone_ref"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    zone_id: Mapped[int | None] = mapped_column(Integer)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
