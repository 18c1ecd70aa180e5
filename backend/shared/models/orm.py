"""
SQLAlchemy 2.0 ORM models for Hooplog.
Column types are the portable ones (Uuid, DateTime(timezone=True)) so the same
metadata runs on PostgreSQL in deployment and on SQLite in tests.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class ChannelORM(Base):
    __tablename__ = "channels"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text)
    subscriber_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cadence: Mapped[str] = mapped_column(String(10), nullable=False, default="daily")
    whitelisted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    entries: Mapped[list["CatalogEntryORM"]] = relationship(back_populates="channel")


class CatalogEntryORM(Base):
    __tablename__ = "catalog_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    source_name: Mapped[str] = mapped_column(String(200), nullable=False)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text)
    uploaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration_s: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    verification_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unverified")
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="uncategorized")
    is_competitive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    provenance: Mapped[str] = mapped_column(String(20), nullable=False)
    channel_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("channels.id"))

    submitter_contact: Mapped[Optional[str]] = mapped_column(String(320))
    submitter_note: Mapped[Optional[str]] = mapped_column(Text)
    claimed_category: Mapped[Optional[str]] = mapped_column(String(20))
    claimed_player1_name: Mapped[Optional[str]] = mapped_column(String(100))
    claimed_player2_name: Mapped[Optional[str]] = mapped_column(String(100))
    claimed_player1_score: Mapped[Optional[int]] = mapped_column(Integer)
    claimed_player2_score: Mapped[Optional[int]] = mapped_column(Integer)

    scraped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    channel: Mapped[Optional["ChannelORM"]] = relationship(back_populates="entries")
    match: Mapped[Optional["MatchORM"]] = relationship(back_populates="entry", uselist=False)


class PlayerORM(Base):
    __tablename__ = "players"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class MatchORM(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("entry_id", name="uq_match_entry"),
        CheckConstraint("player1_id != player2_id", name="chk_different_players"),
        CheckConstraint("player1_score != player2_score", name="chk_no_tie"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    entry_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("catalog_entries.id"), nullable=False)
    player1_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("players.id"), nullable=False)
    player2_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("players.id"), nullable=False)
    player1_score: Mapped[int] = mapped_column(Integer, nullable=False)
    player2_score: Mapped[int] = mapped_column(Integer, nullable=False)
    winner_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("players.id"), nullable=False)
    is_official: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    game_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(200))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    entry: Mapped["CatalogEntryORM"] = relationship(back_populates="match")
    stats: Mapped[list["ParticipantStatORM"]] = relationship(back_populates="match")


class ParticipantStatORM(Base):
    __tablename__ = "participant_stats"
    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_participant_stat"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )
    player_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("players.id"), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    field_goals_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    field_goals_attempted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    three_pointers_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    three_pointers_attempted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    free_throws_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    free_throws_attempted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rebounds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assists: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    steals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    blocks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    turnovers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fouls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    match: Mapped["MatchORM"] = relationship(back_populates="stats")
