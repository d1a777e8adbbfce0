from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Enumerations (stored as plain strings)
# ---------------------------------------------------------------------------


class ConnectionType(str, Enum):
    EX_COLLEAGUE = "ex-colleague"
    CLIENT = "client"
    VENDOR = "vendor"
    INVESTOR = "investor"
    OTHER = "other"


class InferenceType(str, Enum):
    DIRECT = "DIRECT"
    ALUMNI = "ALUMNI"
    INDUSTRY = "INDUSTRY"
    GEOGRAPHY = "GEOGRAPHY"
    MUTUAL_CONNECTION = "MUTUAL_CONNECTION"


class MatchType(str, Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"
    NONE = "NONE"


class MatchSource(str, Enum):
    NETWORK = "NETWORK"
    WORK_HISTORY = "WORK_HISTORY"


class OpportunityKind(str, Enum):
    INTRO = "INTRO"
    OUTBOUND = "OUTBOUND"


class OpportunityStatus(str, Enum):
    SUGGESTED = "Suggested"
    REQUESTED = "Requested"
    IN_PROGRESS = "In Progress"
    WON = "Won"
    LOST = "Lost"


# ---------------------------------------------------------------------------
# User-owned tables
# ---------------------------------------------------------------------------


class ICPProfile(Base):
    __tablename__ = "icp_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    target_industries_json: Mapped[str] = mapped_column(Text, default="[]")
    target_locations_json: Mapped[str] = mapped_column(Text, default="[]")
    key_roles_json: Mapped[str] = mapped_column(Text, default="[]")
    target_technologies_json: Mapped[str] = mapped_column(Text, default="[]")
    company_size_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    company_size_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pain_points: Mapped[str] = mapped_column(Text, default="")
    anti_icp_criteria: Mapped[str] = mapped_column(Text, default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class NetworkConnection(Base):
    __tablename__ = "network_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(String(300), nullable=False)
    company_domain: Mapped[str | None] = mapped_column(String(300), nullable=True)
    relationship_strength: Mapped[int] = mapped_column(Integer, default=1)
    contact_count: Mapped[int] = mapped_column(Integer, default=0)
    key_contacts_json: Mapped[str] = mapped_column(Text, default="[]")
    connection_type: Mapped[str] = mapped_column(String(30), default=ConnectionType.OTHER.value)
    tags_json: Mapped[str] = mapped_column(Text, default="[]")
    # Match cache, rewritten on every analysis run
    icp_match_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    icp_match_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    icp_match_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    icp_match_criteria_json: Mapped[str] = mapped_column(Text, default="[]")
    icp_match_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class WorkHistoryEntry(Base):
    __tablename__ = "work_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(String(300), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False)


class Prospect(Base):
    __tablename__ = "prospects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    company_name: Mapped[str] = mapped_column(String(300), nullable=False)
    ai_score: Mapped[int] = mapped_column(Integer, default=0)
    reasoning: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(30), default=OpportunityStatus.SUGGESTED.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# ---------------------------------------------------------------------------
# Engine-owned tables
# ---------------------------------------------------------------------------


class InferredRelationship(Base):
    __tablename__ = "inferred_relationships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    target_company: Mapped[str] = mapped_column(String(300), nullable=False)
    bridge_company: Mapped[str | None] = mapped_column(String(300), nullable=True)
    inference_type: Mapped[str] = mapped_column(String(30), nullable=False)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, default="")
    supporting_data_json: Mapped[str] = mapped_column(Text, default="{}")
    status: Mapped[str] = mapped_column(String(30), default=OpportunityStatus.SUGGESTED.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class SnapshotGeneration(Base):
    """Pointer to the generation of inferred relationships currently served per user."""

    __tablename__ = "snapshot_generations"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    active_generation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
