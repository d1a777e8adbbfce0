"""Pydantic models for engine boundaries and API responses."""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from warmpath.models import (
    ConnectionType,
    InferenceType,
    MatchSource,
    MatchType,
    OpportunityKind,
    OpportunityStatus,
)
from warmpath.utils import clamp_score


# ---------------------------------------------------------------------------
# Network inputs
# ---------------------------------------------------------------------------


class KeyContact(BaseModel):
    name: str
    title: str = ""
    relationship: str = ""

    @field_validator("title", "relationship", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)


class ICPCriteria(BaseModel):
    target_industries: set[str] = set()
    target_locations: set[str] = set()
    key_roles: set[str] = set()
    target_technologies: set[str] = set()
    company_size_min: int | None = None
    company_size_max: int | None = None
    pain_points: str = ""
    anti_icp_criteria: str = ""


class Connection(BaseModel):
    id: int
    company_name: str = Field(min_length=1)
    company_domain: str | None = None
    relationship_strength: int = Field(ge=1, le=5)
    contact_count: int = Field(default=0, ge=0)
    key_contacts: list[KeyContact] = []
    connection_type: ConnectionType = ConnectionType.OTHER
    tags: list[str] = []

    @field_validator("connection_type", mode="before")
    @classmethod
    def unknown_type_is_other(cls, v: Any) -> Any:
        valid = {t.value for t in ConnectionType}
        return v if v in valid else ConnectionType.OTHER.value


class WorkHistory(BaseModel):
    company_name: str = Field(min_length=1)
    start_date: date | None = None
    end_date: date | None = None
    is_current: bool = False


# ---------------------------------------------------------------------------
# Classification service contract
# ---------------------------------------------------------------------------


class Candidate(BaseModel):
    id: str
    name: str
    domain: str | None = None


class ClassifierVerdict(BaseModel):
    id: str
    score: int = 0
    reasons: list[str] = []

    @field_validator("id", mode="before")
    @classmethod
    def id_to_str(cls, v: Any) -> str:
        if v is None or isinstance(v, (dict, list)):
            raise ValueError("candidate id must be a scalar")
        return str(v)

    @field_validator("score", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> int:
        try:
            return clamp_score(float(v))
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"score must be numeric, got {v!r}") from exc

    @field_validator("reasons", mode="before")
    @classmethod
    def coerce_reasons(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if not isinstance(v, list):
            raise ValueError("reasons must be a list")
        return [str(r) for r in v[:10]]


class ClassificationPayload(BaseModel):
    """Top-level shape returned by the classification service."""
    matches: list[Any]

    def verdicts(self) -> list[ClassifierVerdict]:
        """Validate entries one by one, skipping any that do not fit the contract."""
        result: list[ClassifierVerdict] = []
        for raw in self.matches:
            try:
                result.append(ClassifierVerdict.model_validate(raw))
            except ValidationError:
                continue
        return result


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------


class SupportingData(BaseModel):
    """Structured evidence stored alongside an inferred relationship."""
    kind: Literal["direct", "alumni"]
    connection_id: int | None = None
    bridge_contact: KeyContact | None = None
    bridge_company: str | None = None
    classifier_reasons: list[str] = []

    @classmethod
    def from_json(cls, value: str | None) -> SupportingData | None:
        """Parse a stored blob; unknown or broken shapes yield ``None``."""
        try:
            return cls.model_validate_json(value or "")
        except ValidationError:
            return None

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"))


class InferredPath(BaseModel):
    target_company: str = Field(min_length=1)
    bridge_company: str | None = None
    inference_type: InferenceType
    confidence_score: int = Field(ge=0, le=100)
    reasoning: str
    supporting_data: SupportingData


class MatchResult(BaseModel):
    connection_id: int
    company_name: str
    match_score: int = Field(ge=0, le=100)
    match_type: MatchType
    matching_criteria: list[str] = []
    source: MatchSource = MatchSource.NETWORK


class ScoreWriteback(BaseModel):
    """Match-cache values to store on one network connection."""
    connection_id: int
    score: int = Field(ge=0, le=100)
    match_type: MatchType
    reason: str
    criteria: list[str] = []
    source: MatchSource = MatchSource.NETWORK


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------


class AnalysisResult(BaseModel):
    matches: list[MatchResult]
    total_analyzed: int


class SnapshotPage(BaseModel):
    matches: list[MatchResult]
    total_count: int
    page: int
    page_size: int


class BridgeContact(BaseModel):
    name: str
    title: str = ""
    relationship_strength: int | None = None


class Opportunity(BaseModel):
    id: str
    kind: OpportunityKind
    target_company: str
    bridge_contact: BridgeContact | None = None
    ai_score: int
    reasoning: str = ""
    status: OpportunityStatus = OpportunityStatus.SUGGESTED
    created_date: datetime | None = None


class OpportunityStats(BaseModel):
    intros_suggested: int
    intros_requested: int
    outbound_suggested: int
    won_deals: int


class StatusUpdate(BaseModel):
    status: OpportunityStatus
