"""Durable "last analysis" snapshot: inferred relationships plus the match cache.

Inferred relationships are versioned per user. A replace writes the new rows
under generation N+1, moves the user's active-generation pointer to N+1 and
only then deletes older generations, so readers never see an empty set in
between. Two analysis runs racing for the same user are not serialized: the
last one to commit wins.
"""
from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from warmpath.models import InferredRelationship, MatchSource, MatchType, NetworkConnection, SnapshotGeneration
from warmpath.schemas import InferredPath, MatchResult, ScoreWriteback
from warmpath.utils import json_list

log = logging.getLogger(__name__)


def active_generation(session: Session, user_id: str) -> int:
    """Return the user's active generation, 0 if no analysis was ever stored."""
    pointer = session.get(SnapshotGeneration, user_id)
    return pointer.active_generation if pointer else 0


def replace_snapshot(
    session: Session,
    user_id: str,
    inferences: list[InferredPath],
    writebacks: list[ScoreWriteback],
) -> int:
    """Replace the user's snapshot and commit. Returns the new generation."""
    pointer = session.get(SnapshotGeneration, user_id)
    if pointer is None:
        pointer = SnapshotGeneration(user_id=user_id, active_generation=0)
        session.add(pointer)
    new_generation = pointer.active_generation + 1
    now = datetime.now(UTC)

    for path in inferences:
        session.add(InferredRelationship(
            user_id=user_id,
            generation=new_generation,
            target_company=path.target_company,
            bridge_company=path.bridge_company,
            inference_type=path.inference_type.value,
            confidence_score=path.confidence_score,
            reasoning=path.reasoning,
            supporting_data_json=path.supporting_data.to_json(),
            is_active=True,
            generated_at=now,
        ))
    session.flush()

    pointer.active_generation = new_generation
    session.flush()

    # Retire everything older than the generation just activated
    stale = session.execute(
        select(InferredRelationship).where(
            InferredRelationship.user_id == user_id,
            InferredRelationship.generation < new_generation,
        )
    ).scalars().all()
    for row in stale:
        session.delete(row)
    session.flush()

    _write_match_cache(session, user_id, writebacks)
    session.commit()
    log.info("Stored snapshot generation %d for user %s: %d inferences, %d cached matches (%d stale rows removed)",
             new_generation, user_id, len(inferences), len(writebacks), len(stale))
    return new_generation


def _write_match_cache(session: Session, user_id: str, writebacks: list[ScoreWriteback]) -> None:
    session.execute(
        update(NetworkConnection)
        .where(NetworkConnection.user_id == user_id)
        .values(
            icp_match_score=None, icp_match_type=None, icp_match_reason=None,
            icp_match_criteria_json="[]", icp_match_source=None,
        )
        .execution_options(synchronize_session=False)
    )
    for wb in writebacks:
        session.execute(
            update(NetworkConnection)
            .where(NetworkConnection.id == wb.connection_id, NetworkConnection.user_id == user_id)
            .values(
                icp_match_score=wb.score,
                icp_match_type=wb.match_type.value,
                icp_match_reason=wb.reason,
                icp_match_criteria_json=json.dumps(wb.criteria),
                icp_match_source=wb.source.value,
            )
            .execution_options(synchronize_session=False)
        )
    session.expire_all()


def _match_from_row(row: NetworkConnection) -> MatchResult:
    try:
        match_type = MatchType(row.icp_match_type)
    except ValueError:
        match_type = MatchType.PARTIAL
    try:
        source = MatchSource(row.icp_match_source)
    except ValueError:
        source = MatchSource.NETWORK
    return MatchResult(
        connection_id=row.id,
        company_name=row.company_name,
        match_score=max(0, min(100, row.icp_match_score or 0)),
        match_type=match_type,
        matching_criteria=[str(c) for c in json_list(row.icp_match_criteria_json)],
        source=source,
    )


def get_snapshot_page(
    session: Session, user_id: str, page: int = 1, page_size: int = 20,
) -> tuple[list[MatchResult], int]:
    """Return one page of stored matches (score desc) and the total count.

    Reads the stored cache only; safe to call before any analysis has run.
    """
    if page < 1:
        raise ValueError("page must be >= 1")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")

    cached = (
        NetworkConnection.user_id == user_id,
        NetworkConnection.icp_match_score.is_not(None),
        NetworkConnection.icp_match_type.in_([MatchType.FULL.value, MatchType.PARTIAL.value]),
    )
    total = session.execute(
        select(func.count()).select_from(NetworkConnection).where(*cached)
    ).scalar_one()
    rows = session.execute(
        select(NetworkConnection)
        .where(*cached)
        .order_by(
            NetworkConnection.icp_match_score.desc(),
            NetworkConnection.company_name,
            NetworkConnection.id,
        )
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().all()
    return [_match_from_row(r) for r in rows], total


def get_active_inferences(session: Session, user_id: str) -> list[InferredRelationship]:
    """Inferred relationships of the active generation, highest confidence first."""
    generation = active_generation(session, user_id)
    if generation == 0:
        return []
    return list(session.execute(
        select(InferredRelationship)
        .where(
            InferredRelationship.user_id == user_id,
            InferredRelationship.generation == generation,
            InferredRelationship.is_active.is_(True),
        )
        .order_by(InferredRelationship.confidence_score.desc(), InferredRelationship.target_company)
    ).scalars().all())
