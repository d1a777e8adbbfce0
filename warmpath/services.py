"""Shared business logic for the Warmpath API and MCP server."""
from __future__ import annotations

import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from warmpath.aggregator import aggregate, build_candidates
from warmpath.alumni import infer_alumni_paths
from warmpath.classifier import BatchClassifier, LLMClient
from warmpath.reader import load_network_snapshot
from warmpath.schemas import AnalysisResult, ClassifierVerdict, SnapshotPage
from warmpath.snapshot import get_snapshot_page, replace_snapshot

log = logging.getLogger(__name__)


def default_classifier() -> BatchClassifier:
    return BatchClassifier(LLMClient())


async def run_analysis(
    session: Session, user_id: str, classifier: BatchClassifier | None = None,
) -> AnalysisResult:
    """Recompute and store the user's matches and inferred relationships.

    The snapshot is committed here. If the store write fails the error is
    logged, the session rolled back, and the computed result still returned.
    """
    started = time.monotonic()
    snapshot = load_network_snapshot(session, user_id)
    if snapshot.is_empty:
        log.info("User %s has no connections; skipping analysis", user_id)
        return AnalysisResult(matches=[], total_analyzed=0)

    verdicts: dict[str, ClassifierVerdict] = {}
    candidates = build_candidates(snapshot.connections)
    if snapshot.icp is not None and candidates:
        if classifier is None:
            classifier = default_classifier()
        verdicts = await classifier.classify(candidates, snapshot.icp)

    alumni_paths = infer_alumni_paths(snapshot.connections, snapshot.work_history)
    result = aggregate(
        snapshot.connections, snapshot.icp, verdicts,
        alumni_paths=alumni_paths, work_history=snapshot.work_history,
    )

    try:
        replace_snapshot(session, user_id, result.inferences, result.writebacks)
    except SQLAlchemyError:
        log.exception("Failed to store analysis snapshot for user %s", user_id)
        session.rollback()

    log.info(
        "Analysis for user %s: %d connections, %d classified, %d matches, %d inferences in %.0fms",
        user_id, len(snapshot.connections), len(verdicts), len(result.matches),
        len(result.inferences), (time.monotonic() - started) * 1000,
    )
    return AnalysisResult(matches=result.matches, total_analyzed=len(snapshot.connections))


def snapshot_page(session: Session, user_id: str, page: int, page_size: int) -> SnapshotPage:
    matches, total = get_snapshot_page(session, user_id, page, page_size)
    return SnapshotPage(matches=matches, total_count=total, page=page, page_size=page_size)
