from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException, Query
from sqlalchemy.orm import Session

from warmpath import opportunities, services
from warmpath.classifier import BatchClassifier
from warmpath.config import get_settings
from warmpath.db import init_db, session_generator
from warmpath.models import OpportunityKind
from warmpath.schemas import AnalysisResult, Opportunity, OpportunityStats, SnapshotPage, StatusUpdate

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Warmpath",
    version="0.1.0",
    description=(
        "Relationship intelligence API. Turns a user's professional network into "
        "ranked introduction paths scored against their Ideal Customer Profile, "
        "merged with outbound prospects. All endpoints return JSON. "
        "Authentication is handled upstream; the user id is part of the path."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Analysis", "description": "Run and page through ICP network analysis. Requires an LLM API key."},
        {"name": "Opportunities", "description": "Merged intro and outbound opportunity feed."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def classifier_dependency() -> BatchClassifier:
    return services.default_classifier()


# ---------------------------------------------------------------------------
# Routes: Analysis
# ---------------------------------------------------------------------------


@app.post("/api/users/{user_id}/analysis", response_model=AnalysisResult,
          tags=["Analysis"], summary="Recompute ICP matches and intro paths, replacing the stored snapshot")
async def run_analysis(
    user_id: str,
    session: Session = Depends(db_session),
    classifier: BatchClassifier = Depends(classifier_dependency),
):
    return await services.run_analysis(session, user_id, classifier)


@app.get("/api/users/{user_id}/snapshot", response_model=SnapshotPage,
         tags=["Analysis"], summary="Page through the last stored analysis without recomputing")
async def get_snapshot(
    user_id: str,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1, description="Defaults to the configured page size"),
    session: Session = Depends(db_session),
):
    settings = get_settings()
    size = min(page_size or settings.default_page_size, settings.max_page_size)
    return services.snapshot_page(session, user_id, page, size)


# ---------------------------------------------------------------------------
# Routes: Opportunities
# ---------------------------------------------------------------------------


@app.get("/api/users/{user_id}/opportunities", response_model=list[Opportunity],
         tags=["Opportunities"], summary="Intro and outbound opportunities ranked by AI score")
async def list_opportunities(user_id: str, session: Session = Depends(db_session)):
    return opportunities.list_opportunities(session, user_id)


@app.get("/api/users/{user_id}/opportunities/stats", response_model=OpportunityStats,
         tags=["Opportunities"], summary="Pipeline counts across intros and prospects")
async def get_opportunity_stats(user_id: str, session: Session = Depends(db_session)):
    return opportunities.opportunity_stats(session, user_id)


@app.put("/api/users/{user_id}/opportunities/{kind}/{opportunity_id}/status", response_model=dict,
         tags=["Opportunities"], summary="Move an opportunity through the pipeline")
async def update_status(
    user_id: str, kind: OpportunityKind, opportunity_id: int, body: StatusUpdate,
    session: Session = Depends(db_session),
):
    if not opportunities.update_opportunity_status(session, user_id, kind, opportunity_id, body.status):
        raise HTTPException(404, "Opportunity not found")
    session.commit()
    return {"ok": True, "status": body.status.value}


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("warmpath.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
