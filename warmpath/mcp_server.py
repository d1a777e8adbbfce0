from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from warmpath import opportunities, services
from warmpath.db import init_db, session_scope
from warmpath.models import OpportunityKind, OpportunityStatus

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def warmpath_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "Warmpath",
    instructions=(
        "Warmpath ranks a user's professional network against their Ideal Customer "
        "Profile and suggests warm introduction paths. Call run_analysis(user_id) to "
        "recompute, get_snapshot(user_id) to page through the stored result, and "
        "list_opportunities(user_id) for the merged intro + outbound feed."
    ),
    lifespan=warmpath_lifespan,
)


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("warmpath://overview")
def warmpath_overview() -> str:
    """Overview of Warmpath: data model, workflow, and score semantics."""
    return json.dumps({
        "system": "Warmpath: relationship inference and ICP matching",
        "data_model": {
            "connection": "A company in the user's network with relationship strength 1-5 and key contacts.",
            "inferred_relationship": "A suggested intro path to a target company (DIRECT or ALUMNI), one per company.",
            "prospect": "An outbound target sourced independently of the network.",
        },
        "workflow": [
            "1. run_analysis(user_id): classify the network against the ICP and store the snapshot.",
            "2. get_snapshot(user_id, page, page_size): read stored matches without recomputing.",
            "3. list_opportunities(user_id): intros and prospects ranked by AI score.",
            "4. set_opportunity_status(user_id, kind, opportunity_id, status): move an opportunity along.",
        ],
        "match_types": {
            "FULL": "Score 75 or higher.",
            "PARTIAL": "Score 40-74, or any strength-5 connection (VIP).",
        },
        "statuses": [s.value for s in OpportunityStatus],
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def run_analysis(user_id: str) -> dict:
    """Recompute ICP matches and intro paths for a user. Requires an LLM API key."""
    with session_scope() as session:
        try:
            result = await services.run_analysis(session, user_id)
        except Exception as exc:
            log.warning("Analysis failed for %s: %s", user_id, exc)
            return {"error": f"Analysis failed: {exc}"}
        return result.model_dump(mode="json")


@mcp.tool()
def get_snapshot(user_id: str, page: int = 1, page_size: int = 20) -> dict:
    """Page through the stored matches of the last analysis (highest score first)."""
    if page < 1 or page_size < 1:
        return {"error": "page and page_size must be >= 1"}
    with session_scope() as session:
        return services.snapshot_page(session, user_id, page, min(page_size, 200)).model_dump(mode="json")


@mcp.tool()
def list_opportunities(user_id: str, limit: int = 50) -> list[dict]:
    """Intro and outbound opportunities for a user, ranked by AI score."""
    with session_scope() as session:
        feed = opportunities.list_opportunities(session, user_id)
        return [o.model_dump(mode="json") for o in feed[:max(1, min(limit, 500))]]


@mcp.tool()
def set_opportunity_status(user_id: str, kind: str, opportunity_id: int, status: str) -> dict:
    """Update an opportunity's status.

    Args:
        user_id: Owner of the opportunity.
        kind: INTRO or OUTBOUND.
        opportunity_id: Numeric id (the part after "intro-" / "outbound-").
        status: Suggested, Requested, In Progress, Won or Lost.
    """
    try:
        kind_enum = OpportunityKind(kind.strip().upper())
        status_enum = OpportunityStatus(status.strip())
    except ValueError as exc:
        return {"error": str(exc)}
    with session_scope() as session:
        if not opportunities.update_opportunity_status(session, user_id, kind_enum, opportunity_id, status_enum):
            return {"error": f"Opportunity {kind_enum.value.lower()}-{opportunity_id} not found"}
        session.commit()
        return {"ok": True, "status": status_enum.value}


@mcp.tool()
def get_opportunity_stats(user_id: str) -> dict:
    """Pipeline counts: intros suggested/requested, outbound suggested, won deals."""
    with session_scope() as session:
        return opportunities.opportunity_stats(session, user_id).model_dump()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Warmpath MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
