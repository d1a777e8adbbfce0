"""Read-time merge of inferred intros and outbound prospects into one ranked feed."""
from __future__ import annotations

import logging
from collections import Counter

from sqlalchemy import select
from sqlalchemy.orm import Session

from warmpath.models import (
    InferredRelationship,
    NetworkConnection,
    OpportunityKind,
    OpportunityStatus,
    Prospect,
)
from warmpath.schemas import BridgeContact, KeyContact, Opportunity, OpportunityStats, SupportingData
from warmpath.snapshot import active_generation, get_active_inferences
from warmpath.utils import clamp_score, json_list

log = logging.getLogger(__name__)

GENERIC_BRIDGE = "Network Connection"

_STATUS_ALIASES = {
    "new": OpportunityStatus.SUGGESTED,
    "suggested": OpportunityStatus.SUGGESTED,
    "requested": OpportunityStatus.REQUESTED,
    "in progress": OpportunityStatus.IN_PROGRESS,
    "in_progress": OpportunityStatus.IN_PROGRESS,
    "inprogress": OpportunityStatus.IN_PROGRESS,
    "won": OpportunityStatus.WON,
    "lost": OpportunityStatus.LOST,
}


def normalize_status(value: str | None) -> OpportunityStatus:
    """Map stored status strings onto the opportunity status enum (unknown -> Suggested)."""
    return _STATUS_ALIASES.get((value or "").strip().lower(), OpportunityStatus.SUGGESTED)


def resolve_bridge_contact(
    supporting: SupportingData | None, connection: NetworkConnection | None,
) -> BridgeContact:
    """Pick the bridge contact shown for an intro.

    Order: contact chosen during inference, the connection's first key
    contact, a contact-count placeholder, then a generic label.
    """
    strength = connection.relationship_strength if connection is not None else None
    if supporting is not None and supporting.bridge_contact is not None:
        c = supporting.bridge_contact
        return BridgeContact(name=c.name, title=c.title, relationship_strength=strength)
    if connection is not None:
        for raw in json_list(connection.key_contacts_json):
            if isinstance(raw, dict) and isinstance(raw.get("name"), str) and raw["name"].strip():
                c = KeyContact.model_validate(raw)
                return BridgeContact(name=c.name, title=c.title, relationship_strength=strength)
        if connection.contact_count:
            return BridgeContact(name=f"{connection.contact_count} Contact(s)", relationship_strength=strength)
    return BridgeContact(name=GENERIC_BRIDGE, relationship_strength=strength)


def _connections_for(session: Session, user_id: str, inferences: list[InferredRelationship]) -> dict:
    ids: set[int] = set()
    names: set[str] = set()
    for inf in inferences:
        supporting = SupportingData.from_json(inf.supporting_data_json)
        if supporting is not None and supporting.connection_id is not None:
            ids.add(supporting.connection_id)
        names.add(inf.target_company)
    if not ids and not names:
        return {}
    rows = session.execute(
        select(NetworkConnection).where(
            NetworkConnection.user_id == user_id,
            (NetworkConnection.id.in_(ids)) | (NetworkConnection.company_name.in_(names)),
        ).order_by(NetworkConnection.id)
    ).scalars().all()
    by_key: dict = {}
    for row in rows:
        by_key.setdefault(("id", row.id), row)
        by_key.setdefault(("name", row.company_name), row)
    return by_key


def _intro(inf: InferredRelationship, connections: dict) -> Opportunity:
    supporting = SupportingData.from_json(inf.supporting_data_json)
    conn = None
    if supporting is not None and supporting.connection_id is not None:
        conn = connections.get(("id", supporting.connection_id))
    if conn is None:
        conn = connections.get(("name", inf.target_company))
    return Opportunity(
        id=f"intro-{inf.id}",
        kind=OpportunityKind.INTRO,
        target_company=inf.target_company,
        bridge_contact=resolve_bridge_contact(supporting, conn),
        ai_score=clamp_score(inf.confidence_score),
        reasoning=inf.reasoning,
        status=normalize_status(inf.status),
        created_date=inf.generated_at,
    )


def _outbound(prospect: Prospect) -> Opportunity:
    return Opportunity(
        id=f"outbound-{prospect.id}",
        kind=OpportunityKind.OUTBOUND,
        target_company=prospect.company_name,
        ai_score=clamp_score(prospect.ai_score or 0),
        reasoning=prospect.reasoning or "",
        status=normalize_status(prospect.status),
        created_date=prospect.created_at,
    )


def list_opportunities(session: Session, user_id: str) -> list[Opportunity]:
    """Union of active intros and outbound prospects, best score first. Read only."""
    inferences = get_active_inferences(session, user_id)
    connections = _connections_for(session, user_id, inferences)
    prospects = session.execute(
        select(Prospect).where(Prospect.user_id == user_id).order_by(Prospect.id)
    ).scalars().all()

    feed = [_intro(inf, connections) for inf in inferences]
    feed.extend(_outbound(p) for p in prospects)
    feed.sort(key=lambda o: (-o.ai_score, o.kind is not OpportunityKind.INTRO, o.target_company, o.id))
    return feed


def update_opportunity_status(
    session: Session,
    user_id: str,
    kind: OpportunityKind,
    opportunity_id: int,
    status: OpportunityStatus,
) -> bool:
    """Set the pipeline status of one intro or prospect (caller must commit).

    Returns False when the row does not exist, belongs to another user, or
    is an intro from a superseded snapshot.
    """
    if kind is OpportunityKind.INTRO:
        row = session.execute(
            select(InferredRelationship).where(
                InferredRelationship.id == opportunity_id,
                InferredRelationship.user_id == user_id,
                InferredRelationship.generation == active_generation(session, user_id),
            )
        ).scalars().first()
    else:
        row = session.execute(
            select(Prospect).where(Prospect.id == opportunity_id, Prospect.user_id == user_id)
        ).scalars().first()
    if row is None:
        return False
    row.status = status.value
    log.info("Opportunity %s-%d for user %s set to %s", kind.value.lower(), opportunity_id, user_id, status.value)
    return True


def opportunity_stats(session: Session, user_id: str) -> OpportunityStats:
    """Pipeline counts across both opportunity sources."""
    intro_status: Counter[OpportunityStatus] = Counter(
        normalize_status(inf.status) for inf in get_active_inferences(session, user_id)
    )
    outbound_status: Counter[OpportunityStatus] = Counter(
        normalize_status(s) for s in session.execute(
            select(Prospect.status).where(Prospect.user_id == user_id)
        ).scalars().all()
    )
    return OpportunityStats(
        intros_suggested=intro_status[OpportunityStatus.SUGGESTED],
        intros_requested=intro_status[OpportunityStatus.REQUESTED] + intro_status[OpportunityStatus.IN_PROGRESS],
        outbound_suggested=outbound_status[OpportunityStatus.SUGGESTED],
        won_deals=intro_status[OpportunityStatus.WON] + outbound_status[OpportunityStatus.WON],
    )
