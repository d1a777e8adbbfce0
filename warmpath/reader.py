"""Load a user's network, work history and ICP into validated engine inputs."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from warmpath.models import ICPProfile, NetworkConnection, WorkHistoryEntry
from warmpath.schemas import Connection, ICPCriteria, KeyContact, WorkHistory
from warmpath.utils import json_list

log = logging.getLogger(__name__)


@dataclass
class NetworkSnapshot:
    user_id: str
    connections: list[Connection] = field(default_factory=list)
    work_history: list[WorkHistory] = field(default_factory=list)
    icp: ICPCriteria | None = None

    @property
    def is_empty(self) -> bool:
        return not self.connections


def _string_set(value: str | None) -> set[str]:
    return {str(v).strip() for v in json_list(value) if str(v).strip()}


def icp_from_row(row: ICPProfile) -> ICPCriteria:
    return ICPCriteria(
        target_industries=_string_set(row.target_industries_json),
        target_locations=_string_set(row.target_locations_json),
        key_roles=_string_set(row.key_roles_json),
        target_technologies=_string_set(row.target_technologies_json),
        company_size_min=row.company_size_min,
        company_size_max=row.company_size_max,
        pain_points=row.pain_points or "",
        anti_icp_criteria=row.anti_icp_criteria or "",
    )


def _key_contacts(value: str | None) -> list[KeyContact]:
    contacts: list[KeyContact] = []
    for raw in json_list(value):
        try:
            contacts.append(KeyContact.model_validate(raw))
        except ValidationError:
            continue
    return contacts


def connection_from_row(row: NetworkConnection) -> Connection | None:
    """Convert an ORM row to a :class:`Connection`, or ``None`` if the row is invalid."""
    try:
        return Connection(
            id=row.id,
            company_name=(row.company_name or "").strip(),
            company_domain=row.company_domain or None,
            relationship_strength=row.relationship_strength,
            contact_count=row.contact_count or 0,
            key_contacts=_key_contacts(row.key_contacts_json),
            connection_type=row.connection_type,
            tags=[str(t) for t in json_list(row.tags_json)],
        )
    except ValidationError as exc:
        log.warning("Skipping connection %s (%r): %s", row.id, row.company_name, exc.errors()[0]["msg"])
        return None


def load_network_snapshot(session: Session, user_id: str) -> NetworkSnapshot:
    """Read connections, work history and ICP for *user_id*.

    Rows that violate the connection invariants (strength outside 1-5, blank
    company name, negative contact count) are dropped with a warning.
    """
    rows = session.execute(
        select(NetworkConnection)
        .where(NetworkConnection.user_id == user_id)
        .order_by(NetworkConnection.id)
    ).scalars().all()
    connections = [c for c in (connection_from_row(r) for r in rows) if c is not None]

    history_rows = session.execute(
        select(WorkHistoryEntry)
        .where(WorkHistoryEntry.user_id == user_id)
        .order_by(WorkHistoryEntry.id)
    ).scalars().all()
    work_history: list[WorkHistory] = []
    for h in history_rows:
        try:
            work_history.append(WorkHistory(
                company_name=(h.company_name or "").strip(),
                start_date=h.start_date, end_date=h.end_date, is_current=bool(h.is_current),
            ))
        except ValidationError:
            log.warning("Skipping work history entry %s with no company name", h.id)

    icp_row = session.execute(
        select(ICPProfile).where(ICPProfile.user_id == user_id)
    ).scalars().first()
    icp = icp_from_row(icp_row) if icp_row else None
    if icp is None:
        log.info("No ICP defined for user %s; role matching and classification disabled", user_id)

    return NetworkSnapshot(user_id=user_id, connections=connections, work_history=work_history, icp=icp)
