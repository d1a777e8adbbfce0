"""Deterministic connection scoring from relationship strength and ICP roles."""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from warmpath.schemas import Connection, ICPCriteria, KeyContact
from warmpath.utils import clamp_score

ROLE_MATCH_BOOST = 20
STRONG_RELATIONSHIP_BOOST = 10
STRONG_RELATIONSHIP_MIN = 4


@dataclass
class HeuristicScore:
    score: int
    criteria: list[str] = field(default_factory=list)
    matched_contact: KeyContact | None = None


def is_eligible(connection: Connection) -> bool:
    return connection.relationship_strength >= 1


def _acronym(text: str) -> str:
    words = re.findall(r"[a-z0-9]+", text.lower())
    return "".join(w[0] for w in words) if len(words) > 1 else ""


def role_matches(title: str, role: str) -> bool:
    """Case-insensitive substring match, also accepting acronyms ("CTO" ~ "Chief Technology Officer")."""
    title, role = title.lower().strip(), role.lower().strip()
    if not title or not role:
        return False
    if role in title:
        return True
    title_acronym, role_acronym = _acronym(title), _acronym(role)
    return role == title_acronym or title == role_acronym


def find_role_match(connection: Connection, icp: ICPCriteria | None) -> KeyContact | None:
    """Return the first key contact whose title matches any ICP key role."""
    if icp is None or not icp.key_roles:
        return None
    roles = sorted(icp.key_roles)
    for contact in connection.key_contacts:
        if any(role_matches(contact.title, role) for role in roles):
            return contact
    return None


def score_heuristic(connection: Connection, icp: ICPCriteria | None, base: int = 0) -> HeuristicScore:
    """Score a connection without the classifier.

    ``base`` is the classifier score the boosts are stacked on (0 when the
    classifier had nothing to say about this candidate).
    """
    score = base
    criteria: list[str] = []

    contact = find_role_match(connection, icp)
    if contact is not None:
        score += ROLE_MATCH_BOOST
        criteria.append(f"Matches ICP Role: {contact.title}")

    if connection.relationship_strength >= STRONG_RELATIONSHIP_MIN:
        score += STRONG_RELATIONSHIP_BOOST
        criteria.append("Strong Relationship")

    return HeuristicScore(score=clamp_score(score), criteria=criteria, matched_contact=contact)
