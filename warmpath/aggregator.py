"""Combine classifier verdicts, heuristics and alumni paths into one result set.

Everything here is a pure function of its inputs: the aggregator never
touches the store. The match-cache updates for network connections are
returned as an explicit ``writebacks`` batch for the snapshot persister.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from warmpath.heuristics import is_eligible, score_heuristic
from warmpath.models import InferenceType, MatchSource, MatchType
from warmpath.schemas import (
    Candidate,
    ClassifierVerdict,
    Connection,
    ICPCriteria,
    InferredPath,
    MatchResult,
    ScoreWriteback,
    SupportingData,
    WorkHistory,
)

FULL_THRESHOLD = 75
PARTIAL_THRESHOLD = 40
VIP_STRENGTH = 5
VIP_SCORE = 50
VIP_CRITERION = "VIP Connection"

# Lower wins when two paths to one company have equal confidence
_TYPE_PRIORITY = {
    InferenceType.DIRECT: 0,
    InferenceType.ALUMNI: 1,
    InferenceType.MUTUAL_CONNECTION: 2,
    InferenceType.INDUSTRY: 3,
    InferenceType.GEOGRAPHY: 4,
}


@dataclass
class AggregationResult:
    matches: list[MatchResult] = field(default_factory=list)
    inferences: list[InferredPath] = field(default_factory=list)
    writebacks: list[ScoreWriteback] = field(default_factory=list)


def candidate_id(connection: Connection) -> str:
    return str(connection.id)


def build_candidates(connections: list[Connection]) -> list[Candidate]:
    return [
        Candidate(id=candidate_id(c), name=c.company_name, domain=c.company_domain)
        for c in connections if is_eligible(c)
    ]


def classify_score(score: int) -> MatchType:
    if score >= FULL_THRESHOLD:
        return MatchType.FULL
    if score >= PARTIAL_THRESHOLD:
        return MatchType.PARTIAL
    return MatchType.NONE


def _company_key(name: str) -> str:
    return name.strip().casefold()


def _path_preference(path: InferredPath) -> tuple:
    return (
        -path.confidence_score,
        _TYPE_PRIORITY.get(path.inference_type, len(_TYPE_PRIORITY)),
        path.bridge_company or "",
        path.reasoning,
    )


def dedupe_by_company(paths: list[InferredPath]) -> list[InferredPath]:
    """Keep the single best path per target company.

    Highest confidence wins. Equal confidence falls back to inference type
    (DIRECT, ALUMNI, then the rest) and then bridge company, so the outcome
    does not depend on input order. Output is sorted by confidence
    descending, then target company.
    """
    best: dict[str, InferredPath] = {}
    for path in paths:
        key = _company_key(path.target_company)
        current = best.get(key)
        if current is None or _path_preference(path) < _path_preference(current):
            best[key] = path
    return sorted(best.values(), key=lambda p: (-p.confidence_score, p.target_company))


def _direct_reasoning(connection: Connection, match_type: MatchType, criteria: list[str]) -> str:
    label = "Full ICP match" if match_type is MatchType.FULL else "Partial ICP match"
    if criteria:
        return f"{label} at {connection.company_name}: {'; '.join(criteria)}"
    return f"{label} at {connection.company_name}"


def aggregate(
    connections: list[Connection],
    icp: ICPCriteria | None,
    verdicts: dict[str, ClassifierVerdict],
    alumni_paths: list[InferredPath] | None = None,
    work_history: list[WorkHistory] | None = None,
) -> AggregationResult:
    """Score every eligible connection and fold in alumni paths.

    Steps per connection: classifier score (0 when absent), plus heuristic
    boosts, clamped; FULL at 75+, PARTIAL at 40+, NONE below. A NONE with
    relationship strength 5 is lifted to PARTIAL at 50 ("VIP Connection").
    NONE entries are dropped.
    """
    past_employers = {_company_key(job.company_name) for job in (work_history or [])}
    matches: list[MatchResult] = []
    writebacks: list[ScoreWriteback] = []
    direct_paths: list[InferredPath] = []

    for conn in connections:
        if not is_eligible(conn):
            continue
        verdict = verdicts.get(candidate_id(conn))
        base = verdict.score if verdict else 0
        heuristic = score_heuristic(conn, icp, base)

        score = heuristic.score
        criteria = list(verdict.reasons if verdict else []) + heuristic.criteria
        match_type = classify_score(score)
        if match_type is MatchType.NONE and conn.relationship_strength == VIP_STRENGTH:
            match_type = MatchType.PARTIAL
            score = VIP_SCORE
            criteria.append(VIP_CRITERION)
        if match_type is MatchType.NONE:
            continue

        source = (
            MatchSource.WORK_HISTORY if _company_key(conn.company_name) in past_employers
            else MatchSource.NETWORK
        )
        matches.append(MatchResult(
            connection_id=conn.id,
            company_name=conn.company_name,
            match_score=score,
            match_type=match_type,
            matching_criteria=criteria,
            source=source,
        ))
        writebacks.append(ScoreWriteback(
            connection_id=conn.id,
            score=score,
            match_type=match_type,
            reason=_direct_reasoning(conn, match_type, criteria),
            criteria=criteria,
            source=source,
        ))

        contact = heuristic.matched_contact or (conn.key_contacts[0] if conn.key_contacts else None)
        direct_paths.append(InferredPath(
            target_company=conn.company_name,
            bridge_company=None,
            inference_type=InferenceType.DIRECT,
            confidence_score=score,
            reasoning=_direct_reasoning(conn, match_type, criteria),
            supporting_data=SupportingData(
                kind="direct",
                connection_id=conn.id,
                bridge_contact=contact,
                classifier_reasons=list(verdict.reasons) if verdict else [],
            ),
        ))

    matches.sort(key=lambda m: (-m.match_score, m.company_name, m.connection_id))
    inferences = dedupe_by_company(direct_paths + list(alumni_paths or []))
    return AggregationResult(matches=matches, inferences=inferences, writebacks=writebacks)
