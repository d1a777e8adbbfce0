"""Bridge paths through employers the user shares with a connection."""
from __future__ import annotations

from warmpath.models import ConnectionType, InferenceType
from warmpath.schemas import Connection, InferredPath, SupportingData, WorkHistory

ALUMNI_CONFIDENCE = 85


def _is_former_colleague(connection: Connection, job: WorkHistory) -> bool:
    if connection.connection_type == ConnectionType.EX_COLLEAGUE:
        return True
    return job.company_name in connection.tags


def infer_alumni_paths(connections: list[Connection], work_history: list[WorkHistory]) -> list[InferredPath]:
    """Yield one ALUMNI path per (job, former colleague now elsewhere) pair.

    The classifier is not involved, so these paths survive a complete
    classification outage.
    """
    paths: list[InferredPath] = []
    for job in work_history:
        for conn in connections:
            if not _is_former_colleague(conn, job):
                continue
            if conn.company_name == job.company_name:
                continue
            contact = conn.key_contacts[0] if conn.key_contacts else None
            paths.append(InferredPath(
                target_company=conn.company_name,
                bridge_company=job.company_name,
                inference_type=InferenceType.ALUMNI,
                confidence_score=ALUMNI_CONFIDENCE,
                reasoning=f"Former colleague from {job.company_name} is now at {conn.company_name}",
                supporting_data=SupportingData(
                    kind="alumni",
                    connection_id=conn.id,
                    bridge_contact=contact,
                    bridge_company=job.company_name,
                ),
            ))
    return paths
