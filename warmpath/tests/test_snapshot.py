from __future__ import annotations

import pytest
from sqlalchemy import select

from warmpath.models import InferenceType, InferredRelationship, MatchType, NetworkConnection
from warmpath.schemas import InferredPath, ScoreWriteback, SupportingData
from warmpath.snapshot import active_generation, get_active_inferences, get_snapshot_page, replace_snapshot
from warmpath.tests.conftest import add_connection

USER = "user-1"


def _path(company: str, confidence: int, connection_id: int | None = None) -> InferredPath:
    return InferredPath(
        target_company=company,
        inference_type=InferenceType.DIRECT,
        confidence_score=confidence,
        reasoning=f"Match at {company}",
        supporting_data=SupportingData(kind="direct", connection_id=connection_id),
    )


def _writeback(conn: NetworkConnection, score: int) -> ScoreWriteback:
    match_type = MatchType.FULL if score >= 75 else MatchType.PARTIAL
    return ScoreWriteback(connection_id=conn.id, score=score, match_type=match_type,
                          reason="r", criteria=[f"crit-{conn.company_name}"])


class TestReplaceSnapshot:
    def test_first_generation(self, session):
        conn = add_connection(session, USER, "Acme")
        generation = replace_snapshot(session, USER, [_path("Acme", 80, conn.id)], [_writeback(conn, 80)])
        assert generation == 1
        assert active_generation(session, USER) == 1
        (row,) = get_active_inferences(session, USER)
        assert row.target_company == "Acme"
        assert row.status == "Suggested"

    def test_replace_removes_previous_generation(self, session):
        replace_snapshot(session, USER, [_path("Old A", 60), _path("Old B", 50)], [])
        replace_snapshot(session, USER, [_path("New", 70)], [])
        rows = session.execute(select(InferredRelationship)).scalars().all()
        assert [(r.target_company, r.generation) for r in rows] == [("New", 2)]

    def test_replace_with_nothing_clears(self, session):
        replace_snapshot(session, USER, [_path("Old", 60)], [])
        replace_snapshot(session, USER, [], [])
        assert get_active_inferences(session, USER) == []
        assert active_generation(session, USER) == 2

    def test_other_users_untouched(self, session):
        replace_snapshot(session, "other", [_path("Theirs", 60)], [])
        replace_snapshot(session, USER, [_path("Mine", 60)], [])
        replace_snapshot(session, USER, [], [])
        assert [r.target_company for r in get_active_inferences(session, "other")] == ["Theirs"]

    def test_match_cache_rewritten(self, session):
        a = add_connection(session, USER, "A")
        b = add_connection(session, USER, "B")
        replace_snapshot(session, USER, [], [_writeback(a, 90), _writeback(b, 50)])
        replace_snapshot(session, USER, [], [_writeback(b, 60)])
        session.refresh(a)
        session.refresh(b)
        assert a.icp_match_score is None and a.icp_match_type is None
        assert (b.icp_match_score, b.icp_match_type) == (60, "PARTIAL")


class TestSnapshotPage:
    def _seed(self, session, n: int):
        conns = [add_connection(session, USER, f"Co {i:02d}") for i in range(n)]
        writebacks = [_writeback(c, 40 + (i * 7) % 60) for i, c in enumerate(conns)]
        replace_snapshot(session, USER, [], writebacks)
        return conns

    def test_never_analyzed(self, session):
        add_connection(session, USER, "Acme")
        matches, total = get_snapshot_page(session, USER, 1, 20)
        assert matches == []
        assert total == 0

    def test_pages_concatenate_to_full_set(self, session):
        self._seed(session, 23)
        full, total = get_snapshot_page(session, USER, 1, 100)
        assert total == 23
        paged = []
        for page in range(1, 6):
            chunk, chunk_total = get_snapshot_page(session, USER, page, 5)
            assert chunk_total == 23
            paged.extend(chunk)
        assert [m.connection_id for m in paged] == [m.connection_id for m in full]
        scores = [m.match_score for m in full]
        assert scores == sorted(scores, reverse=True)

    def test_page_past_end(self, session):
        self._seed(session, 3)
        matches, total = get_snapshot_page(session, USER, 5, 10)
        assert matches == []
        assert total == 3

    def test_criteria_round_trip(self, session):
        self._seed(session, 1)
        (match,), _ = get_snapshot_page(session, USER)
        assert match.matching_criteria == ["crit-Co 00"]

    @pytest.mark.parametrize("page, size", [(0, 10), (1, 0), (-1, 5)])
    def test_invalid_paging(self, session, page, size):
        with pytest.raises(ValueError):
            get_snapshot_page(session, USER, page, size)
