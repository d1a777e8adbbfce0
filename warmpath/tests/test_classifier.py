from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from warmpath.classifier import (
    BatchClassifier,
    LLMCallError,
    LLMClient,
    build_chunk_message,
    build_icp_brief,
    chunked,
)
from warmpath.schemas import Candidate, ClassificationPayload
from warmpath.tests.conftest import make_icp


def _candidates(n: int) -> list[Candidate]:
    return [Candidate(id=str(i), name=f"Company {i}", domain=f"c{i}.example") for i in range(1, n + 1)]


def _ids(message: str) -> list[str]:
    """Candidate ids in a chunk message (the last line is the JSON company list)."""
    return [c["id"] for c in json.loads(message.rsplit("\n", 1)[1])]


def _echo_scores(score: int = 80):
    async def respond(system: str, user: str) -> dict:
        return {"matches": [{"id": i, "score": score, "reasons": ["Industry: SaaS"]} for i in _ids(user)]}
    return respond


ICP = make_icp(target_industries={"SaaS"}, company_size_min=50, company_size_max=500)


class TestChunked:
    def test_sizes(self):
        assert [len(c) for c in chunked(_candidates(120), 50)] == [50, 50, 20]

    def test_exact_multiple(self):
        assert [len(c) for c in chunked(_candidates(100), 50)] == [50, 50]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunked(_candidates(3), 0)


class TestPrompt:
    def test_size_filter_in_brief(self):
        brief = build_icp_brief(ICP)
        assert "50 - 500 employees" in brief
        assert "REJECT any company whose estimated employee count falls outside" in brief

    def test_no_size_filter(self):
        brief = build_icp_brief(make_icp(target_industries={"SaaS"}))
        assert "COMPANY SIZE (hard filter): Any" in brief
        assert "REJECT" not in brief

    def test_open_upper_bound(self):
        assert "100 - unbounded employees" in build_icp_brief(make_icp(company_size_min=100))

    def test_chunk_message_lists_companies(self):
        msg = build_chunk_message(ICP, _candidates(3))
        assert "COMPANIES (3)" in msg
        assert _ids(msg) == ["1", "2", "3"]


class TestBatchClassifier:
    @pytest.mark.asyncio
    async def test_all_chunks_merged(self):
        client = AsyncMock()
        client.call.side_effect = _echo_scores(80)
        result = await BatchClassifier(client, chunk_size=50, timeout=5).classify(_candidates(120), ICP)
        assert client.call.await_count == 3
        assert len(result) == 120
        assert result["7"].score == 80
        assert result["7"].reasons == ["Industry: SaaS"]

    @pytest.mark.asyncio
    async def test_failed_chunk_is_isolated(self):
        async def respond(system, user):
            ids = _ids(user)
            if "51" in ids:
                raise LLMCallError("rate limited", retryable=True)
            return await _echo_scores(70)(system, user)

        client = AsyncMock()
        client.call.side_effect = respond
        result = await BatchClassifier(client, chunk_size=50, timeout=5).classify(_candidates(120), ICP)
        assert len(result) == 70
        assert "1" in result and "120" in result
        assert not any(str(i) in result for i in range(51, 101))

    @pytest.mark.asyncio
    async def test_timeout_degrades_chunk(self):
        async def respond(system, user):
            if "1" in _ids(user):
                await asyncio.sleep(1)
            return await _echo_scores()(system, user)

        client = AsyncMock()
        client.call.side_effect = respond
        result = await BatchClassifier(client, chunk_size=2, timeout=0.05).classify(_candidates(4), ICP)
        assert set(result) == {"3", "4"}

    @pytest.mark.asyncio
    async def test_malformed_payload_degrades_chunk(self):
        client = AsyncMock()
        client.call.return_value = {"results": "nope"}
        result = await BatchClassifier(client, chunk_size=50, timeout=5).classify(_candidates(3), ICP)
        assert result == {}

    @pytest.mark.asyncio
    async def test_unexpected_error_degrades_chunk(self):
        client = AsyncMock()
        client.call.side_effect = RuntimeError("boom")
        result = await BatchClassifier(client, chunk_size=50, timeout=5).classify(_candidates(3), ICP)
        assert result == {}

    @pytest.mark.asyncio
    async def test_unknown_and_bad_entries_dropped(self):
        client = AsyncMock()
        client.call.return_value = {"matches": [
            {"id": "1", "score": 90, "reasons": ["Fit"]},
            {"id": "999", "score": 90},
            {"id": "2", "score": "high"},
            {"score": 50},
            "garbage",
            {"id": 3, "score": 140.6, "reasons": "Single reason"},
        ]}
        result = await BatchClassifier(client, chunk_size=50, timeout=5).classify(_candidates(3), ICP)
        assert set(result) == {"1", "3"}
        assert result["3"].score == 100
        assert result["3"].reasons == ["Single reason"]

    @pytest.mark.asyncio
    async def test_empty_candidates_no_calls(self):
        client = AsyncMock()
        assert await BatchClassifier(client, chunk_size=50, timeout=5).classify([], ICP) == {}
        client.call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_system_prompt_carries_size_rule(self):
        client = AsyncMock()
        client.call.return_value = {"matches": []}
        await BatchClassifier(client, chunk_size=50, timeout=5).classify(_candidates(1), ICP)
        system, user = client.call.await_args.args
        assert "HARD FILTER" in system
        assert "50 - 500 employees" in user


class TestClassificationPayload:
    def test_verdicts_skip_invalid(self):
        payload = ClassificationPayload.model_validate({"matches": [{"id": "a", "score": 10}, {"id": None}]})
        assert [v.id for v in payload.verdicts()] == ["a"]

    def test_score_infinity_is_invalid(self):
        payload = ClassificationPayload.model_validate({"matches": [{"id": "a", "score": float("inf")}]})
        assert payload.verdicts() == []


class TestLLMClient:
    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMClient(provider="nope")

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        with patch("anthropic.AsyncAnthropic") as MockAnthropic:
            client = LLMClient(provider="anthropic", api_key="test")
            MockAnthropic.return_value.messages.create = AsyncMock(return_value=type("R", (), {
                "content": [type("C", (), {"text": "not json"})()],
            })())
            with pytest.raises(LLMCallError, match="invalid JSON"):
                await client.call("sys", "user")

    @pytest.mark.asyncio
    async def test_fenced_json_parsed(self):
        with patch("anthropic.AsyncAnthropic") as MockAnthropic:
            client = LLMClient(provider="anthropic", api_key="test")
            text = '```json\n{"matches": []}\n```'
            MockAnthropic.return_value.messages.create = AsyncMock(return_value=type("R", (), {
                "content": [type("C", (), {"text": text})()],
            })())
            assert await client.call("sys", "user") == {"matches": []}

    @pytest.mark.asyncio
    async def test_api_error_is_retryable(self):
        with patch("anthropic.AsyncAnthropic") as MockAnthropic:
            client = LLMClient(provider="anthropic", api_key="test")
            MockAnthropic.return_value.messages.create = AsyncMock(side_effect=ConnectionError("down"))
            with pytest.raises(LLMCallError) as info:
                await client.call("sys", "user")
            assert info.value.retryable
