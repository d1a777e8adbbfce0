"""Batched ICP classification of candidate companies through an LLM.

Candidates are split into fixed-size chunks and every chunk is sent as one
request. Chunks run concurrently and are independent: a chunk that fails,
times out or returns an unusable payload contributes nothing and is logged,
while its siblings carry on. The per-chunk maps are merged by candidate id
once every chunk has settled.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Any

from pydantic import ValidationError

from warmpath.config import get_settings
from warmpath.schemas import Candidate, ClassificationPayload, ClassifierVerdict, ICPCriteria

log = logging.getLogger(__name__)


class LLMCallError(Exception):
    """LLM call failed or returned unparseable output."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

CLASSIFICATION_PROMPT = """\
You are a B2B market analyst. You receive an Ideal Customer Profile (ICP) and a \
list of companies from a user's professional network. Decide which companies \
are plausible customers for the ICP.

For each company use what you know about it (name and web domain) to estimate \
its industry, location, technology stack and employee count.

Rules:
- Only return companies that are relevant to the ICP. Omit the rest.
- Company size is a HARD FILTER. If the estimated employee count is outside \
the ICP size range, reject the company even if the industry fits.
- Companies matching the anti-ICP criteria must be rejected.
- score is an integer 0-100 (100 = perfect fit).
- reasons are short phrases such as "Industry: Fintech" or "Size: 200-500".

Respond with ONLY valid JSON:
{
  "matches": [
    {"id": "<candidate id>", "score": <0-100>, "reasons": ["<reason>", "..."]}
  ]
}
"""


def _fmt(values: set[str]) -> str:
    return ", ".join(sorted(values)) if values else "Any"


def build_icp_brief(icp: ICPCriteria) -> str:
    """Render the ICP criteria block sent with every chunk."""
    if icp.company_size_min is None and icp.company_size_max is None:
        size = "Any"
    else:
        low = icp.company_size_min if icp.company_size_min is not None else 0
        high = icp.company_size_max if icp.company_size_max is not None else "unbounded"
        size = f"{low} - {high} employees"
    lines = [
        f"TARGET INDUSTRIES: {_fmt(icp.target_industries)}",
        f"TARGET LOCATIONS: {_fmt(icp.target_locations)}",
        f"TARGET TECHNOLOGIES: {_fmt(icp.target_technologies)}",
        f"KEY ROLES: {_fmt(icp.key_roles)}",
        f"COMPANY SIZE (hard filter): {size}",
    ]
    if icp.company_size_min is not None or icp.company_size_max is not None:
        lines.append(
            "REJECT any company whose estimated employee count falls outside "
            f"the range {size}, even if the industry fits."
        )
    if icp.pain_points:
        lines.append(f"PAIN POINTS: {icp.pain_points}")
    if icp.anti_icp_criteria:
        lines.append(f"ANTI-ICP (exclude): {icp.anti_icp_criteria}")
    return "\n".join(lines)


def build_chunk_message(icp: ICPCriteria, chunk: list[Candidate]) -> str:
    companies = [c.model_dump() for c in chunk]
    return (
        "ICP CRITERIA\n"
        f"{build_icp_brief(icp)}\n\n"
        f"COMPANIES ({len(chunk)})\n"
        f"{json.dumps(companies, ensure_ascii=False)}"
    )


# ---------------------------------------------------------------------------
# LLM Client
# ---------------------------------------------------------------------------


class LLMClient:
    """Unified async LLM client supporting Anthropic and OpenAI."""

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        settings = get_settings()
        self.provider = provider or settings.llm_provider
        self.model = model or settings.llm_model
        self._api_key = api_key
        self._base_url = base_url
        self._client: Any = None
        self._init_client()

    def _init_client(self) -> None:
        if self.provider == "anthropic":
            import anthropic
            self.model = self.model or "claude-haiku-4-5-20251001"
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key or os.environ.get("ANTHROPIC_API_KEY")
            )
        elif self.provider in ("openai", "openai_compatible"):
            import openai
            self.model = self.model or "gpt-4o-mini"
            kwargs: dict[str, Any] = {}
            key = self._api_key or os.environ.get("OPENAI_API_KEY")
            if key:
                kwargs["api_key"] = key
            url = self._base_url or os.environ.get("OPENAI_BASE_URL")
            if url:
                kwargs["base_url"] = url
            self._client = openai.AsyncOpenAI(**kwargs)
        else:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")

    async def call(self, system: str, user: str) -> dict[str, Any]:
        """Send system+user message to the LLM, return parsed JSON."""
        try:
            if self.provider == "anthropic":
                response = await self._client.messages.create(
                    model=self.model,
                    max_tokens=4096,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                )
                text = response.content[0].text.strip()
                m = re.search(r'```(?:json)?\s*(\{.*\})\s*```', text, re.DOTALL)
                if m:
                    text = m.group(1)
            else:
                response = await self._client.chat.completions.create(
                    model=self.model,
                    max_tokens=4096,
                    response_format={"type": "json_object"},
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                )
                text = response.choices[0].message.content or "{}"
        except LLMCallError:
            raise
        except Exception as exc:
            raise LLMCallError(f"LLM API call failed: {exc}", retryable=True) from exc

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LLMCallError(
                f"LLM returned invalid JSON: {text[:200]}", retryable=False,
            ) from exc
        if not isinstance(parsed, dict):
            raise LLMCallError(f"LLM returned a non-object payload: {text[:200]}", retryable=False)
        return parsed


# ---------------------------------------------------------------------------
# Batch classifier
# ---------------------------------------------------------------------------


def chunked(items: list[Candidate], size: int) -> list[list[Candidate]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchClassifier:
    """Score candidate companies against an ICP in concurrent, failure-isolated chunks."""

    def __init__(
        self,
        client: LLMClient,
        chunk_size: int | None = None,
        timeout: float | None = None,
        system_prompt: str = CLASSIFICATION_PROMPT,
    ):
        settings = get_settings()
        self.client = client
        self.chunk_size = chunk_size or settings.classification_chunk_size
        self.timeout = timeout if timeout is not None else settings.classification_timeout_seconds
        self.system_prompt = system_prompt

    async def _classify_chunk(
        self, index: int, chunk: list[Candidate], icp: ICPCriteria,
    ) -> dict[str, ClassifierVerdict]:
        try:
            raw = await asyncio.wait_for(
                self.client.call(self.system_prompt, build_chunk_message(icp, chunk)),
                timeout=self.timeout,
            )
            payload = ClassificationPayload.model_validate(raw)
        except asyncio.TimeoutError:
            log.warning("Classification chunk %d timed out after %.1fs (%d candidates)",
                        index, self.timeout, len(chunk))
            return {}
        except LLMCallError as exc:
            log.warning("Classification chunk %d failed: %s", index, exc)
            return {}
        except ValidationError as exc:
            log.warning("Classification chunk %d returned a malformed payload: %s",
                        index, exc.errors()[0]["msg"])
            return {}
        except Exception as exc:
            log.warning("Classification chunk %d raised %s: %s", index, type(exc).__name__, exc)
            return {}

        allowed = {c.id for c in chunk}
        results: dict[str, ClassifierVerdict] = {}
        for verdict in payload.verdicts():
            if verdict.id not in allowed:
                log.debug("Chunk %d returned unknown candidate id %r", index, verdict.id)
                continue
            results[verdict.id] = verdict
        return results

    async def classify(
        self, candidates: list[Candidate], icp: ICPCriteria,
    ) -> dict[str, ClassifierVerdict]:
        """Classify all candidates; returns a map of candidate id to verdict.

        Only candidates the service judged relevant appear in the map.
        """
        if not candidates:
            return {}
        chunks = chunked(candidates, self.chunk_size)
        log.info("Classifying %d candidates in %d chunk(s)", len(candidates), len(chunks))
        partials = await asyncio.gather(*(
            self._classify_chunk(i, chunk, icp) for i, chunk in enumerate(chunks, start=1)
        ))
        merged: dict[str, ClassifierVerdict] = {}
        for partial in partials:
            merged.update(partial)
        return merged
