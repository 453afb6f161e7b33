"""
AI speaker refinement via Cloudflare Workers AI.

The model sees the diarized utterances (plus optional conversation context) and
returns a JSON array of speaker reassignments. It may only move utterances
between speakers that already exist; it never edits text or timing.

Failures (disabled, missing auth, HTTP errors, unparseable output) raise
RefinementFailed; callers keep the pre-refinement result.
"""
from __future__ import annotations

import dataclasses
import json
import logging
import re
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from speakerid.config import Settings, get_settings
from speakerid.diarization.models import DiarizationResult, Utterance
from speakerid.errors import RefinementFailed
from speakerid.schemas.refine import RefineUtteranceInput, SpeakerReassignment

logger = logging.getLogger(__name__)

REFINED_PREFIX = "ai_refined_"

_SYSTEM_PROMPT = """You are a backend assistant that reviews speaker diarization of a recorded conversation. You receive utterances with an index, a speaker label, text and timestamps.

Your role:
- Find utterances attributed to the wrong speaker (e.g. an answer labelled with the same speaker as the question it answers).
- Only use speaker labels that already appear in the input.
- Do NOT change text or timestamps.
- Do NOT invent utterances.
- If unsure, leave the utterance alone.

Always respond in JSON only.

OUTPUT FORMAT:
Return a single JSON array (empty if nothing should change). Each element must have exactly these keys:
- index (integer): index of the utterance to reassign
- speaker_label (string): the new speaker label
- confidence (number 0-1): how sure you are
- reason (string): brief explanation

Return only the JSON array, no markdown or extra text."""


def _build_user_message(utterances: Sequence[Utterance], context: str | None) -> str:
    parts: list[str] = []
    if context:
        parts.append(f"Conversation context: {context}")
    labels = list(dict.fromkeys(u.speaker_label for u in utterances))
    parts.append(f"Known speakers: {', '.join(labels)}")
    items = [
        RefineUtteranceInput(
            index=i,
            speaker=u.speaker_label,
            text=u.text,
            start_sec=round(u.start_ms / 1000.0, 3),
            end_sec=round(u.end_ms / 1000.0, 3),
        ).model_dump()
        for i, u in enumerate(utterances)
    ]
    parts.append("Utterances (return reassignments as a JSON array):")
    parts.append(json.dumps(items, ensure_ascii=False))
    return "\n\n".join(parts)


def _extract_json_array(raw: str) -> Any:
    """Extract JSON from model response (may be wrapped in a markdown code block)."""
    raw = raw.strip()
    if raw.startswith("```"):
        raw = re.sub(r"^```(?:json)?\s*", "", raw)
        raw = re.sub(r"\s*```\s*$", "", raw)
    return json.loads(raw)


def _parse_reassignments(raw_list: list[Any], utterances: Sequence[Utterance]) -> list[SpeakerReassignment]:
    """Keep well-formed items that point at an existing utterance and an existing speaker."""
    known = {u.speaker_label for u in utterances}
    out: list[SpeakerReassignment] = []
    for item in raw_list:
        if not isinstance(item, dict):
            continue
        if "confidence" in item:
            try:
                item = {**item, "confidence": min(1.0, max(0.0, float(item["confidence"])))}
            except (TypeError, ValueError):
                item = {k: v for k, v in item.items() if k != "confidence"}
        try:
            r = SpeakerReassignment.model_validate(item)
        except ValidationError as e:
            logger.debug("Dropping malformed reassignment %r: %s", item, e)
            continue
        if r.index >= len(utterances) or r.speaker_label not in known:
            logger.debug("Dropping out-of-range reassignment %r", item)
            continue
        out.append(r)
    return out


class SpeakerRefiner:
    """Cloudflare Workers AI refiner. Same account and model settings as the rest of the stack."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    async def refine(self, utterances: Sequence[Utterance], context: str | None = None) -> list[SpeakerReassignment]:
        settings = self._settings
        if not settings.REFINEMENT_ENABLED:
            raise RefinementFailed("AI refinement is disabled (REFINEMENT_ENABLED=false)")
        account_id = (settings.CLOUDFLARE_ACCOUNT_ID or "").strip()
        token = (settings.CLOUDFLARE_API_TOKEN or "").strip()
        if not account_id or not token:
            raise RefinementFailed("CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required for refinement")
        if not utterances:
            return []

        url = f"https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{settings.REFINE_CF_MODEL}"
        payload = {
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": _build_user_message(utterances, context)},
            ],
            "max_tokens": settings.REFINE_MAX_TOKENS,
            "temperature": 0.1,
        }
        try:
            async with httpx.AsyncClient(timeout=settings.REFINE_TIMEOUT_SECONDS, transport=self._transport) as client:
                resp = await client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RefinementFailed(f"Workers AI request failed: {e}") from e

        # Workers AI returns { "result": { "response": "..." } } or direct { "response": "..." }
        result = data.get("result", data) if isinstance(data, dict) else data
        if isinstance(result, dict):
            content = result.get("response", "") or ""
        elif isinstance(result, str):
            content = result
        else:
            content = ""
        content = content.strip() if isinstance(content, str) else json.dumps(content)
        if not content:
            raise RefinementFailed("Workers AI returned empty response")

        try:
            raw_list = _extract_json_array(content)
        except json.JSONDecodeError as e:
            raise RefinementFailed("Refinement response was not valid JSON") from e
        if isinstance(raw_list, dict):
            raw_list = [raw_list]
        if not isinstance(raw_list, list):
            raise RefinementFailed("Refinement response was not a JSON array")

        reassignments = _parse_reassignments(raw_list, utterances)
        logger.info("Refinement proposed %d reassignments (%d raw)", len(reassignments), len(raw_list))
        return reassignments


def apply_reassignments(
    result: DiarizationResult,
    reassignments: Sequence[SpeakerReassignment],
    bonus: float = 0.1,
) -> DiarizationResult:
    """New result with reassignments applied, method "ai_refined_<method>" and confidence + bonus (capped)."""
    utterances = list(result.utterances)
    applied: list[dict[str, Any]] = []
    for r in reassignments:
        if 0 <= r.index < len(utterances):
            before = utterances[r.index].speaker_label
            utterances[r.index] = dataclasses.replace(utterances[r.index], speaker_label=r.speaker_label)
            applied.append({"index": r.index, "from": before, **r.model_dump(exclude={"index"})})
    metadata = dict(result.metadata)
    metadata["refinement_reassignments"] = applied
    return DiarizationResult(
        utterances=tuple(utterances),
        confidence=min(1.0, result.confidence + bonus),
        method=REFINED_PREFIX + result.method,
        duration_ms=result.duration_ms,
        metadata=metadata,
    )
