"""Parsing of the JSON answers returned by structured one-shot calls."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Any

from loguru import logger

from viralflow.errors import MalformedStructuredResponseError
from viralflow.models import AuditResult, Citation, TopicResult

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)

_SOURCES_PER_ITEM = 2


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text.strip()


def parse_json(text: str) -> Any:
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        raise MalformedStructuredResponseError("Structured response is empty")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as ex:
        raise MalformedStructuredResponseError(f"Structured response is not JSON: {ex}") from ex


def parse_json_array(text: str) -> list[Any]:
    value = parse_json(text)
    if not isinstance(value, list):
        raise MalformedStructuredResponseError(f"Expected a JSON array, got {type(value).__name__}")
    return value


def _topic_from_dict(item: Any) -> TopicResult:
    if not isinstance(item, dict):
        raise MalformedStructuredResponseError(f"Topic entry is {type(item).__name__}, not an object")
    try:
        return TopicResult(
            title=str(item["title"]),
            description=str(item["description"]),
            relevance_score=float(item.get("relevanceScore", item.get("relevance_score", 0))),
            trending_reason=str(item.get("trendingReason", item.get("trending_reason", ""))),
        )
    except (KeyError, TypeError, ValueError) as ex:
        raise MalformedStructuredResponseError(f"Topic entry is missing or has a bad field: {ex}") from ex


def load_topics(text: str) -> list[TopicResult]:
    """Parse a topic-research answer; anything malformed yields an empty list."""
    try:
        return [_topic_from_dict(item) for item in parse_json_array(text)]
    except MalformedStructuredResponseError as ex:
        logger.warning(f"Discarding topic research response: {ex}")
        return []


def _string_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, list):
        raise MalformedStructuredResponseError(f"Audit field {name!r} must be an array")
    return [str(v) for v in value]


def load_audit(text: str) -> AuditResult | None:
    """Parse a quick-audit answer; anything malformed yields ``None``."""
    try:
        value = parse_json(text)
        if not isinstance(value, dict):
            raise MalformedStructuredResponseError(f"Expected a JSON object, got {type(value).__name__}")
        try:
            score = float(value["score"])
            viral_potential = str(value.get("viralPotential", value.get("viral_potential", "")))
        except (KeyError, TypeError, ValueError) as ex:
            raise MalformedStructuredResponseError(f"Audit is missing or has a bad field: {ex}") from ex
        return AuditResult(
            score=score,
            strengths=_string_list(value.get("strengths", []), "strengths"),
            weaknesses=_string_list(value.get("weaknesses", []), "weaknesses"),
            suggestions=_string_list(value.get("suggestions", []), "suggestions"),
            viral_potential=viral_potential,
        )
    except MalformedStructuredResponseError as ex:
        logger.warning(f"Discarding quick audit response: {ex}")
        return None


def assign_citations(items: Sequence[TopicResult], citations: Sequence[Citation]) -> None:
    """Spread search citations over topics, two per topic, wrapping around.

    The model does not say which source backs which topic, so this is only a
    best-effort attribution.
    """
    if not items or not citations:
        return
    for index, item in enumerate(items):
        start = (index * _SOURCES_PER_ITEM) % len(citations)
        picked = list(citations[start:start + _SOURCES_PER_ITEM])
        if picked:
            item.sources = picked
