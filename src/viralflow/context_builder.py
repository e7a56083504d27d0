from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from viralflow import prompts
from viralflow.errors import AssetNotReadyError
from viralflow.models import AssetRole, FileAsset, MediaPart, MessagePart, TextPart, Turn


class FeatureKind(str, Enum):
    TOPIC_RESEARCH = "topic_research"
    SCRIPT_WRITER = "script_writer"
    CONTENT_AUDIT = "content_audit"
    QUICK_AUDIT = "quick_audit"
    BENCHMARK_ANALYSIS = "benchmark_analysis"
    IMITATION_GUIDE = "imitation_guide"
    FOLLOW_UP = "follow_up"
    FINAL_PLAN = "final_plan"
    ASSET_SYNC = "asset_sync"


# Earlier parts are read as established context, the trailing text as the ask.
ROLE_PRIORITY: tuple[AssetRole, ...] = (
    AssetRole.HISTORY,
    AssetRole.BENCHMARK,
    AssetRole.CONTENT,
    AssetRole.CURRENT,
    AssetRole.ATTACHMENT,
)

_GROUP_HEADINGS: dict[tuple[FeatureKind, AssetRole], str] = {
    (FeatureKind.TOPIC_RESEARCH, AssetRole.BENCHMARK): (
        "[Benchmark style] Study the visual style, editing rhythm and narrative structure of these files; "
        "the topics must suit this format:"
    ),
    (FeatureKind.TOPIC_RESEARCH, AssetRole.CONTENT): (
        "[Content source] Extract the key facts, knowledge and inspiration from these files as the "
        "substance of the topics:"
    ),
    (FeatureKind.CONTENT_AUDIT, AssetRole.HISTORY): (
        "[Previous versions] These are my versions before the latest edits; compare against them to "
        "judge whether I improved:"
    ),
    (FeatureKind.CONTENT_AUDIT, AssetRole.BENCHMARK): (
        "[Benchmark assets] These are the best-in-class examples I want to match; use them as the standard:"
    ),
    (FeatureKind.CONTENT_AUDIT, AssetRole.CURRENT): (
        "[Current version] This is my latest edit; focus the diagnosis on it:"
    ),
    (FeatureKind.ASSET_SYNC, AssetRole.CONTENT): "[Production material] New or updated files for the production:",
}


@dataclass
class ContextInputs:
    assets: dict[AssetRole, list[FileAsset]] = field(default_factory=dict)
    links: dict[AssetRole, list[str]] = field(default_factory=dict)
    fields: dict[str, str] = field(default_factory=dict)
    remarks: list[str] = field(default_factory=list)

    def text(self, name: str, default: str = "") -> str:
        value = self.fields.get(name)
        if value is None:
            return default
        return str(value).strip() or default

    def links_for(self, role: AssetRole) -> list[str]:
        return [link.strip() for link in self.links.get(role, []) if link and link.strip()]

    def count(self, role: AssetRole | None = None) -> int:
        if role is None:
            return sum(len(group) for group in self.assets.values())
        return len(self.assets.get(role, []))


def _topic_research(inputs: ContextInputs) -> str:
    return prompts.topic_research_instruction(
        query=inputs.text("query"),
        domain=inputs.text("domain", "General"),
        platform=inputs.text("platform", "TikTok"),
        batch_index=int(inputs.text("batch_index", "0")),
        content_links=inputs.links_for(AssetRole.CONTENT),
        benchmark_links=inputs.links_for(AssetRole.BENCHMARK),
    )


def _script_writer(inputs: ContextInputs) -> str:
    return prompts.script_writer_instruction(
        platform=inputs.text("platform", "TikTok"),
        topic=inputs.text("topic"),
        target_audience=inputs.text("target_audience", "General audience"),
        tone=inputs.text("tone", "Engaging"),
        duration_seconds=inputs.text("duration_seconds", "60"),
        avoidance=inputs.text("avoidance"),
        reference_links=inputs.links_for(AssetRole.CONTENT),
        attachment_count=inputs.count(),
    )


def _content_audit(inputs: ContextInputs) -> str:
    return prompts.content_audit_instruction(
        context=inputs.text("context"),
        tone=inputs.text("tone", "objective"),
        has_history=inputs.count(AssetRole.HISTORY) > 0,
        has_benchmark=inputs.count(AssetRole.BENCHMARK) > 0,
    )


def _quick_audit(inputs: ContextInputs) -> str:
    return prompts.quick_audit_instruction(
        platform=inputs.text("platform", "TikTok"),
        context=inputs.text("context", "none given"),
    )


def _benchmark_analysis(inputs: ContextInputs) -> str:
    links = inputs.links_for(AssetRole.BENCHMARK)
    return prompts.benchmark_analysis_instruction(url=links[0] if links else "")


def _imitation_guide(inputs: ContextInputs) -> str:
    return prompts.imitation_guide_instruction(
        analysis=inputs.text("analysis"),
        remarks=inputs.remarks,
        idea=inputs.text("idea"),
        asset_count=inputs.count(),
    )


def _follow_up(inputs: ContextInputs) -> str:
    return inputs.text("message")


def _final_plan(inputs: ContextInputs) -> str:
    return prompts.FINAL_PLAN_REQUEST


def _asset_sync(inputs: ContextInputs) -> str:
    return prompts.asset_sync_instruction([a.display_name for group in inputs.assets.values() for a in group])


_INSTRUCTIONS: dict[FeatureKind, Callable[[ContextInputs], str]] = {
    FeatureKind.TOPIC_RESEARCH: _topic_research,
    FeatureKind.SCRIPT_WRITER: _script_writer,
    FeatureKind.CONTENT_AUDIT: _content_audit,
    FeatureKind.QUICK_AUDIT: _quick_audit,
    FeatureKind.BENCHMARK_ANALYSIS: _benchmark_analysis,
    FeatureKind.IMITATION_GUIDE: _imitation_guide,
    FeatureKind.FOLLOW_UP: _follow_up,
    FeatureKind.FINAL_PLAN: _final_plan,
    FeatureKind.ASSET_SYNC: _asset_sync,
}


def build(feature: FeatureKind, inputs: ContextInputs) -> Turn:
    """Assemble one outbound turn.

    Asset groups go out in ``ROLE_PRIORITY`` order whatever order the caller
    supplied them in, and the instruction text is always the last part.
    """
    feature = FeatureKind(feature)
    not_ready = [
        asset.display_name
        for group in inputs.assets.values()
        for asset in group
        if not asset.is_ready
    ]
    if not_ready:
        raise AssetNotReadyError(not_ready)

    parts: list[MessagePart] = []
    for role in ROLE_PRIORITY:
        group = inputs.assets.get(role) or []
        if not group:
            continue
        heading = _GROUP_HEADINGS.get((feature, role))
        if heading:
            parts.append(TextPart(heading))
        for asset in group:
            parts.append(MediaPart(mime_type=asset.mime_type, encoded_payload=asset.encoded_payload or ""))

    instruction = _INSTRUCTIONS[feature](inputs)
    if not instruction.strip():
        raise ValueError(f"{feature.value} turn has no instruction text")
    parts.append(TextPart(instruction))

    logger.debug(
        f"Built {feature.value} turn: {len(parts)} parts, "
        f"{sum(1 for p in parts if isinstance(p, MediaPart))} media"
    )
    return Turn(tuple(parts))


def follow_up(message: str, attachments: list[FileAsset] | None = None) -> Turn:
    return build(
        FeatureKind.FOLLOW_UP,
        ContextInputs(
            assets={AssetRole.ATTACHMENT: list(attachments or [])},
            fields={"message": message},
        ),
    )
