from __future__ import annotations

from collections.abc import Sequence

from viralflow import context_builder, prompts
from viralflow.context_builder import ContextInputs, FeatureKind
from viralflow.errors import InvalidActionError
from viralflow.models import AssetRole, FileAsset, Platform, Role
from viralflow.streaming import AssemblyResult
from viralflow.workflows.base import Workflow

BRIEF = "brief"
DRAFTING = "drafting"

BRIEF_FIELDS = ("platform", "topic", "target_audience", "tone", "duration_seconds", "avoidance")


class ScriptWriter(Workflow):
    feature = "script"
    phases = (BRIEF, DRAFTING)
    session_phases = frozenset({DRAFTING})
    phase_fields = {DRAFTING: (DRAFTING,)}
    asset_roles = frozenset({AssetRole.CONTENT, AssetRole.ATTACHMENT})
    sticky_fields = ("platform",)

    def set_brief(self, **values: str) -> None:
        self._require(BRIEF)
        unknown = sorted(set(values) - set(BRIEF_FIELDS))
        if unknown:
            raise ValueError(f"Unknown script brief field(s): {', '.join(unknown)}")
        if "platform" in values and values["platform"]:
            values["platform"] = Platform(values["platform"]).value
        for name, value in values.items():
            self._set_field(name, str(value).strip())

    def set_reference_links(self, links: Sequence[str]) -> None:
        self._require(BRIEF)
        self._set_field("reference_links", [link.strip() for link in links if link.strip()])

    async def start(self) -> AssemblyResult:
        self._require(BRIEF)
        topic = self.field("topic")
        if not topic:
            raise InvalidActionError("Set a topic before writing the script")

        links = self.field_list("reference_links")
        turn = context_builder.build(
            FeatureKind.SCRIPT_WRITER,
            ContextInputs(
                assets=self._shelf_groups(AssetRole.CONTENT),
                links={AssetRole.CONTENT: links},
                fields={name: self.field(name) for name in BRIEF_FIELDS},
            ),
        )
        await self._open_session(DRAFTING, prompts.SCRIPT_WRITER_PERSONA, (), self._tools(web_search=bool(links)))
        self.transcript(DRAFTING).clear()
        self._set_phase(DRAFTING)
        return await self._exchange(
            DRAFTING, DRAFTING, turn, f"Write a script about: {topic}", self.assets(AssetRole.CONTENT)
        )

    async def revise(self, text: str, attachments: Sequence[FileAsset] = ()) -> AssemblyResult:
        self._require(DRAFTING)
        turn = context_builder.follow_up(text, list(attachments))
        return await self._exchange(DRAFTING, DRAFTING, turn, text, attachments)

    def handoff(self) -> str:
        """The latest complete draft, for the production room."""
        for message in reversed(self.transcript(DRAFTING).messages):
            if message.role is not Role.MODEL or message.error or message.is_streaming:
                continue
            if message.content.strip():
                return message.content
        raise InvalidActionError("There is no finished draft to hand off yet")
