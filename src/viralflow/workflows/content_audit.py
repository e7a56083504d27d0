from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from viralflow import context_builder, prompts, structured
from viralflow.context_builder import ContextInputs, FeatureKind
from viralflow.errors import InvalidActionError
from viralflow.models import AssetRole, AuditResult, AuditTone, FileAsset, Platform
from viralflow.streaming import AssemblyResult
from viralflow.workflows.base import Workflow

INPUT = "input"
REVIEW = "review"
PLAN = "plan"


class ContentAudit(Workflow):
    feature = "audit"
    phases = (INPUT, REVIEW, PLAN)
    session_phases = frozenset({REVIEW})
    required_fields = {PLAN: ("final_plan",)}
    phase_fields = {REVIEW: (REVIEW,), PLAN: ("final_plan",)}
    asset_roles = frozenset({AssetRole.HISTORY, AssetRole.BENCHMARK, AssetRole.CURRENT, AssetRole.ATTACHMENT})
    sticky_fields = ("tone", "platform")

    @property
    def tone(self) -> AuditTone:
        return AuditTone(self.field("tone", AuditTone.OBJECTIVE.value))

    def set_tone(self, tone: AuditTone | str) -> None:
        # Persona is fixed once the review session is open.
        self._require(INPUT)
        self._set_field("tone", AuditTone(tone).value)

    def set_context(self, context: str) -> None:
        self._require(INPUT)
        self._set_field("context", context.strip())

    def set_platform(self, platform: Platform | str) -> None:
        self._set_field("platform", Platform(platform).value)

    async def start_review(self) -> AssemblyResult:
        self._require(INPUT)
        if not self.assets(AssetRole.CURRENT):
            raise InvalidActionError("Upload the current version of your video first")

        tone = self.tone
        turn = context_builder.build(
            FeatureKind.CONTENT_AUDIT,
            ContextInputs(
                assets=self._shelf_groups(AssetRole.HISTORY, AssetRole.BENCHMARK, AssetRole.CURRENT),
                fields={"context": self.field("context"), "tone": tone.value},
            ),
        )
        await self._open_session(REVIEW, prompts.render_audit_persona(tone), (), self._tools(web_search=False))
        self.transcript(REVIEW).clear()
        self._set_phase(REVIEW)

        attached = (
            self.assets(AssetRole.HISTORY) + self.assets(AssetRole.BENCHMARK) + self.assets(AssetRole.CURRENT)
        )
        display = self.field("context") or f"Review my video ({tone.value})."
        return await self._exchange(REVIEW, REVIEW, turn, display, attached)

    async def follow_up(self, text: str, attachments: Sequence[FileAsset] = ()) -> AssemblyResult:
        self._require(REVIEW)
        turn = context_builder.follow_up(text, list(attachments))
        return await self._exchange(REVIEW, REVIEW, turn, text, attachments)

    async def request_final_plan(self) -> AssemblyResult:
        """Stream the final plan through the review session and move to the read-only plan."""
        self._require(REVIEW)
        turn = context_builder.build(FeatureKind.FINAL_PLAN, ContextInputs())
        result = await self._exchange(REVIEW, REVIEW, turn, "Write the final plan.")
        if result.ok and result.message.content.strip():
            self._fields["final_plan"] = result.message.content
            self._set_phase(PLAN)
        else:
            logger.warning("Final plan was not produced; staying in review")
        return result

    @property
    def final_plan(self) -> str:
        return self.field("final_plan")

    async def quick_audit(self, asset: FileAsset | None = None) -> AuditResult | None:
        """One-shot structured score of a single draft; ``None`` when the answer is unusable."""
        if asset is None:
            current = self.assets(AssetRole.CURRENT)
            if not current:
                raise InvalidActionError("Upload the video to audit first")
            asset = current[-1]
        turn = context_builder.build(
            FeatureKind.QUICK_AUDIT,
            ContextInputs(
                assets={AssetRole.CURRENT: [asset]},
                fields={
                    "context": self.field("context"),
                    "platform": self.field("platform", Platform.TIKTOK.value),
                },
            ),
        )
        completion = await self._complete(prompts.QUICK_AUDIT_SYSTEM, turn, expect_json=True)
        result = structured.load_audit(completion.text)
        if result is not None:
            logger.info(f"Quick audit of {asset.display_name}: score={result.score}, potential={result.viral_potential}")
        return result
