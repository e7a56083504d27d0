from __future__ import annotations

from collections.abc import Sequence

from viralflow import context_builder, prompts
from viralflow.context_builder import ContextInputs, FeatureKind
from viralflow.errors import InvalidActionError
from viralflow.models import AssetRole, FileAsset, Message
from viralflow.streaming import AssemblyResult
from viralflow.workflows.base import Workflow

INPUT = "input"
INTERACTIVE_ANALYSIS = "interactive_analysis"
USER_BRIEF = "user_brief"
IMITATION_GUIDE = "imitation_guide"


class BenchmarkStudio(Workflow):
    """Study a benchmark video, talk it through, then get a guide to make your own."""

    feature = "benchmark"
    phases = (INPUT, INTERACTIVE_ANALYSIS, USER_BRIEF, IMITATION_GUIDE)
    session_phases = frozenset({INTERACTIVE_ANALYSIS, IMITATION_GUIDE})
    required_fields = {USER_BRIEF: ("analysis",)}
    phase_fields = {
        INTERACTIVE_ANALYSIS: ("analysis", "analysis_sources", INTERACTIVE_ANALYSIS),
        USER_BRIEF: (),
        IMITATION_GUIDE: (IMITATION_GUIDE,),
    }
    asset_roles = frozenset({AssetRole.BENCHMARK, AssetRole.CONTENT, AssetRole.ATTACHMENT})

    @property
    def analysis(self) -> str:
        return self.field("analysis")

    # --- input ---

    def set_reference(self, url: str) -> None:
        self._require(INPUT)
        self._set_field("ref_url", url.strip())

    async def analyze(self) -> str:
        """Run the one-shot teardown and open the discussion session on it.

        The phase only advances when both succeed.
        """
        self._require(INPUT)
        ref_url = self.field("ref_url")
        reference_files = self.assets(AssetRole.BENCHMARK)
        if not ref_url and not reference_files:
            raise InvalidActionError("Provide a reference link or upload the benchmark video first")

        turn = context_builder.build(
            FeatureKind.BENCHMARK_ANALYSIS,
            ContextInputs(
                assets=self._shelf_groups(AssetRole.BENCHMARK),
                links={AssetRole.BENCHMARK: [ref_url]} if ref_url else {},
            ),
        )
        completion = await self._complete(prompts.BENCHMARK_ANALYSIS_SYSTEM, turn, search_grounding=bool(ref_url))

        await self._open_session(
            INTERACTIVE_ANALYSIS,
            prompts.BENCHMARK_DISCUSSION_PERSONA,
            prompts.benchmark_discussion_seed(completion.text),
            self._tools(),
        )

        self._fields["analysis"] = completion.text
        if completion.citations:
            self._fields["analysis_sources"] = [c.url for c in completion.citations]
        transcript = self.transcript(INTERACTIVE_ANALYSIS)
        transcript.clear()
        transcript.add_model(completion.text)
        self._set_phase(INTERACTIVE_ANALYSIS)
        return completion.text

    # --- interactive analysis ---

    async def discuss(self, text: str, attachments: Sequence[FileAsset] = ()) -> AssemblyResult:
        self._require(INTERACTIVE_ANALYSIS)
        turn = context_builder.follow_up(text, list(attachments))
        return await self._exchange(INTERACTIVE_ANALYSIS, INTERACTIVE_ANALYSIS, turn, text, attachments)

    def proceed_to_brief(self) -> None:
        self._require(INTERACTIVE_ANALYSIS)
        self._set_phase(USER_BRIEF)

    def remarks(self) -> list[str]:
        return [m.content for m in self.transcript(INTERACTIVE_ANALYSIS).user_messages() if m.content.strip()]

    # --- user brief ---

    def set_idea(self, idea: str) -> None:
        self._require(USER_BRIEF)
        self._set_field("idea", idea.strip())

    async def start_guide(self) -> AssemblyResult:
        """Open the guide session; its first turn carries the teardown and the user's remarks."""
        self._require(USER_BRIEF)
        analysis = self.analysis
        if not analysis:
            raise InvalidActionError("There is no benchmark analysis to build on")
        idea = self.field("idea")
        turn = context_builder.build(
            FeatureKind.IMITATION_GUIDE,
            ContextInputs(
                assets=self._shelf_groups(AssetRole.CONTENT),
                fields={"analysis": analysis, "idea": idea},
                remarks=self.remarks(),
            ),
        )

        await self._open_session(IMITATION_GUIDE, prompts.IMITATION_GUIDE_PERSONA, (), self._tools())
        self.transcript(IMITATION_GUIDE).clear()
        self._set_phase(IMITATION_GUIDE)

        display = idea or "Write my production guide."
        return await self._exchange(
            IMITATION_GUIDE, IMITATION_GUIDE, turn, display, self.assets(AssetRole.CONTENT)
        )

    # --- imitation guide ---

    async def ask(self, text: str, attachments: Sequence[FileAsset] = ()) -> AssemblyResult:
        self._require(IMITATION_GUIDE)
        turn = context_builder.follow_up(text, list(attachments))
        return await self._exchange(IMITATION_GUIDE, IMITATION_GUIDE, turn, text, attachments)

    async def generate_media(self, kind: str, prompt: str) -> Message:
        """Generate a storyboard image or clip into the guide transcript."""
        self._require(IMITATION_GUIDE)
        return await self._generate_media(IMITATION_GUIDE, kind, prompt)
