from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from viralflow import context_builder, prompts
from viralflow.context_builder import ContextInputs, FeatureKind
from viralflow.errors import InvalidActionError
from viralflow.ingestion import FileSource, IngestionBatch, ProgressCallback
from viralflow.models import AssetRole, FileAsset, Message
from viralflow.streaming import AssemblyResult, MessageBuffer, assemble_stream
from viralflow.workflows.base import Workflow

SETUP = "setup"
PRODUCTION = "production"


class VideoProducer(Workflow):
    """Production room for a finished script: storyboards, clips, copy and sound.

    Material attached during production is synced into the live conversation
    with a silent turn, so the model always works from the latest files.
    """

    feature = "video"
    phases = (SETUP, PRODUCTION)
    session_phases = frozenset({PRODUCTION})
    phase_fields = {PRODUCTION: (PRODUCTION,)}
    asset_roles = frozenset({AssetRole.CONTENT, AssetRole.ATTACHMENT})

    @property
    def script(self) -> str:
        return self.field("script")

    def set_script(self, script: str) -> None:
        self._require(SETUP)
        self._set_field("script", script.strip())

    async def start(self) -> Message:
        """Open the production session seeded with the script and greet the user."""
        self._require(SETUP)
        script = self.script
        material = self.assets(AssetRole.CONTENT)

        await self._open_session(
            PRODUCTION,
            prompts.VIDEO_PRODUCER_PERSONA,
            prompts.video_production_seed(script),
            self._tools(),
        )
        transcript = self.transcript(PRODUCTION)
        transcript.clear()
        self._set_phase(PRODUCTION)
        greeting = transcript.add_model(prompts.video_producer_greeting(has_material=bool(script or material)))
        if material:
            await self._sync(material)
        return greeting

    async def attach(
        self,
        role: AssetRole,
        sources: Sequence[FileSource],
        on_progress: ProgressCallback | None = None,
    ) -> IngestionBatch:
        batch = await super().attach(role, sources, on_progress)
        if self._phase == PRODUCTION and AssetRole(role) is AssetRole.CONTENT and batch.ready:
            await self._sync(batch.ready)
        return batch

    async def _sync(self, assets: Sequence[FileAsset]) -> AssemblyResult:
        session = self._sessions.get(PRODUCTION)
        if session is None or not session.is_open:
            raise InvalidActionError(f"{self.feature}: no live session to sync material into")
        turn = context_builder.build(
            FeatureKind.ASSET_SYNC,
            ContextInputs(assets={AssetRole.CONTENT: list(assets)}),
        )
        async with self._turn_lock:
            # The acknowledgement is drained but never shown; the transcript gets a short note instead.
            result = await assemble_stream(session.send(turn), MessageBuffer())
            transcript = self.transcript(PRODUCTION)
            if result.ok:
                logger.info(f"{self.feature}: synced {len(assets)} file(s) into the session")
                transcript.add_model(prompts.asset_sync_note(len(assets)))
            else:
                transcript.add_model(prompts.asset_sync_failed_note(len(assets), result.error))
        return result

    async def chat(self, text: str, attachments: Sequence[FileAsset] = ()) -> AssemblyResult:
        self._require(PRODUCTION)
        turn = context_builder.follow_up(text, list(attachments))
        return await self._exchange(PRODUCTION, PRODUCTION, turn, text, attachments)

    async def quick_action(self, name: str) -> AssemblyResult:
        request = prompts.VIDEO_QUICK_ACTIONS.get(name)
        if request is None:
            raise ValueError(
                f"Unknown quick action {name!r}; expected one of {', '.join(prompts.VIDEO_QUICK_ACTIONS)}"
            )
        return await self.chat(request)

    async def generate_media(self, kind: str, prompt: str) -> Message:
        self._require(PRODUCTION)
        return await self._generate_media(PRODUCTION, kind, prompt)
