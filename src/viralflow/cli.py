from __future__ import annotations

from collections.abc import Awaitable, Callable

from loguru import logger

from viralflow.commands.router import CommandRouter
from viralflow.console import StreamPrinter
from viralflow.errors import ViralFlowError
from viralflow.ingestion import LocalFileSource
from viralflow.models import AssetRole, FileAsset
from viralflow.streaming import AssemblyResult
from viralflow.workflows import (
    Assistant,
    BenchmarkStudio,
    ContentAudit,
    ScriptWriter,
    TopicResearch,
    VideoProducer,
    Workflow,
)
from viralflow.workflows import benchmark_studio as bench
from viralflow.workflows import content_audit as audit
from viralflow.workflows import script_writer as script
from viralflow.workflows import topic_research as topics
from viralflow.workflows import video_producer as video

StudioOpener = Callable[[str], Workflow]


class StudioShell:
    """Drives one studio from a terminal: plain text goes to the phase's main action."""

    _LINE_PREFIX = "studio> "

    def __init__(self, workflow: Workflow, *, open_studio: StudioOpener | None = None):
        self._workflow = workflow
        self._open_studio = open_studio
        self._printer = StreamPrinter(prefix=self._LINE_PREFIX)
        workflow.add_fragment_listener(self._printer)
        self._router = CommandRouter(
            on_help=self._on_help,
            on_status=self._on_status,
            on_attach=self._on_attach,
            on_next=self._on_next,
            on_back=self._on_back,
            on_reset=self._on_reset,
            on_media=self._on_media,
            on_plan=self._on_plan,
            on_produce=self._on_produce,
            on_quick=self._on_quick,
            on_unknown=self._on_unknown_command,
        )

    @property
    def workflow(self) -> Workflow:
        return self._workflow

    def _say(self, text: str) -> None:
        print(f"{self._LINE_PREFIX}{text}")

    async def handle(self, user_input: str) -> None:
        try:
            if await self._router.try_handle(user_input):
                return
            await self._on_text(user_input.strip())
        except ViralFlowError as ex:
            self._say(f"{ex.kind}: {ex}")
        except ValueError as ex:
            self._say(str(ex))

    # --- streaming ---

    async def _stream(self, call: Callable[[], Awaitable[AssemblyResult]]) -> AssemblyResult:
        self._printer.begin()
        try:
            result = await call()
        finally:
            self._printer.end()
        if result.error is not None:
            self._say(f"(reply interrupted: {result.error})")
        return result

    def _attachments(self) -> list[FileAsset]:
        return self._workflow.take_attachments()

    # --- plain text ---

    async def _on_text(self, text: str) -> None:
        wf = self._workflow
        phase = wf.phase

        if isinstance(wf, Assistant):
            await self._stream(lambda: wf.chat(text, self._attachments()))
        elif isinstance(wf, BenchmarkStudio):
            if phase == bench.INPUT:
                wf.set_reference(text)
                self._say("Reference link set. /attach a video if you have one, then /next to analyze.")
            elif phase == bench.INTERACTIVE_ANALYSIS:
                await self._stream(lambda: wf.discuss(text, self._attachments()))
            elif phase == bench.USER_BRIEF:
                wf.set_idea(text)
                self._say("Idea saved. /attach your material, then /next for the production guide.")
            else:
                await self._stream(lambda: wf.ask(text, self._attachments()))
        elif isinstance(wf, ContentAudit):
            if phase == audit.INPUT:
                wf.set_context(text)
                self._say("Context saved. /attach <path> [history|benchmark|current], then /next.")
            elif phase == audit.REVIEW:
                await self._stream(lambda: wf.follow_up(text, self._attachments()))
            else:
                self._say("The plan is final. /reset to start a new audit.")
        elif isinstance(wf, ScriptWriter):
            if phase == script.BRIEF:
                wf.set_brief(topic=text)
                self._say("Topic set. /next to write the script.")
            else:
                await self._stream(lambda: wf.revise(text, self._attachments()))
        elif isinstance(wf, VideoProducer):
            if phase == video.SETUP:
                wf.set_script(text)
                self._say("Script set. /attach your material, then /next to open the production room.")
            else:
                await self._stream(lambda: wf.chat(text, self._attachments()))
        elif isinstance(wf, TopicResearch):
            if phase == topics.RESULTS and text.isdigit():
                await wf.refine(int(text) - 1)
                self._say(wf.transcript(topics.REFINING).messages[-1].content)
            elif phase in (topics.QUERY, topics.RESULTS):
                wf.set_query(text)
                self._say("Direction set. /next to research topics.")
            else:
                await self._stream(lambda: wf.discuss(text, self._attachments()))

    # --- commands ---

    async def _on_help(self) -> None:
        self._say("Available commands:")
        self._say("- /help")
        self._say("- /status")
        self._say("- /attach <path> [role]   roles: history, benchmark, content, current, attachment")
        self._say("- /next                   run the current phase's main step")
        self._say("- /back                   return to the previous phase")
        self._say("- /reset                  start over")
        if isinstance(self._workflow, (BenchmarkStudio, VideoProducer)):
            self._say("- /image <prompt>, /video <prompt>   generate a storyboard image or a clip")
        if isinstance(self._workflow, ScriptWriter):
            self._say("- /produce                take the latest draft to the video production room")
        if isinstance(self._workflow, VideoProducer):
            self._say("- /quick copywriting|sound   polish the voice-over or plan sound and music")
            self._say("- /attach <path> content  add production material; synced into the running session")
        if isinstance(self._workflow, ContentAudit):
            self._say("- /plan                   request the final plan")

    async def _on_status(self) -> None:
        wf = self._workflow
        self._say(f"Studio: {wf.feature}, phase: {wf.phase}")
        for role in AssetRole:
            names = [a.display_name for a in wf.assets(role)]
            if names:
                self._say(f"  {role.value}: {', '.join(names)}")
        for key, value in wf.persisted_fields().items():
            if key.startswith("transcript."):
                self._say(f"  {key}: {len(value)} message(s)")
            elif isinstance(value, list):
                self._say(f"  {key}: {len(value)} item(s)")
            else:
                self._say(f"  {key}: {value[:60]}")
        if isinstance(wf, TopicResearch):
            for index, topic in enumerate(wf.topics, start=1):
                self._say(f"  {index}. {topic.title} ({topic.relevance_score:.0f}%)")

    def _default_role(self) -> AssetRole:
        wf = self._workflow
        if isinstance(wf, BenchmarkStudio):
            return {bench.INPUT: AssetRole.BENCHMARK, bench.USER_BRIEF: AssetRole.CONTENT}.get(
                wf.phase, AssetRole.ATTACHMENT
            )
        if isinstance(wf, ContentAudit) and wf.phase == audit.INPUT:
            return AssetRole.CURRENT
        if isinstance(wf, ScriptWriter) and wf.phase == script.BRIEF:
            return AssetRole.CONTENT
        if isinstance(wf, TopicResearch) and wf.phase != topics.REFINING:
            return AssetRole.CONTENT
        if isinstance(wf, VideoProducer):
            return AssetRole.CONTENT if wf.phase == video.SETUP else AssetRole.ATTACHMENT
        return AssetRole.ATTACHMENT

    async def _on_attach(self, argument: str) -> None:
        if not argument:
            self._say("Usage: /attach <path> [role]")
            return
        path, _, role_name = argument.rpartition(" ")
        role = _parse_role(role_name) if path else None
        if role is None:
            path, role = argument, self._default_role()

        def _progress(asset: FileAsset) -> None:
            logger.debug(f"{asset.display_name}: {asset.status.value} {asset.progress_percent}%")

        try:
            source = LocalFileSource(path)
        except OSError as ex:
            self._say(f"Cannot read {path}: {ex.strerror or ex}")
            return
        batch = await self._workflow.attach(role, [source], on_progress=_progress)
        for asset in batch.ready:
            self._say(f"Attached {asset.display_name} as {role.value} ({asset.mime_type}, {asset.byte_size:,} bytes)")
            if not self._workflow.provider_can_read(asset.mime_type):
                self._say(
                    f"Warning: this provider cannot read {asset.mime_type}; "
                    f"{asset.display_name} will be sent as a placeholder note"
                )
        for warning in batch.warnings:
            self._say(f"Not attached: {warning}")
        wf = self._workflow
        synced = role is AssetRole.CONTENT and batch.ready
        if synced and isinstance(wf, VideoProducer) and wf.phase == video.PRODUCTION:
            self._say(wf.transcript(video.PRODUCTION).messages[-1].content)

    async def _on_next(self) -> None:
        wf = self._workflow
        if isinstance(wf, BenchmarkStudio):
            if wf.phase == bench.INPUT:
                self._printer.begin()
                try:
                    analysis = await wf.analyze()
                finally:
                    self._printer.end()
                self._say(analysis)
            elif wf.phase == bench.INTERACTIVE_ANALYSIS:
                wf.proceed_to_brief()
                self._say("Describe your idea, /attach your material, then /next.")
            elif wf.phase == bench.USER_BRIEF:
                await self._stream(wf.start_guide)
            else:
                self._say("This is the last step. /image or /video to generate media, /reset to start over.")
        elif isinstance(wf, ContentAudit):
            if wf.phase == audit.INPUT:
                await self._stream(wf.start_review)
            else:
                await self._on_plan()
        elif isinstance(wf, ScriptWriter):
            if wf.phase == script.BRIEF:
                await self._stream(wf.start)
            else:
                self._say("Type what to change in the draft.")
        elif isinstance(wf, VideoProducer):
            if wf.phase == video.SETUP:
                greeting = await wf.start()
                self._say(greeting.content)
                if len(wf.transcript(video.PRODUCTION)) > 1:
                    self._say(wf.transcript(video.PRODUCTION).messages[-1].content)
            else:
                self._say("Type a request, /image or /video to generate, /quick for shortcuts.")
        elif isinstance(wf, TopicResearch):
            if wf.phase == topics.REFINING:
                self._say("Use /back to return to the topic list.")
                return
            self._printer.begin()
            try:
                found = await wf.research()
            finally:
                self._printer.end()
            if not found:
                self._say("No usable topics came back. Try again or rephrase.")
            await self._on_status()
        else:
            self._say("The assistant has a single step; just type.")

    async def _on_back(self) -> None:
        phase = self._workflow.go_back()
        self._say(f"Back to {phase}.")

    async def _on_reset(self) -> None:
        self._workflow.reset()
        self._say(f"Reset. Phase: {self._workflow.phase}")

    async def _on_media(self, kind: str, prompt: str) -> None:
        wf = self._workflow
        if not isinstance(wf, (BenchmarkStudio, VideoProducer)):
            self._say(f"/{kind} is only available in the benchmark and video studios")
            return
        message = await wf.generate_media(kind, prompt)
        if message.generated_media is not None:
            self._say(f"{kind} ready: {message.generated_media.uri[:120]}")
        else:
            self._say(message.content)

    async def _on_plan(self) -> None:
        wf = self._workflow
        if not isinstance(wf, ContentAudit):
            self._say("/plan is only available in the audit studio")
            return
        if wf.phase == audit.PLAN:
            self._say(wf.final_plan)
            return
        await self._stream(wf.request_final_plan)

    async def _on_produce(self) -> None:
        wf = self._workflow
        if not isinstance(wf, ScriptWriter):
            self._say("/produce is only available in the script studio")
            return
        if self._open_studio is None:
            self._say("The video studio cannot be opened from here")
            return
        draft = wf.handoff()
        producer = self._open_studio(VideoProducer.feature)
        if not isinstance(producer, VideoProducer):
            raise TypeError(f"Expected the video studio, got {type(producer).__name__}")
        if producer.phase != video.SETUP:
            producer.reset()
        producer.set_script(draft)
        self._switch(producer)
        self._say("Draft handed to the video studio. /attach material, then /next to open the production room.")

    async def _on_quick(self, name: str) -> None:
        wf = self._workflow
        if not isinstance(wf, VideoProducer):
            self._say("/quick is only available in the video studio")
            return
        await self._stream(lambda: wf.quick_action(name.strip().lower()))

    def _switch(self, workflow: Workflow) -> None:
        logger.info(f"Switching studio: {self._workflow.feature} -> {workflow.feature}")
        self._workflow = workflow
        workflow.add_fragment_listener(self._printer)

    def _on_unknown_command(self, trimmed: str) -> None:
        self._say(f"Unknown local command: {trimmed}")


def _parse_role(name: str) -> AssetRole | None:
    lowered = name.strip().lower()
    for role in AssetRole:
        if lowered in (role.value, role.value.split("_")[0]):
            return role
    return None
