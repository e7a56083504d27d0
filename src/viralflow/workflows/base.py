from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Sequence
from typing import ClassVar

from loguru import logger

from viralflow.errors import CompletionFailedError, InvalidActionError
from viralflow.ingestion import FileSource, IngestionBatch, IngestionPipeline, ProgressCallback
from viralflow.models import AssetRole, Completion, FileAsset, Message, Turn, WorkflowState
from viralflow.provider import TOOL_WEB_SEARCH, SessionProvider
from viralflow.session import ConversationalSession
from viralflow.streaming import AssemblyResult, assemble_stream
from viralflow.transcript import Transcript

FieldValue = str | list[str]

TRANSCRIPT_PREFIX = "transcript."

MEDIA_KINDS = ("image", "video")

ChangeListener = Callable[["Workflow"], None]
FragmentListener = Callable[[str], None]


class Workflow:
    """Phase machine shared by every studio.

    A workflow owns its sessions, asset shelf, transcripts and persisted
    fields. Nothing here is global: two workflows never share a session.
    """

    feature: ClassVar[str] = ""
    phases: ClassVar[tuple[str, ...]] = ()
    # Phases that cannot exist without a live provider session.
    session_phases: ClassVar[frozenset[str]] = frozenset()
    # Fields that must be present to be in a phase.
    required_fields: ClassVar[dict[str, tuple[str, ...]]] = {}
    # Fields and transcripts created on entering a phase; dropped when leaving it backwards.
    phase_fields: ClassVar[dict[str, tuple[str, ...]]] = {}
    asset_roles: ClassVar[frozenset[AssetRole]] = frozenset({AssetRole.ATTACHMENT})
    # Fields that survive reset.
    sticky_fields: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        provider: SessionProvider,
        *,
        pipeline: IngestionPipeline | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._provider = provider
        self._pipeline = pipeline or IngestionPipeline()
        self._clock = clock
        self._phase = self.initial_phase()
        self._fields: dict[str, FieldValue] = {}
        self._sessions: dict[str, ConversationalSession] = {}
        self._transcripts: dict[str, Transcript] = {}
        self._shelf: dict[AssetRole, list[FileAsset]] = {}
        self._listeners: list[ChangeListener] = []
        self._fragment_listeners: list[FragmentListener] = []
        self._turn_lock = asyncio.Lock()

    # --- phase machine -------------------------------------------------------

    @classmethod
    def initial_phase(cls) -> str:
        return cls.phases[0]

    @classmethod
    def resolve_phase(cls, phase: str, fields: dict[str, FieldValue]) -> str:
        """Nearest phase at or before ``phase`` that needs no live session and has its fields."""
        if phase not in cls.phases:
            return cls.initial_phase()
        for candidate in reversed(cls.phases[: cls.phases.index(phase) + 1]):
            if candidate in cls.session_phases:
                continue
            if all(fields.get(name) for name in cls.required_fields.get(candidate, ())):
                return candidate
        return cls.initial_phase()

    @property
    def phase(self) -> str:
        return self._phase

    @property
    def sessions(self) -> dict[str, ConversationalSession]:
        return dict(self._sessions)

    def _require(self, *phases: str) -> None:
        if self._phase not in phases:
            raise InvalidActionError(
                f"{self.feature}: not available in phase {self._phase!r} (needs {', '.join(phases)})"
            )

    def _set_phase(self, phase: str) -> None:
        if phase == self._phase:
            return
        logger.info(f"{self.feature}: {self._phase} -> {phase}")
        self._phase = phase
        self._changed()

    def reset(self) -> None:
        """Back to the first phase with no sessions, assets or phase-local state."""
        self._drop_sessions(list(self._sessions))
        self._fields = {k: v for k, v in self._fields.items() if k in self.sticky_fields}
        self._transcripts.clear()
        self._shelf.clear()
        logger.info(f"{self.feature}: reset")
        self._phase = self.initial_phase()
        self._on_reset()
        self._changed()

    def _on_reset(self) -> None:
        pass

    def go_back(self) -> str:
        """Return to the previous usable phase, discarding state created after it."""
        index = self.phases.index(self._phase)
        if index == 0:
            raise InvalidActionError(f"{self.feature}: already at the first phase")
        target = self.initial_phase()
        for candidate in reversed(self.phases[:index]):
            if candidate not in self.session_phases or candidate in self._sessions:
                target = candidate
                break
        for later in self.phases[self.phases.index(target) + 1:]:
            self._drop_phase_state(later)
        self._set_phase(target)
        return target

    def _drop_phase_state(self, phase: str) -> None:
        self._drop_sessions([phase])
        for name in self.phase_fields.get(phase, ()):
            self._fields.pop(name, None)
            self._transcripts.pop(name, None)

    # --- state -----------------------------------------------------------------

    def persisted_fields(self) -> dict[str, FieldValue]:
        out: dict[str, FieldValue] = {
            k: (list(v) if isinstance(v, list) else v) for k, v in self._fields.items()
        }
        for name, transcript in self._transcripts.items():
            if len(transcript):
                out[TRANSCRIPT_PREFIX + name] = transcript.to_records()
        return out

    def state(self) -> WorkflowState:
        return WorkflowState(feature=self.feature, phase=self._phase, persisted_fields=self.persisted_fields())

    def apply_state(self, state: WorkflowState) -> None:
        if state.feature != self.feature:
            raise ValueError(f"State for {state.feature!r} cannot be applied to {self.feature!r}")
        self._drop_sessions(list(self._sessions))
        self._fields = {}
        self._transcripts = {}
        for key, value in state.persisted_fields.items():
            if key.startswith(TRANSCRIPT_PREFIX) and isinstance(value, list):
                name = key[len(TRANSCRIPT_PREFIX):]
                self._transcripts[name] = Transcript.from_records(value, clock=self._clock)
            else:
                self._fields[key] = list(value) if isinstance(value, list) else value
        for transcript in self._transcripts.values():
            transcript.set_listener(self._changed)
        self._phase = self.resolve_phase(state.phase, self._fields)
        logger.info(f"{self.feature}: restored phase {self._phase!r} (saved {state.phase!r})")
        self._on_restored()
        self._changed()

    def _on_restored(self) -> None:
        pass

    def field(self, name: str, default: str = "") -> str:
        value = self._fields.get(name)
        return value if isinstance(value, str) and value else default

    def field_list(self, name: str) -> list[str]:
        value = self._fields.get(name)
        return list(value) if isinstance(value, list) else []

    def _set_field(self, name: str, value: FieldValue | None) -> None:
        if value is None or value == "" or value == []:
            self._fields.pop(name, None)
        else:
            self._fields[name] = list(value) if isinstance(value, list) else str(value)
        self._changed()

    def transcript(self, name: str) -> Transcript:
        transcript = self._transcripts.get(name)
        if transcript is None:
            transcript = Transcript(clock=self._clock, on_change=self._changed)
            self._transcripts[name] = transcript
        return transcript

    # --- listeners ---------------------------------------------------------------

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def add_fragment_listener(self, listener: FragmentListener) -> None:
        self._fragment_listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # --- assets --------------------------------------------------------------------

    def assets(self, role: AssetRole) -> list[FileAsset]:
        return list(self._shelf.get(role, []))

    async def attach(
        self,
        role: AssetRole,
        sources: Sequence[FileSource],
        on_progress: ProgressCallback | None = None,
    ) -> IngestionBatch:
        role = AssetRole(role)
        if role not in self.asset_roles:
            raise InvalidActionError(f"{self.feature}: files cannot be attached as {role.value}")
        batch = await self._pipeline.add_files(sources, on_progress=on_progress)
        if batch.ready:
            self._shelf.setdefault(role, []).extend(batch.ready)
            logger.info(f"{self.feature}: {len(batch.ready)} file(s) ready as {role.value}")
        for warning in batch.warnings:
            logger.warning(f"{self.feature}: {warning}")
        return batch

    def provider_can_read(self, mime_type: str) -> bool:
        return self._provider.supports_media(mime_type)

    def detach(self, role: AssetRole, asset_id: str) -> bool:
        group = self._shelf.get(AssetRole(role), [])
        for index, asset in enumerate(group):
            if asset.id == asset_id:
                del group[index]
                return True
        return False

    def take_attachments(self) -> list[FileAsset]:
        """Hand over the pending chat attachments; they go out with the next message only."""
        return self._shelf.pop(AssetRole.ATTACHMENT, [])

    def _shelf_groups(self, *roles: AssetRole) -> dict[AssetRole, list[FileAsset]]:
        return {role: list(self._shelf[role]) for role in roles if self._shelf.get(role)}

    # --- remote calls ----------------------------------------------------------------

    def _tools(self, *, web_search: bool = True) -> frozenset[str]:
        if web_search and self._provider.supports_search_grounding:
            return frozenset({TOOL_WEB_SEARCH})
        return frozenset()

    async def _open_session(
        self,
        key: str,
        persona: str,
        seed_history: Sequence = (),
        tools: Iterable[str] = (),
    ) -> ConversationalSession:
        session = await ConversationalSession.open(self._provider, persona, seed_history, tools)
        self._drop_sessions([key])
        self._sessions[key] = session
        return session

    def _drop_sessions(self, keys: Iterable[str]) -> None:
        for key in keys:
            session = self._sessions.pop(key, None)
            if session is not None:
                session.close()

    async def _complete(
        self,
        system_prompt: str,
        turn: Turn,
        *,
        search_grounding: bool = False,
        expect_json: bool = False,
    ) -> Completion:
        grounding = search_grounding and self._provider.supports_search_grounding
        try:
            completion = await self._provider.complete(
                system_prompt, turn, search_grounding=grounding, expect_json=expect_json
            )
        except Exception as ex:
            logger.warning(f"{self.feature}: one-shot call failed: {type(ex).__name__}: {ex}")
            raise CompletionFailedError(str(ex) or type(ex).__name__) from ex
        if not completion.text.strip():
            raise CompletionFailedError("The model returned an empty response")
        return completion

    async def _exchange(
        self,
        session_key: str,
        transcript_name: str,
        turn: Turn,
        display_text: str,
        attachments: Sequence[FileAsset] = (),
    ) -> AssemblyResult:
        session = self._sessions.get(session_key)
        if session is None or not session.is_open:
            raise InvalidActionError(f"{self.feature}: no live session for {session_key!r}")
        async with self._turn_lock:
            transcript = self.transcript(transcript_name)
            transcript.add_user(display_text, [a.display_name for a in attachments])
            buffer = transcript.begin_model()
            return await assemble_stream(self._tap(session.send(turn)), buffer)

    async def _generate_media(self, transcript_name: str, kind: str, prompt: str) -> Message:
        """Generate an image or clip into a transcript.

        A failed generation is recorded on its message and does not raise.
        """
        if kind not in MEDIA_KINDS:
            raise ValueError(f"Unknown media kind {kind!r}; expected one of {', '.join(MEDIA_KINDS)}")
        if not prompt.strip():
            raise InvalidActionError("Describe what to generate")

        async with self._turn_lock:
            transcript = self.transcript(transcript_name)
            transcript.add_user(f"Generate {kind}: {prompt}")
            placeholder = transcript.begin_media(kind, prompt)
            try:
                if kind == "image":
                    media = await self._provider.generate_image(prompt)
                else:
                    media = await self._provider.generate_video(prompt)
            except Exception as ex:
                logger.warning(f"{self.feature}: {kind} generation failed: {type(ex).__name__}: {ex}")
                return transcript.fail_media(placeholder.id, ex)
            logger.info(f"{self.feature}: generated {kind}: {media.uri[:80]}")
            return transcript.complete_media(placeholder.id, media)

    async def _tap(self, stream):
        async for fragment in stream:
            for listener in self._fragment_listeners:
                listener(fragment)
            yield fragment
