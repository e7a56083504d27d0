from __future__ import annotations

import json
from typing import Any

from loguru import logger

from viralflow.models import WorkflowState
from viralflow.persistence.store import KeyValueStore
from viralflow.transcript import Transcript
from viralflow.workflows.base import TRANSCRIPT_PREFIX, Workflow

SNAPSHOT_VERSION = 1
KEY_PREFIX = "viralflow.workflow."


def _valid_fields(fields: Any) -> bool:
    if not isinstance(fields, dict):
        return False
    for key, value in fields.items():
        if not isinstance(key, str):
            return False
        if isinstance(value, list):
            if not all(isinstance(item, str) for item in value):
                return False
        elif not isinstance(value, str):
            return False
    return True


def _check_transcripts(fields: dict) -> None:
    for key, value in fields.items():
        if not key.startswith(TRANSCRIPT_PREFIX):
            continue
        if not isinstance(value, list):
            raise TypeError(f"{key} must be a list of records")
        Transcript.from_records(value)


class ResumeLayer:
    """Saves and restores workflow state; the only writer of the store.

    Sessions and in-flight streams are never saved. A saved phase that needs a
    live session comes back as the nearest earlier phase that does not.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store

    @staticmethod
    def key(feature: str) -> str:
        return f"{KEY_PREFIX}{feature}"

    def snapshot(self, workflow: Workflow) -> dict:
        state = workflow.state()
        return {
            "version": SNAPSHOT_VERSION,
            "feature": state.feature,
            "phase": state.phase,
            "fields": state.persisted_fields,
        }

    def save(self, workflow: Workflow) -> None:
        snapshot = self.snapshot(workflow)
        self._store.set(self.key(workflow.feature), json.dumps(snapshot, ensure_ascii=False))
        logger.debug(f"Saved {workflow.feature} state (phase={snapshot['phase']}, fields={len(snapshot['fields'])})")

    def restore(self, workflow_type: type[Workflow]) -> WorkflowState | None:
        feature = workflow_type.feature
        raw = self._store.get(self.key(feature))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as ex:
            logger.warning(f"Ignoring corrupt saved state for {feature}: {ex}")
            return None
        if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
            logger.warning(f"Ignoring saved state for {feature}: unsupported format")
            return None
        if data.get("feature") != feature:
            logger.warning(f"Ignoring saved state for {feature}: record belongs to {data.get('feature')!r}")
            return None
        fields = data.get("fields", {})
        if not isinstance(data.get("phase"), str) or not _valid_fields(fields):
            logger.warning(f"Ignoring saved state for {feature}: malformed phase or fields")
            return None

        try:
            _check_transcripts(fields)
        except (ValueError, KeyError, TypeError) as ex:
            logger.warning(f"Ignoring saved state for {feature}: corrupt transcript ({type(ex).__name__}: {ex})")
            return None

        saved_phase = data["phase"]
        phase = workflow_type.resolve_phase(saved_phase, fields)
        if phase != saved_phase:
            logger.info(f"{feature}: saved phase {saved_phase!r} needs a live session; resuming at {phase!r}")
        return WorkflowState(feature=feature, phase=phase, persisted_fields=fields)

    def restore_into(self, workflow: Workflow) -> bool:
        state = self.restore(type(workflow))
        if state is None:
            return False
        workflow.apply_state(state)
        return True

    def discard(self, feature: str) -> None:
        self._store.remove(self.key(feature))
        logger.debug(f"Discarded saved state for {feature}")

    def track(self, workflow: Workflow) -> None:
        workflow.add_listener(self.save)
