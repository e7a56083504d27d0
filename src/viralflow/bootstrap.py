from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from viralflow.app_config import AppConfig, RuntimeEnv
from viralflow.ingestion import IngestionPipeline
from viralflow.logging_config import set_log_studio, setup_logging
from viralflow.persistence import InMemoryKeyValueStore, KeyValueStore, ResumeLayer, SqliteKeyValueStore
from viralflow.provider import ProviderSettings, SessionProvider, create_provider
from viralflow.workflows import WORKFLOW_TYPES, Workflow


@dataclass
class AppRuntime:
    provider: SessionProvider
    pipeline: IngestionPipeline
    store: KeyValueStore
    resume: ResumeLayer
    log_descriptions: list[str]

    def open_workflow(self, feature: str) -> tuple[Workflow, bool]:
        """Create the studio for ``feature``, restore its saved state and keep saving it."""
        workflow_type = WORKFLOW_TYPES.get(feature)
        if workflow_type is None:
            raise ValueError(f"Unknown studio {feature!r}. Choose one of: {', '.join(WORKFLOW_TYPES)}")
        set_log_studio(feature)
        workflow = workflow_type(self.provider, pipeline=self.pipeline)
        restored = self.resume.restore_into(workflow)
        self.resume.track(workflow)
        return workflow, restored

    def close(self) -> None:
        if isinstance(self.store, SqliteKeyValueStore):
            self.store.close()


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    provider = create_provider(
        app.provider_name,
        env.provider_api_key,
        ProviderSettings(
            model=app.model,
            max_tokens=app.max_tokens,
            temperature=app.temperature,
            image_model=app.image_model,
            video_model=app.video_model,
            video_poll_seconds=app.video_poll_seconds,
            media_output_dir=app.media_output_dir,
        ),
    )

    store: KeyValueStore
    if app.persistence_enabled:
        db_path = Path(app.state_db_path)
        if not db_path.is_absolute():
            db_path = Path.cwd() / db_path
        store = SqliteKeyValueStore(str(db_path))
    else:
        store = InMemoryKeyValueStore()

    return AppRuntime(
        provider=provider,
        pipeline=IngestionPipeline(max_bytes=app.max_asset_bytes),
        store=store,
        resume=ResumeLayer(store),
        log_descriptions=log_descriptions,
    )
