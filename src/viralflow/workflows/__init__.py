from viralflow.workflows.assistant import Assistant
from viralflow.workflows.base import Workflow
from viralflow.workflows.benchmark_studio import BenchmarkStudio
from viralflow.workflows.content_audit import ContentAudit
from viralflow.workflows.script_writer import ScriptWriter
from viralflow.workflows.topic_research import TopicResearch
from viralflow.workflows.video_producer import VideoProducer

WORKFLOW_TYPES: dict[str, type[Workflow]] = {
    cls.feature: cls
    for cls in (BenchmarkStudio, ContentAudit, ScriptWriter, VideoProducer, TopicResearch, Assistant)
}

__all__ = [
    "Assistant",
    "BenchmarkStudio",
    "ContentAudit",
    "ScriptWriter",
    "TopicResearch",
    "VideoProducer",
    "WORKFLOW_TYPES",
    "Workflow",
]
