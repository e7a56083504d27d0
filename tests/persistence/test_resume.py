import asyncio
import json

from tests.fakes import FakeProvider
from tests.persistence.base import StateStoreTestCase
from viralflow.models import AuditTone, Citation, Role
from viralflow.persistence import InMemoryKeyValueStore, ResumeLayer
from viralflow.workflows import Assistant, BenchmarkStudio, ContentAudit, ScriptWriter, TopicResearch
from viralflow.workflows import benchmark_studio, script_writer, topic_research


def _topics_json(*titles: str) -> str:
    return json.dumps([{"title": t, "description": "d", "relevanceScore": 80, "trendingReason": "r"} for t in titles])


class ResumeLayerTests(StateStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._provider = FakeProvider()

    def test_nothing_saved_restores_nothing(self) -> None:
        self.assertIsNone(self._resume.restore(ContentAudit))
        audit = ContentAudit(self._provider)
        self.assertFalse(self._resume.restore_into(audit))

    def test_snapshot_is_versioned_json_under_feature_key(self) -> None:
        audit = ContentAudit(self._provider)
        audit.set_tone(AuditTone.CRITICAL)
        self._resume.save(audit)

        raw = self._store.get("viralflow.workflow.audit")
        data = json.loads(raw)
        self.assertEqual(1, data["version"])
        self.assertEqual("audit", data["feature"])
        self.assertEqual("input", data["phase"])
        self.assertEqual({"tone": "critical"}, data["fields"])

    def test_tracked_workflow_saves_on_every_change(self) -> None:
        writer = ScriptWriter(self._provider)
        self._resume.track(writer)
        writer.set_brief(topic="standing desks")

        restored = ScriptWriter(self._provider)
        self.assertTrue(self._resume.restore_into(restored))
        self.assertEqual("standing desks", restored.field("topic"))

    def test_drafting_resumes_at_brief_without_sessions(self) -> None:
        writer = ScriptWriter(self._provider)
        self._resume.track(writer)
        writer.set_brief(topic="standing desks")
        self._provider.queue_reply("Draft one")
        asyncio.run(writer.start())
        self.assertEqual(script_writer.DRAFTING, writer.phase)

        restored = ScriptWriter(self._provider)
        self._resume.restore_into(restored)

        self.assertEqual(script_writer.BRIEF, restored.phase)
        self.assertEqual({}, restored.sessions)
        # the draft conversation is kept for reading
        contents = [m.content for m in restored.transcript(script_writer.DRAFTING).messages]
        self.assertEqual(["Write a script about: standing desks", "Draft one"], contents)

    def test_benchmark_with_analysis_resumes_at_brief(self) -> None:
        studio = BenchmarkStudio(self._provider)
        self._resume.track(studio)
        studio.set_reference("https://video.example/1")
        self._provider.queue_completion("Teardown", [Citation("s", "https://s.example")])
        asyncio.run(studio.analyze())
        asyncio.run(studio.discuss("Love the pacing"))
        studio.proceed_to_brief()

        restored = BenchmarkStudio(self._provider)
        self._resume.restore_into(restored)

        self.assertEqual(benchmark_studio.USER_BRIEF, restored.phase)
        self.assertEqual("Teardown", restored.analysis)
        self.assertEqual(["Love the pacing"], restored.remarks())

    def test_benchmark_without_analysis_resumes_at_input(self) -> None:
        store = InMemoryKeyValueStore()
        store.set(
            ResumeLayer.key("benchmark"),
            json.dumps({"version": 1, "feature": "benchmark", "phase": "imitation_guide", "fields": {}}),
        )
        state = ResumeLayer(store).restore(BenchmarkStudio)
        self.assertEqual(benchmark_studio.INPUT, state.phase)

    def test_topic_results_survive_restart(self) -> None:
        research = TopicResearch(self._provider)
        self._resume.track(research)
        research.set_query("urban gardening")
        self._provider.queue_completion(_topics_json("Balcony tomatoes", "Worm bins"))
        asyncio.run(research.research())
        asyncio.run(research.refine(0))

        restored = TopicResearch(self._provider)
        self._resume.restore_into(restored)

        self.assertEqual(topic_research.RESULTS, restored.phase)
        self.assertEqual(["Balcony tomatoes", "Worm bins"], [t.title for t in restored.topics])

    def test_assistant_restores_chat_and_reseeds(self) -> None:
        assistant = Assistant(self._provider)
        self._resume.track(assistant)
        self._provider.queue_reply("Use captions.")
        asyncio.run(assistant.chat("Any quick tips?"))

        provider = FakeProvider()
        restored = Assistant(provider)
        self._resume.restore_into(restored)
        asyncio.run(restored.chat("More?"))

        seed = provider.handles[0].seed_history
        self.assertEqual([(Role.USER, "Any quick tips?"), (Role.MODEL, "Use captions.")], [(e.role, e.text) for e in seed])

    def test_corrupt_record_is_ignored(self) -> None:
        self._store.set(ResumeLayer.key("audit"), "{not json")
        self.assertIsNone(self._resume.restore(ContentAudit))

    def test_corrupt_transcript_entry_is_ignored(self) -> None:
        bad_transcripts = (
            ["not json"],
            ['{"role": "user", "content": "hi", "timestamp": 1}'],
            ['["a list"]'],
            ['{"id": "1", "role": "narrator", "content": "hi", "timestamp": 1}'],
        )
        for records in bad_transcripts:
            self._store.set(
                ResumeLayer.key("assistant"),
                json.dumps(
                    {"version": 1, "feature": "assistant", "phase": "chat", "fields": {"transcript.chat": records}}
                ),
            )
            self.assertIsNone(self._resume.restore(Assistant))
            assistant = Assistant(self._provider)
            self.assertFalse(self._resume.restore_into(assistant))
            self.assertEqual(1, len(assistant.transcript("chat")))

    def test_foreign_or_old_records_are_ignored(self) -> None:
        self._store.set(
            ResumeLayer.key("audit"),
            json.dumps({"version": 1, "feature": "script", "phase": "brief", "fields": {}}),
        )
        self.assertIsNone(self._resume.restore(ContentAudit))
        self._store.set(
            ResumeLayer.key("audit"),
            json.dumps({"version": 99, "feature": "audit", "phase": "input", "fields": {}}),
        )
        self.assertIsNone(self._resume.restore(ContentAudit))
        self._store.set(
            ResumeLayer.key("audit"),
            json.dumps({"version": 1, "feature": "audit", "phase": "input", "fields": {"tone": 3}}),
        )
        self.assertIsNone(self._resume.restore(ContentAudit))

    def test_discard_forgets_saved_state(self) -> None:
        audit = ContentAudit(self._provider)
        self._resume.save(audit)
        self._resume.discard("audit")
        self.assertIsNone(self._store.get(ResumeLayer.key("audit")))
