import asyncio
import json
import unittest

from tests.fakes import FakeProvider
from viralflow import prompts
from viralflow.errors import InvalidActionError
from viralflow.models import Citation, Role
from viralflow.workflows import TopicResearch
from viralflow.workflows.topic_research import QUERY, REFINING, RESULTS


def _topics_json(*titles: str) -> str:
    return json.dumps(
        [
            {"title": t, "description": f"about {t}", "relevanceScore": 90, "trendingReason": "rising"}
            for t in titles
        ]
    )


class TopicResearchTests(unittest.TestCase):
    def setUp(self) -> None:
        self._provider = FakeProvider()
        self._research = TopicResearch(self._provider)
        self._research.set_query("home coffee", domain="Food", platform="TikTok")

    def test_research_requires_query(self) -> None:
        research = TopicResearch(self._provider)
        with self.assertRaises(InvalidActionError):
            asyncio.run(research.research())

    def test_research_is_grounded_and_assigns_citations(self) -> None:
        cites = [Citation(f"s{i}", f"https://s{i}.example") for i in range(4)]
        self._provider.queue_completion(_topics_json("A", "B"), cites)

        batch = asyncio.run(self._research.research())

        self.assertEqual(RESULTS, self._research.phase)
        self.assertEqual(["A", "B"], [t.title for t in batch])
        self.assertEqual(["s2", "s3"], [c.title for c in self._research.topics[1].sources])
        call = self._provider.complete_calls[0]
        self.assertTrue(call["search_grounding"])
        self.assertTrue(call["expect_json"])
        self.assertEqual(prompts.TOPIC_RESEARCH_SYSTEM, call["system_prompt"])

    def test_batches_append_with_index(self) -> None:
        self._provider.queue_completion(_topics_json("A"))
        self._provider.queue_completion(_topics_json("B"))
        asyncio.run(self._research.research())
        asyncio.run(self._research.research())

        self.assertEqual(["A", "B"], [t.title for t in self._research.topics])
        self.assertEqual(2, self._research.batch_count)
        self.assertIn("batch 2", self._provider.complete_calls[1]["turn"].text)

    def test_unparseable_answer_leaves_phase(self) -> None:
        self._provider.queue_completion("not json")
        self.assertEqual([], asyncio.run(self._research.research()))
        self.assertEqual(QUERY, self._research.phase)

    def test_refine_opens_seeded_topic_session(self) -> None:
        self._provider.queue_completion(_topics_json("A", "B"))
        asyncio.run(self._research.research())

        asyncio.run(self._research.refine(1))

        self.assertEqual(REFINING, self._research.phase)
        self.assertEqual("B", self._research.selected_topic.title)
        handle = self._provider.handles[0]
        self.assertEqual(prompts.TOPIC_REFINEMENT_PERSONA, handle.persona)
        self.assertEqual([Role.USER, Role.MODEL], [e.role for e in handle.seed_history])
        self.assertIn('"B"', handle.seed_history[0].text)

        self._provider.queue_reply("Try a question as the title.")
        result = asyncio.run(self._research.discuss("Better title?"))
        self.assertEqual("Try a question as the title.", result.message.content)

    def test_refine_rejects_bad_index(self) -> None:
        self._provider.queue_completion(_topics_json("A"))
        asyncio.run(self._research.research())
        with self.assertRaises(InvalidActionError):
            asyncio.run(self._research.refine(5))

    def test_back_from_refining_keeps_topics(self) -> None:
        self._provider.queue_completion(_topics_json("A"))
        asyncio.run(self._research.research())
        asyncio.run(self._research.refine(0))

        self.assertEqual(RESULTS, self._research.go_back())
        self.assertEqual({}, self._research.sessions)
        self.assertIsNone(self._research.selected_topic)
        self.assertEqual(["A"], [t.title for t in self._research.topics])
