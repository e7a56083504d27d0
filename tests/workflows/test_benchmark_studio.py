import asyncio
import unittest

from tests.fakes import FakeProvider, attach_bytes
from viralflow import prompts
from viralflow.errors import CompletionFailedError, InvalidActionError, MediaGenerationUnsupportedError, SessionOpenFailedError
from viralflow.models import AssetRole, Citation, MediaPart, Role
from viralflow.workflows import BenchmarkStudio
from viralflow.workflows.benchmark_studio import IMITATION_GUIDE, INPUT, INTERACTIVE_ANALYSIS, USER_BRIEF


class BenchmarkStudioTests(unittest.TestCase):
    def setUp(self) -> None:
        self._provider = FakeProvider()
        self._studio = BenchmarkStudio(self._provider)

    def _analyze(self, text: str = "Teardown: strong hook, fast cuts.") -> None:
        self._studio.set_reference("https://video.example/123")
        self._provider.queue_completion(text, [Citation("Source", "https://src.example")])
        asyncio.run(self._studio.analyze())

    def test_analyze_requires_link_or_file(self) -> None:
        with self.assertRaises(InvalidActionError):
            asyncio.run(self._studio.analyze())

    def test_analyze_opens_seeded_discussion(self) -> None:
        self._analyze()

        self.assertEqual(INTERACTIVE_ANALYSIS, self._studio.phase)
        call = self._provider.complete_calls[0]
        self.assertTrue(call["search_grounding"])
        self.assertIn("https://video.example/123", call["turn"].text)

        handle = self._provider.handles[0]
        self.assertEqual(prompts.BENCHMARK_DISCUSSION_PERSONA, handle.persona)
        self.assertEqual(Role.MODEL, handle.seed_history[-1].role)
        self.assertEqual("Teardown: strong hook, fast cuts.", handle.seed_history[-1].text)
        self.assertEqual(["https://src.example"], self._studio.field_list("analysis_sources"))

        messages = self._studio.transcript(INTERACTIVE_ANALYSIS).messages
        self.assertEqual(1, len(messages))
        self.assertEqual(Role.MODEL, messages[0].role)

    def test_reference_file_goes_into_analysis_turn(self) -> None:
        asyncio.run(attach_bytes(self._studio, AssetRole.BENCHMARK, "ref.mp4", b"video", "video/mp4"))
        self._provider.queue_completion("Teardown")
        asyncio.run(self._studio.analyze())

        turn = self._provider.complete_calls[0]["turn"]
        self.assertIsInstance(turn.parts[0], MediaPart)
        self.assertFalse(self._provider.complete_calls[0]["search_grounding"])

    def test_empty_analysis_keeps_input_phase(self) -> None:
        self._studio.set_reference("https://video.example/123")
        self._provider.queue_completion("   ")
        with self.assertRaises(CompletionFailedError):
            asyncio.run(self._studio.analyze())
        self.assertEqual(INPUT, self._studio.phase)
        self.assertEqual([], self._provider.handles)

    def test_session_open_failure_keeps_input_phase(self) -> None:
        self._studio.set_reference("https://video.example/123")
        self._provider.queue_completion("Teardown")
        self._provider.open_errors.append(RuntimeError("quota"))
        with self.assertRaises(SessionOpenFailedError):
            asyncio.run(self._studio.analyze())
        self.assertEqual(INPUT, self._studio.phase)
        self.assertEqual("", self._studio.analysis)

    def test_discuss_streams_into_transcript(self) -> None:
        self._analyze()
        self._provider.queue_reply("Good ", "question.")
        result = asyncio.run(self._studio.discuss("Why does the hook work?"))

        self.assertTrue(result.ok)
        self.assertEqual("Good question.", result.message.content)
        roles = [m.role for m in self._studio.transcript(INTERACTIVE_ANALYSIS).messages]
        self.assertEqual([Role.MODEL, Role.USER, Role.MODEL], roles)

    def test_stream_error_is_recorded_and_session_survives(self) -> None:
        self._analyze()
        self._provider.queue_reply("Par", error=ConnectionError("reset"))
        result = asyncio.run(self._studio.discuss("first"))
        self.assertFalse(result.ok)
        self.assertEqual("Par", result.message.content)
        self.assertIsNotNone(result.message.error)

        self._provider.queue_reply("fine")
        again = asyncio.run(self._studio.discuss("second"))
        self.assertEqual("fine", again.message.content)
        self.assertEqual(INTERACTIVE_ANALYSIS, self._studio.phase)

    def test_guide_first_turn_folds_in_analysis_and_remarks(self) -> None:
        self._analyze("Teardown text")
        asyncio.run(self._studio.discuss("I like the jump cut at 0:03"))
        self._studio.proceed_to_brief()
        self.assertEqual(USER_BRIEF, self._studio.phase)
        self._studio.set_idea("Same format for my bakery")
        asyncio.run(attach_bytes(self._studio, AssetRole.CONTENT, "shop.jpg", b"jpg", "image/jpeg"))

        self._provider.queue_reply("Here is your guide")
        result = asyncio.run(self._studio.start_guide())

        self.assertEqual(IMITATION_GUIDE, self._studio.phase)
        self.assertEqual("Here is your guide", result.message.content)
        guide_handle = self._provider.handles[-1]
        self.assertEqual(prompts.IMITATION_GUIDE_PERSONA, guide_handle.persona)
        self.assertEqual([], guide_handle.seed_history)
        first_turn = guide_handle.turns[0]
        self.assertIsInstance(first_turn.parts[0], MediaPart)
        self.assertIn("Teardown text", first_turn.text)
        self.assertIn("I like the jump cut at 0:03", first_turn.text)
        self.assertIn("Same format for my bakery", first_turn.text)
        # the discussion and the guide never share a session
        self.assertEqual(2, len(self._studio.sessions))
        self.assertIsNot(self._provider.handles[0], guide_handle)

    def test_generate_media_appends_media_message(self) -> None:
        self._analyze()
        self._studio.proceed_to_brief()
        asyncio.run(self._studio.start_guide())

        message = asyncio.run(self._studio.generate_media("image", "storyboard of the opening shot"))
        self.assertTrue(message.is_media)
        self.assertEqual(("image", "storyboard of the opening shot"), self._provider.media_calls[0])
        last_two = self._studio.transcript(IMITATION_GUIDE).messages[-2:]
        self.assertEqual(Role.USER, last_two[0].role)
        self.assertEqual(message, last_two[1])

    def test_generate_media_failure_becomes_error_message(self) -> None:
        self._analyze()
        self._studio.proceed_to_brief()
        asyncio.run(self._studio.start_guide())
        self._provider.media_error = MediaGenerationUnsupportedError("no video model")

        message = asyncio.run(self._studio.generate_media("video", "drone shot"))
        self.assertFalse(message.is_media)
        self.assertEqual("no video model", message.error)
        self.assertFalse(message.is_streaming)

    def test_generate_media_only_in_guide_phase(self) -> None:
        with self.assertRaises(InvalidActionError):
            asyncio.run(self._studio.generate_media("image", "x"))

    def test_reset_from_interactive_analysis_drops_sessions(self) -> None:
        self._analyze()
        self.assertEqual(1, len(self._studio.sessions))

        self._studio.reset()

        self.assertEqual(INPUT, self._studio.phase)
        self.assertEqual(0, len(self._studio.sessions))
        self.assertEqual("", self._studio.analysis)
        self.assertEqual("", self._studio.field("ref_url"))

    def test_go_back_discards_later_state(self) -> None:
        self._analyze()
        self._studio.proceed_to_brief()
        asyncio.run(self._studio.start_guide())

        self.assertEqual(USER_BRIEF, self._studio.go_back())
        self.assertNotIn(IMITATION_GUIDE, self._studio.sessions)
        self.assertEqual(0, len(self._studio.transcript(IMITATION_GUIDE)))

        self.assertEqual(INTERACTIVE_ANALYSIS, self._studio.go_back())
        self.assertIn(INTERACTIVE_ANALYSIS, self._studio.sessions)

        self.assertEqual(INPUT, self._studio.go_back())
        self.assertEqual("", self._studio.analysis)
        with self.assertRaises(InvalidActionError):
            self._studio.go_back()

    def test_actions_are_guarded_by_phase(self) -> None:
        with self.assertRaises(InvalidActionError):
            asyncio.run(self._studio.discuss("hi"))
        with self.assertRaises(InvalidActionError):
            self._studio.proceed_to_brief()
        with self.assertRaises(InvalidActionError):
            self._studio.set_idea("idea")
