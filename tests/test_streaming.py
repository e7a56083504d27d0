import asyncio
import json
import unittest

from viralflow.models import GeneratedMedia, Role
from viralflow.streaming import MessageBuffer, assemble_stream
from viralflow.transcript import Transcript


async def _stream(*fragments, error=None):
    for fragment in fragments:
        await asyncio.sleep(0)
        yield fragment
    if error is not None:
        raise error


class _Clock:
    def __init__(self, *values: float):
        self._values = list(values)

    def __call__(self) -> float:
        return self._values.pop(0) if len(self._values) > 1 else self._values[0]


class MessageBufferTests(unittest.TestCase):
    def test_each_append_publishes_a_new_snapshot(self) -> None:
        snapshots = []
        buffer = MessageBuffer(observer=snapshots.append)
        buffer.append("Hel")
        buffer.append("lo")
        buffer.seal()

        self.assertEqual(["Hel", "Hello", "Hello"], [s.content for s in snapshots])
        self.assertTrue(snapshots[0].is_streaming)
        self.assertFalse(snapshots[-1].is_streaming)
        self.assertEqual(1, len({s.id for s in snapshots}))

    def test_append_after_seal_is_an_error(self) -> None:
        buffer = MessageBuffer()
        buffer.seal()
        with self.assertRaises(RuntimeError):
            buffer.append("late")

    def test_fail_keeps_partial_text(self) -> None:
        buffer = MessageBuffer()
        buffer.append("partial")
        message = buffer.fail(RuntimeError("connection reset"))
        self.assertEqual("partial", message.content)
        self.assertFalse(message.is_streaming)
        self.assertEqual("connection reset", message.error)


class AssembleStreamTests(unittest.TestCase):
    def test_content_is_concatenation_regardless_of_chunking(self) -> None:
        one = asyncio.run(assemble_stream(_stream("Hello, world"), MessageBuffer()))
        many = asyncio.run(assemble_stream(_stream("He", "llo", ", ", "wor", "ld"), MessageBuffer()))
        self.assertEqual("Hello, world", one.message.content)
        self.assertEqual(one.message.content, many.message.content)
        self.assertTrue(many.ok)

    def test_empty_stream_finalizes_empty_message(self) -> None:
        result = asyncio.run(assemble_stream(_stream(), MessageBuffer()))
        self.assertEqual("", result.message.content)
        self.assertFalse(result.message.is_streaming)
        self.assertIsNone(result.error)

    def test_mid_stream_error_is_reported_once_with_partial_text(self) -> None:
        error = ConnectionError("dropped")
        result = asyncio.run(assemble_stream(_stream("A", "B", error=error), MessageBuffer()))
        self.assertIs(error, result.error)
        self.assertEqual("AB", result.message.content)
        self.assertEqual("dropped", result.message.error)
        self.assertFalse(result.message.is_streaming)


class TranscriptTests(unittest.TestCase):
    def test_timestamps_never_go_backwards(self) -> None:
        transcript = Transcript(clock=_Clock(100.0, 90.0, 95.0, 120.0))
        transcript.add_user("a")
        transcript.add_model("b")
        transcript.add_user("c")
        transcript.add_model("d")
        stamps = [m.timestamp for m in transcript.messages]
        self.assertEqual([100.0, 100.0, 100.0, 120.0], stamps)

    def test_streaming_placeholder_is_replaced_in_place(self) -> None:
        transcript = Transcript()
        transcript.add_user("question")
        buffer = transcript.begin_model()
        self.assertTrue(transcript.last.is_streaming)

        asyncio.run(assemble_stream(_stream("ans", "wer"), buffer))

        self.assertEqual(2, len(transcript))
        self.assertEqual(Role.USER, transcript.messages[0].role)
        self.assertEqual("answer", transcript.last.content)
        self.assertFalse(transcript.last.is_streaming)

    def test_media_messages_are_distinguished(self) -> None:
        transcript = Transcript()
        placeholder = transcript.begin_media("image", "a neon kitchen at night")
        media = GeneratedMedia("image", "data:image/png;base64,AAAA", "image/png", "a neon kitchen at night")
        done = transcript.complete_media(placeholder.id, media)

        self.assertTrue(done.is_media)
        self.assertIs(media, transcript.last.generated_media)

        failed = transcript.fail_media(transcript.begin_media("video", "x").id, "quota exceeded")
        self.assertFalse(failed.is_media)
        self.assertEqual("quota exceeded", failed.error)

    def test_records_round_trip_as_plain_strings(self) -> None:
        transcript = Transcript()
        transcript.add_user("hello", ["clip.mp4"])
        transcript.add_model("hi there")
        placeholder = transcript.begin_media("image", "poster")
        transcript.complete_media(placeholder.id, GeneratedMedia("image", "file:///x.png", "image/png", "poster"))

        records = transcript.to_records()
        self.assertTrue(all(isinstance(r, str) for r in records))
        self.assertEqual("hello", json.loads(records[0])["content"])

        restored = Transcript.from_records(records)
        self.assertEqual(transcript.messages, restored.messages)

    def test_change_listener_fires_on_sealed_updates(self) -> None:
        calls = []
        transcript = Transcript(on_change=lambda: calls.append(len(transcript)))
        transcript.add_user("q")
        buffer = transcript.begin_model()
        buffer.append("partial")
        before_seal = len(calls)
        buffer.seal()
        self.assertEqual(2, before_seal)
        self.assertEqual(3, len(calls))
