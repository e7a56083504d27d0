from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import asdict

from loguru import logger

from viralflow import context_builder, prompts, structured
from viralflow.context_builder import ContextInputs, FeatureKind
from viralflow.errors import InvalidActionError
from viralflow.models import AssetRole, Citation, FileAsset, Platform, TopicResult
from viralflow.streaming import AssemblyResult
from viralflow.workflows.base import Workflow

QUERY = "query"
RESULTS = "results"
REFINING = "refining"


def _encode_topic(topic: TopicResult) -> str:
    return json.dumps(asdict(topic), ensure_ascii=False)


def _decode_topic(raw: str) -> TopicResult:
    data = json.loads(raw)
    data["sources"] = [Citation(**s) for s in data.get("sources", [])]
    return TopicResult(**data)


class TopicResearch(Workflow):
    feature = "topics"
    phases = (QUERY, RESULTS, REFINING)
    session_phases = frozenset({REFINING})
    required_fields = {RESULTS: ("topics",)}
    phase_fields = {RESULTS: ("topics", "batch_count"), REFINING: ("selected_topic", REFINING)}
    asset_roles = frozenset({AssetRole.BENCHMARK, AssetRole.CONTENT, AssetRole.ATTACHMENT})
    sticky_fields = ("platform", "domain")

    def set_query(
        self,
        query: str,
        *,
        domain: str | None = None,
        platform: Platform | str | None = None,
    ) -> None:
        self._require(QUERY, RESULTS)
        self._set_field("query", query.strip())
        if domain is not None:
            self._set_field("domain", domain.strip())
        if platform is not None:
            self._set_field("platform", Platform(platform).value)

    def set_links(self, role: AssetRole, links: Sequence[str]) -> None:
        self._require(QUERY, RESULTS)
        role = AssetRole(role)
        if role not in (AssetRole.CONTENT, AssetRole.BENCHMARK):
            raise ValueError(f"Links cannot be attached as {role.value}")
        self._set_field(f"{role.value}_links", [link.strip() for link in links if link.strip()])

    @property
    def topics(self) -> list[TopicResult]:
        return [_decode_topic(raw) for raw in self.field_list("topics")]

    @property
    def batch_count(self) -> int:
        return int(self.field("batch_count", "0"))

    async def research(self) -> list[TopicResult]:
        """Run one search-grounded batch; new topics are appended to earlier ones."""
        self._require(QUERY, RESULTS)
        query = self.field("query")
        if not query:
            raise InvalidActionError("Enter a topic direction first")

        turn = context_builder.build(
            FeatureKind.TOPIC_RESEARCH,
            ContextInputs(
                assets=self._shelf_groups(AssetRole.BENCHMARK, AssetRole.CONTENT),
                links={
                    AssetRole.CONTENT: self.field_list(f"{AssetRole.CONTENT.value}_links"),
                    AssetRole.BENCHMARK: self.field_list(f"{AssetRole.BENCHMARK.value}_links"),
                },
                fields={
                    "query": query,
                    "domain": self.field("domain"),
                    "platform": self.field("platform"),
                    "batch_index": str(self.batch_count),
                },
            ),
        )
        completion = await self._complete(
            prompts.TOPIC_RESEARCH_SYSTEM, turn, search_grounding=True, expect_json=True
        )
        batch = structured.load_topics(completion.text)
        if not batch:
            logger.warning("Topic research returned no usable topics")
            return []
        structured.assign_citations(batch, completion.citations)

        self._fields["topics"] = self.field_list("topics") + [_encode_topic(t) for t in batch]
        self._fields["batch_count"] = str(self.batch_count + 1)
        logger.info(f"Topic batch {self.batch_count}: {len(batch)} topic(s), {len(completion.citations)} source(s)")
        if self.phase == RESULTS:
            self._changed()
        self._set_phase(RESULTS)
        return batch

    async def refine(self, index: int) -> None:
        self._require(RESULTS, REFINING)
        topics = self.topics
        if not 0 <= index < len(topics):
            raise InvalidActionError(f"No topic #{index + 1}; there are {len(topics)}")
        topic = topics[index]
        platform = self.field("platform", Platform.TIKTOK.value)
        seed = prompts.topic_refinement_seed(topic.title, topic.description, platform)

        await self._open_session(REFINING, prompts.TOPIC_REFINEMENT_PERSONA, seed, self._tools())
        self._fields["selected_topic"] = str(index)
        transcript = self.transcript(REFINING)
        transcript.clear()
        transcript.add_model(seed[-1].text)
        self._set_phase(REFINING)

    @property
    def selected_topic(self) -> TopicResult | None:
        raw = self.field("selected_topic")
        topics = self.topics
        if not raw or not raw.isdigit() or int(raw) >= len(topics):
            return None
        return topics[int(raw)]

    async def discuss(self, text: str, attachments: Sequence[FileAsset] = ()) -> AssemblyResult:
        self._require(REFINING)
        turn = context_builder.follow_up(text, list(attachments))
        return await self._exchange(REFINING, REFINING, turn, text, attachments)
