"""Unit tests for content ingest (validation, ordering, structural sharing)."""

import pytest

from prepmap.engines.content.ingest import ingest, topological_order
from prepmap.kernel.errors import MalformedContentError
from prepmap.kernel.models.content import Rank, ResourceKind, Topic


def _topic(topic_id: str, order: int = 0, prerequisites=()) -> Topic:
    return Topic(
        id=topic_id,
        level_id="backend-mid",
        title=topic_id,
        order=order,
        prerequisite_topic_ids=frozenset(prerequisites),
    )


class TestIngestValidPayload:
    """Well-formed payloads become id-indexed snapshots."""

    def test_builds_hierarchy(self, payload_factory):
        snapshot = ingest(payload_factory())

        assert set(snapshot.roles) == {"backend"}
        level = snapshot.level_for("backend", Rank.MID)
        assert level is not None
        assert level.id == "backend-mid"
        assert level.estimated_hours == 40
        assert [t.id for t in snapshot.topics_for_level(level.id)] == ["T1", "T2"]
        assert snapshot.topics["T2"].prerequisite_topic_ids == frozenset({"T1"})
        assert snapshot.roles["backend"].technologies == ("python", "postgres")

    def test_resources_attached_to_topics(self, payload_factory):
        snapshot = ingest(payload_factory())

        [question] = snapshot.resources_for_topic("T2")
        assert question.kind == ResourceKind.QUESTION
        assert question.question_id == "q-101"
        assert snapshot.resources_for_topic("missing") == []

    def test_level_without_id_uses_compound_id(self, payload_factory):
        raw = payload_factory()
        del raw["levels"][0]["id"]
        for topic in raw["topics"]:
            topic["levelId"] = "backend/mid"

        snapshot = ingest(raw)

        assert snapshot.level_for("backend", Rank.MID).id == "backend/mid"

    def test_rank_is_case_insensitive(self, payload_factory):
        raw = payload_factory()
        raw["levels"][0]["rank"] = "MID"

        assert ingest(raw).level_for("backend", Rank.MID) is not None

    def test_roles_only_payload(self):
        snapshot = ingest({"roles": [{"id": "frontend", "name": "Frontend"}], "total": 1})

        assert list(snapshot.roles) == ["frontend"]
        assert snapshot.levels == {}

    def test_snake_case_keys_accepted(self):
        raw = {
            "roles": [{"id": "data", "name": "Data"}],
            "levels": [{"id": "d1", "role_id": "data", "rank": "junior"}],
            "topics": [{"id": "S1", "level_id": "d1", "title": "SQL"}],
        }

        assert ingest(raw).topics_for_level("d1")[0].id == "S1"


class TestIngestRejectsMalformed:
    """Every integrity violation fails the whole payload."""

    def test_cycle_names_all_topics(self, payload_factory):
        raw = payload_factory(topics=[
            {"id": "T1", "title": "a", "prerequisiteTopicIds": ["T2"]},
            {"id": "T2", "title": "b", "prerequisiteTopicIds": ["T1"]},
            {"id": "T3", "title": "c"},
        ], resources=[])

        with pytest.raises(MalformedContentError) as exc_info:
            ingest(raw)
        assert exc_info.value.topic_ids == ["T1", "T2"]
        assert exc_info.value.code == "MALFORMED_CONTENT"

    def test_self_prerequisite_is_a_cycle(self, payload_factory):
        raw = payload_factory(topics=[{"id": "T1", "title": "a", "prerequisiteTopicIds": ["T1"]}], resources=[])

        with pytest.raises(MalformedContentError) as exc_info:
            ingest(raw)
        assert exc_info.value.topic_ids == ["T1"]

    def test_unknown_prerequisite(self, payload_factory):
        raw = payload_factory(topics=[{"id": "T1", "title": "a", "prerequisiteTopicIds": ["T9"]}], resources=[])

        with pytest.raises(MalformedContentError, match="unknown prerequisite"):
            ingest(raw)

    def test_prerequisite_from_other_level(self, payload_factory):
        raw = payload_factory(resources=[])
        raw["levels"].append({"id": "backend-senior", "roleId": "backend", "rank": "senior"})
        raw["topics"].append({"id": "S1", "levelId": "backend-senior", "title": "Sharding",
                              "prerequisiteTopicIds": ["T1"]})

        with pytest.raises(MalformedContentError, match="another level"):
            ingest(raw)

    def test_duplicate_topic_id(self, payload_factory):
        raw = payload_factory(topics=[{"id": "T1", "title": "a"}, {"id": "T1", "title": "b"}], resources=[])

        with pytest.raises(MalformedContentError, match="Duplicate topic"):
            ingest(raw)

    def test_two_levels_with_same_rank(self, payload_factory):
        raw = payload_factory()
        raw["levels"].append({"id": "backend-mid-2", "roleId": "backend", "rank": "mid"})

        with pytest.raises(MalformedContentError, match="more than one mid level"):
            ingest(raw)

    def test_unknown_rank(self, payload_factory):
        raw = payload_factory()
        raw["levels"][0]["rank"] = "principal"

        with pytest.raises(MalformedContentError, match="Unknown level rank"):
            ingest(raw)

    def test_level_for_unknown_role(self, payload_factory):
        raw = payload_factory()
        raw["levels"][0]["roleId"] = "frontend"

        with pytest.raises(MalformedContentError, match="unknown role"):
            ingest(raw)

    def test_topic_for_unknown_level(self, payload_factory):
        raw = payload_factory()
        raw["topics"][0]["levelId"] = "nowhere"

        with pytest.raises(MalformedContentError, match="unknown level"):
            ingest(raw)

    def test_question_requires_question_id(self, payload_factory):
        raw = payload_factory(resources=[{"id": "Q1", "topicId": "T1", "kind": "question"}])

        with pytest.raises(MalformedContentError, match="no questionId"):
            ingest(raw)

    def test_link_resource_requires_url(self, payload_factory):
        raw = payload_factory(resources=[{"id": "V1", "topicId": "T1", "kind": "video"}])

        with pytest.raises(MalformedContentError, match="no url"):
            ingest(raw)

    def test_unknown_resource_kind(self, payload_factory):
        raw = payload_factory(resources=[{"id": "P1", "topicId": "T1", "kind": "podcast", "url": "x"}])

        with pytest.raises(MalformedContentError, match="unknown kind"):
            ingest(raw)

    def test_schema_violation(self, payload_factory):
        raw = payload_factory()
        del raw["topics"][0]["title"]

        with pytest.raises(MalformedContentError, match="failed validation"):
            ingest(raw)

    def test_non_object_payload(self):
        with pytest.raises(MalformedContentError, match="must be an object"):
            ingest(["not", "a", "payload"])


class TestStructuralSharing:
    """Re-ingesting keeps unchanged entities identical."""

    def test_identical_content_returns_previous_snapshot(self, payload_factory):
        first = ingest(payload_factory())
        second = ingest(payload_factory(), previous=first)

        assert second is first

    def test_unchanged_entities_are_shared(self, payload_factory):
        first = ingest(payload_factory())
        raw = payload_factory()
        raw["topics"][1]["title"] = "REST API design"

        second = ingest(raw, previous=first)

        assert second is not first
        assert second.fingerprint != first.fingerprint
        assert second.topics["T1"] is first.topics["T1"]
        assert second.topics["T2"] is not first.topics["T2"]
        assert second.roles["backend"] is first.roles["backend"]

    def test_prerequisite_order_does_not_change_fingerprint(self, payload_factory):
        topics = [
            {"id": "A", "title": "a"},
            {"id": "B", "title": "b"},
            {"id": "C", "title": "c", "prerequisiteTopicIds": ["A", "B"]},
        ]
        first = ingest(payload_factory(topics=topics, resources=[]))
        topics[2]["prerequisiteTopicIds"] = ["B", "A"]

        assert ingest(payload_factory(topics=topics, resources=[]), previous=first) is first


class TestTopologicalOrder:
    """Kahn's algorithm with (order, id) tie-breaking."""

    def test_prerequisites_precede_dependents(self):
        topics = [_topic("C", 1, ["A"]), _topic("A", 2), _topic("B", 1)]

        assert topological_order(topics) == ("B", "A", "C")

    def test_ties_break_on_id(self):
        topics = [_topic("b"), _topic("a"), _topic("c")]

        assert topological_order(topics) == ("a", "b", "c")

    def test_diamond(self):
        topics = [
            _topic("D", 0, ["B", "C"]),
            _topic("C", 0, ["A"]),
            _topic("B", 0, ["A"]),
            _topic("A", 0),
        ]

        assert topological_order(topics) == ("A", "B", "C", "D")

    def test_cycle_reports_only_blocked_topics(self):
        topics = [_topic("A"), _topic("B", 0, ["A", "C"]), _topic("C", 0, ["B"])]

        with pytest.raises(MalformedContentError) as exc_info:
            topological_order(topics)
        assert exc_info.value.topic_ids == ["B", "C"]

    def test_empty_level(self):
        assert topological_order([]) == ()
