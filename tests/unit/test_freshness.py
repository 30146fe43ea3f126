"""Tests for dokkan_datahub.aggregation.freshness."""

import pytest

from dokkan_datahub.aggregation.freshness import (
    FreshnessScorer,
    freshness_key,
    freshness_score,
)
from dokkan_datahub.aggregation.orchestrator import FetchOrchestrator
from dokkan_datahub.core.exceptions import TransientSourceError


# --- Fixtures ---


@pytest.fixture
def orchestrator(registry, clock, wall_clock) -> FetchOrchestrator:
    return FetchOrchestrator(
        registry,
        rate_limits={"alpha": 1000, "beta": 1500, "gamma": 0},
        priorities={"cards": ["alpha", "beta"]},
        clock=clock,
        sleep=clock.sleep,
        wall_clock=wall_clock,
    )


@pytest.fixture
def scorer(orchestrator) -> FreshnessScorer:
    return FreshnessScorer(orchestrator)


def _sampler(samples):
    async def sample(source):
        value = samples[source]
        if isinstance(value, Exception):
            raise value
        return value

    return sample


class TestFreshnessKey:
    def test_empty_sample(self):
        assert freshness_key([]) == (0, 0, 0)
        assert freshness_key(None) == (0, 0, 0)

    def test_averages(self):
        key = freshness_key(
            [
                {"version": "1.5", "updatedAt": "1970-01-01T00:16:40Z"},
                {"version": 2.5, "lastModified": 3_000_000, "extra": True},
            ]
        )
        assert key.version == pytest.approx(2.0)
        assert key.timestamp_ms == pytest.approx(2_000_000)
        assert key.field_count == pytest.approx(2.5)

    def test_unparseable_values_skipped(self):
        key = freshness_key([{"updatedAt": "yesterday", "version": "beta"}, {"version": 4}])
        assert key.version == 4
        assert key.timestamp_ms == 0
        assert key.field_count == pytest.approx(1.5)

    def test_tuple_and_single_mapping_accepted(self):
        assert freshness_key(({"version": 1},)).version == 1
        assert freshness_key({"version": 2, "id": "1"}) == (2, 0, 2)

    def test_non_mapping_entries_ignored(self):
        assert freshness_key(["junk", {"version": 3}]).version == 3


class TestFreshnessScore:
    def test_empty_sample_scores_zero(self):
        assert freshness_score([]) == 0
        assert freshness_score(None) == 0

    def test_version_dominates_timestamp(self):
        versioned = [{"id": "1", "version": 3}]
        dated = [{"id": "1", "version": 1, "updatedAt": "2020-01-01T00:00:00Z"}]
        assert freshness_score(versioned) > freshness_score(dated)

    def test_timestamp_dominates_completeness(self):
        dated = [{"updatedAt": "2020-01-01T00:00:00Z"}]
        wide = [{f"f{i}": i for i in range(40)}]
        assert freshness_score(dated) > freshness_score(wide)

    def test_bounded_components(self):
        score = freshness_score([{"version": 2, "updatedAt": "2024-01-01T00:00:00Z"}])
        assert 2000 < score < 2000 + 100 + 10

    def test_newer_version_scores_higher(self):
        older = [{"id": "1", "version": 1}]
        newer = [{"id": "1", "version": 2}]
        assert freshness_score(newer) > freshness_score(older)


class TestRescoreAndReorder:
    async def test_reorders_by_descending_score(self, scorer, orchestrator):
        samples = {
            "alpha": [{"id": "1", "version": 1}],
            "beta": [{"id": "1", "version": 2}],
            "gamma": [],
        }
        scores = await scorer.rescore_and_reorder("cards", _sampler(samples))
        assert [s.source for s in scores] == ["alpha", "beta", "gamma"]
        assert orchestrator.priorities("cards") == ["beta", "alpha", "gamma"]

    async def test_failing_source_excluded(self, scorer, orchestrator):
        samples = {
            "alpha": TransientSourceError("down"),
            "beta": [{"id": "1"}],
            "gamma": [{"id": "1", "name": "x"}],
        }
        scores = await scorer.rescore_and_reorder("cards", _sampler(samples))
        alpha = next(s for s in scores if s.source == "alpha")
        assert alpha.score == -1
        assert alpha.excluded
        assert "down" in alpha.error
        assert orchestrator.priorities("cards") == ["gamma", "beta"]

    async def test_ties_keep_prior_order(self, scorer, orchestrator):
        orchestrator.set_priorities("cards", ["beta", "alpha"])
        samples = {"alpha": [{"id": "1"}], "beta": [{"id": "2"}], "gamma": [{"id": "3"}]}
        await scorer.rescore_and_reorder("cards", _sampler(samples))
        assert orchestrator.priorities("cards") == ["beta", "alpha", "gamma"]

    async def test_all_failing_keeps_existing(self, scorer, orchestrator):
        samples = {name: TransientSourceError("down") for name in ("alpha", "beta", "gamma")}
        scores = await scorer.rescore_and_reorder("cards", _sampler(samples))
        assert all(s.excluded for s in scores)
        assert orchestrator.priorities("cards") == ["alpha", "beta"]

    async def test_samples_respect_rate_limits(self, scorer, orchestrator, clock):
        await orchestrator.call_source("alpha", lambda s: [1])
        samples = {"alpha": [{"id": "1"}], "beta": [{"id": "1"}], "gamma": [{"id": "1"}]}
        await scorer.rescore_and_reorder("cards", _sampler(samples))
        assert clock.sleeps == [pytest.approx(1.0)]

    async def test_type_without_priorities_uses_configured_sources(self, scorer, orchestrator):
        samples = {"alpha": [{"a": 1}], "beta": [{"a": 1, "b": 2}], "gamma": []}
        await scorer.rescore_and_reorder("items", _sampler(samples))
        assert orchestrator.priorities("items") == ["beta", "alpha", "gamma"]

    async def test_higher_version_beats_newer_timestamp(self, scorer, orchestrator):
        samples = {
            "alpha": [{"id": "1", "version": 1, "updatedAt": "2020-01-01T00:00:00Z"}],
            "beta": [{"id": "1", "version": 3}],
            "gamma": [{"id": "1", "version": 1}],
        }
        await scorer.rescore_and_reorder("cards", _sampler(samples))
        assert orchestrator.priorities("cards") == ["beta", "alpha", "gamma"]

    async def test_single_mapping_sample_is_one_record(self, scorer, orchestrator):
        samples = {
            "alpha": [{"id": "1"}],
            "beta": {"id": "1", "version": 2},
            "gamma": [],
        }
        scores = await scorer.rescore_and_reorder("cards", _sampler(samples))
        beta = next(s for s in scores if s.source == "beta")
        assert beta.sample_size == 1
        assert orchestrator.priorities("cards")[0] == "beta"
