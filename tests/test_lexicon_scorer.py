"""Tests for the lexicon scorer, its tables and weight snapshots."""

import pytest

from bullywatch.datatypes.scoring_datatypes import LexiconHit
from bullywatch.detection.lexicon_scorer import LexiconScorer, apply_hard_cap
from bullywatch.detection.lexicon_tables import LexiconEntry, entries_from_config
from bullywatch.detection.lexicon_weights import LexiconWeights, LexiconWeightStore
from bullywatch.normalization.text_normalizer import normalize


@pytest.fixture()
def weight_store() -> LexiconWeightStore:
    return LexiconWeightStore()


@pytest.fixture()
def scorer(weight_store) -> LexiconScorer:
    return LexiconScorer(weight_store)


class TestHardCap:
    """Tests for the per-category and per-message cap."""

    def test_ten_repeats_count_as_two_hits(self, scorer):
        result = scorer.score(normalize(" ".join(["loser"] * 10)))
        assert len(result.hits) == 10
        assert result.base_score == pytest.approx(4.0)
        assert result.categories == ("general_insult",)

    def test_only_top_three_categories_count(self):
        hits = [
            LexiconHit("a", "one", 6),
            LexiconHit("b", "two", 5),
            LexiconHit("c", "three", 4),
            LexiconHit("d", "four", 1),
        ]
        capped, categories = apply_hard_cap(hits)
        assert capped == pytest.approx(15.0)
        assert categories == ("one", "two", "three", "four")

    def test_empty_text(self, scorer):
        result = scorer.score("")
        assert result.base_score == 0
        assert result.hits == ()


class TestCategories:
    """Tests for category detection."""

    def test_scenario_text(self, scorer):
        result = scorer.score(normalize("you are trash, everyone hates you"))
        assert set(result.categories) == {"general_insult", "social_exclusion"}
        assert result.base_score == pytest.approx(6.0)

    def test_obfuscated_hebrew_matches(self, scorer):
        result = scorer.score(normalize("אתה מטומטמ"))
        assert "general_insult" in result.categories

    def test_latin_boundary(self, scorer):
        assert scorer.score(normalize("throw it in the trashcan")).categories == ()

    def test_emoji_entries(self, scorer):
        result = scorer.score(normalize("🔪"))
        assert result.categories == ("emoji_harassment",)
        assert result.base_score == pytest.approx(5.0)

    def test_unknown_config_category_maps_to_generic(self, weight_store):
        entries = entries_from_config([{"category": "made_up", "score": 4, "terms": ["noob"]}])
        assert entries == [LexiconEntry("generic", 4.0, ("noob",))]
        scorer = LexiconScorer(weight_store, entries)
        result = scorer.score("noob")
        assert result.categories == ("generic",)
        # generic carries a 0.5 weight in the default snapshot
        assert result.base_score == pytest.approx(2.0)


class TestWeights:
    """Tests for weight snapshots."""

    def test_weights_scale_hits(self, weight_store, scorer):
        weight_store.publish(weight_store.current.with_category_weights({"general_insult": 0.5}))
        result = scorer.score("loser")
        assert result.base_score == pytest.approx(1.0)
        assert result.weights_version == 1

    def test_term_weight_overrides_category_weight(self):
        weights = LexiconWeights(category_weights={"general_insult": 0.5}, term_weights={"loser": 2.0})
        assert weights.multiplier("loser", "general_insult") == 2.0
        assert weights.multiplier("idiot", "general_insult") == 0.5
        assert weights.multiplier("idiot", "unlisted") == 1.0

    def test_publish_rejects_stale_versions(self, weight_store):
        newer = weight_store.current.with_category_weights({"doxxing": 1.2})
        assert weight_store.publish(newer) is True
        assert weight_store.publish(LexiconWeights(version=1)) is False
        assert weight_store.current is newer
        assert len(weight_store.history()) == 1

    def test_snapshot_is_immutable(self, weight_store):
        with pytest.raises(TypeError):
            weight_store.current.category_weights["generic"] = 3.0  # type: ignore[index]

    def test_round_trip_dict(self):
        weights = LexiconWeights(version=3, category_weights={"coercion": 1.1})
        restored = LexiconWeights.from_dict(weights.to_dict())
        assert restored.version == 3
        assert restored.category_weights == {"coercion": 1.1}
