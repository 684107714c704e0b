"""Tests for the heuristic and neural scorers."""

import numpy as np
import pytest

from adaptrec.recommender.features import FeatureExtractor
from adaptrec.recommender.scoring import (
    MONOTONE_INPUTS,
    N_NEURAL_INPUTS,
    PRIOR_MAX_SCORE,
    HeuristicScorer,
    HistoryProfile,
    NeuralScorer,
    build_scorer,
)


@pytest.fixture
def audio_extractor(audio_catalog):
    return FeatureExtractor(audio_catalog)


@pytest.fixture
def trained_heuristic(audio_extractor, audio_history):
    scorer = HeuristicScorer(audio_extractor)
    scorer.train(audio_history)
    return scorer


def test_history_profile(mixed_history):
    profile = HistoryProfile.from_history(mixed_history)

    assert profile.num_purchases == 4
    assert profile.category_counts == {"Audio": 3, "Gaming": 1}
    assert profile.category_share("Audio") == 0.75
    assert profile.category_share("Books") == 0.0
    assert profile.tag_overlap(("wireless", "kitchen")) == 0.5
    assert profile.tag_overlap(()) == 0.0


def test_untrained_heuristic_prior_is_bounded(mixed_catalog):
    extractor = FeatureExtractor(mixed_catalog)
    scorer = HeuristicScorer(extractor)

    for product in mixed_catalog:
        score = scorer.predict(extractor.extract(product, []))
        assert 0.0 <= score < PRIOR_MAX_SCORE


def test_untrained_prior_is_stable(audio_extractor, audio_catalog):
    vector = audio_extractor.extract(audio_catalog.get(3), [])
    assert HeuristicScorer(audio_extractor).predict(vector) == HeuristicScorer(audio_extractor).predict(vector)


def test_heuristic_scores_in_unit_interval(trained_heuristic, audio_extractor, audio_catalog, audio_history):
    _, matrix, _ = audio_extractor.extract_many(audio_catalog.products, audio_history)
    scores = trained_heuristic.predict_many(matrix)
    assert ((scores >= 0.0) & (scores <= 1.0)).all()


def test_heuristic_prefers_purchased_category(trained_heuristic, audio_extractor, audio_catalog, audio_history):
    audio = trained_heuristic.predict(audio_extractor.extract(audio_catalog.get(2), audio_history))
    electronics = trained_heuristic.predict(audio_extractor.extract(audio_catalog.get(7), audio_history))
    assert audio > electronics


def test_heuristic_monotone_in_category_weight(trained_heuristic, audio_extractor, audio_catalog, audio_history):
    vector = audio_extractor.extract(audio_catalog.get(2), audio_history)
    before = trained_heuristic.predict(vector)

    trained_heuristic.category_weights["Audio"] += 0.5

    assert trained_heuristic.predict(vector) > before


def test_heuristic_monotone_in_tag_overlap(trained_heuristic, audio_extractor, audio_catalog, audio_history):
    vector = audio_extractor.extract(audio_catalog.get(7), audio_history)
    with_seen_tag = vector.copy()
    with_seen_tag[audio_extractor.n_categories + audio_extractor.tag_vocabulary.index("wireless")] = 1.0

    assert trained_heuristic.predict(with_seen_tag) > trained_heuristic.predict(vector)


def test_heuristic_monotone_in_price_fit(trained_heuristic, audio_extractor, audio_catalog, audio_history):
    vector = audio_extractor.extract(audio_catalog.get(7), audio_history)
    out_of_band = vector.copy()
    out_of_band[audio_extractor.price_band_index] = 0.0
    worse_fit = vector.copy()
    worse_fit[audio_extractor.price_deviation_index] = 0.8

    assert trained_heuristic.predict(vector) > trained_heuristic.predict(out_of_band)
    assert trained_heuristic.predict(vector) > trained_heuristic.predict(worse_fit)


def test_heuristic_training_moves_weights(audio_extractor, audio_history):
    scorer = HeuristicScorer(audio_extractor)
    before = scorer.get_parameters()

    loss = scorer.train(audio_history)
    after = scorer.get_parameters()

    assert after["category_weights"]["Audio"] > before["category_weights"]["Audio"]
    assert after["category_weights"]["Electronics"] < before["category_weights"]["Electronics"]
    assert after["avg_price"] == 100.0
    assert after["diversity_index"] == 0.5
    assert 0.0 <= loss <= 1.0


def test_heuristic_weights_stay_within_bounds(audio_extractor, audio_history):
    scorer = HeuristicScorer(audio_extractor, learning_rate=1.0, min_weight=0.3, max_weight=2.5)
    for _ in range(30):
        scorer.train(audio_history)

    weights = scorer.get_parameters()["category_weights"]
    assert weights["Audio"] == 2.5
    assert weights["Electronics"] == 0.3


def test_heuristic_snapshot_restore(audio_extractor, audio_history):
    scorer = HeuristicScorer(audio_extractor)
    state = scorer.snapshot()
    before = scorer.get_parameters()

    scorer.train(audio_history)
    scorer.restore(state)

    assert scorer.get_parameters() == before


def test_heuristic_reset_returns_to_prior(audio_extractor, audio_history):
    scorer = HeuristicScorer(audio_extractor)
    fresh = scorer.get_parameters()

    scorer.train(audio_history)
    scorer.reset()

    assert scorer.get_parameters() == fresh


def test_same_seed_gives_same_parameters(audio_extractor):
    first = HeuristicScorer(audio_extractor, random_state=7).get_parameters()
    second = HeuristicScorer(audio_extractor, random_state=7).get_parameters()
    assert first == second


def test_neural_training_produces_finite_loss(mixed_catalog, mixed_history):
    extractor = FeatureExtractor(mixed_catalog)
    scorer = NeuralScorer(extractor, mixed_catalog)

    loss = scorer.train(mixed_history)

    assert np.isfinite(loss)
    assert 0.0 <= loss <= 1.0
    _, matrix, _ = extractor.extract_many(mixed_catalog.products, mixed_history)
    scores = scorer.predict_many(matrix)
    assert ((scores >= 0.0) & (scores <= 1.0)).all()


def test_neural_monotone_in_price_band(mixed_catalog, mixed_history):
    extractor = FeatureExtractor(mixed_catalog)
    scorer = NeuralScorer(extractor, mixed_catalog)
    scorer.train(mixed_history)

    for product in mixed_catalog:
        vector = extractor.extract(product, mixed_history)
        low, high = vector.copy(), vector.copy()
        low[extractor.price_band_index] = 0.0
        high[extractor.price_band_index] = 1.0
        assert scorer.predict(high) >= scorer.predict(low)


def _with_tags(extractor, vector, tags):
    out = vector.copy()
    out[extractor.n_categories : extractor.price_norm_index] = 0.0
    for tag in tags:
        out[extractor.n_categories + extractor.tag_vocabulary.index(tag)] = 1.0
    return out


def _with_category(extractor, vector, category):
    out = vector.copy()
    out[: extractor.n_categories] = 0.0
    out[extractor.categories.index(category)] = 1.0
    return out


@pytest.mark.parametrize("seed", range(10))
def test_neural_monotone_in_tag_overlap(mixed_catalog, mixed_history, seed):
    extractor = FeatureExtractor(mixed_catalog)
    scorer = NeuralScorer(extractor, mixed_catalog, random_state=seed)
    scorer.train(mixed_history)

    for product in mixed_catalog:
        vector = extractor.extract(product, mixed_history)
        seen = _with_tags(extractor, vector, ["wireless"])
        unseen = _with_tags(extractor, vector, ["kitchen"])
        assert scorer.predict(seen) >= scorer.predict(unseen)


@pytest.mark.parametrize("seed", range(10))
def test_neural_monotone_in_category_affinity(mixed_catalog, mixed_history, seed):
    extractor = FeatureExtractor(mixed_catalog)
    scorer = NeuralScorer(extractor, mixed_catalog, random_state=seed)
    scorer.train(mixed_history)

    for product in mixed_catalog:
        vector = extractor.extract(product, mixed_history)
        # Audio holds three of the four purchases, Books none
        favoured = _with_category(extractor, vector, "Audio")
        unseen = _with_category(extractor, vector, "Books")
        assert scorer.predict(favoured) >= scorer.predict(unseen)


def test_neural_keeps_required_weights_non_negative(mixed_catalog, mixed_history):
    extractor = FeatureExtractor(mixed_catalog)
    scorer = NeuralScorer(extractor, mixed_catalog, hidden_layers=(6,))
    scorer.train(mixed_history)

    params = scorer.get_parameters()
    assert params["layer_sizes"] == [N_NEURAL_INPUTS, 6, 1]
    assert (params["weights"][0][MONOTONE_INPUTS] >= 0).all()
    assert (params["weights"][1] >= 0).all()


def test_neural_restore_brings_back_profile(mixed_catalog, mixed_history):
    extractor = FeatureExtractor(mixed_catalog)
    scorer = NeuralScorer(extractor, mixed_catalog, hidden_layers=(4,))
    scorer.train(mixed_history[:2])
    _, matrix, _ = extractor.extract_many(mixed_catalog.products, mixed_history)
    expected = scorer.predict_many(matrix)
    state = scorer.snapshot()

    scorer.train(mixed_history)
    scorer.restore(state)

    np.testing.assert_array_equal(scorer.predict_many(matrix), expected)


def test_neural_training_is_deterministic(mixed_catalog, mixed_history):
    extractor = FeatureExtractor(mixed_catalog)
    first = NeuralScorer(extractor, mixed_catalog)
    second = NeuralScorer(extractor, mixed_catalog)

    assert first.train(mixed_history) == second.train(mixed_history)
    for w_first, w_second in zip(first.weights, second.weights):
        np.testing.assert_array_equal(w_first, w_second)


def test_neural_snapshot_restore(mixed_catalog, mixed_history):
    extractor = FeatureExtractor(mixed_catalog)
    scorer = NeuralScorer(extractor, mixed_catalog, hidden_layers=(4,))
    state = scorer.snapshot()
    before = scorer.get_parameters()

    scorer.train(mixed_history)
    scorer.restore(state)

    for w_before, w_after in zip(before["weights"], scorer.get_parameters()["weights"]):
        np.testing.assert_array_equal(w_before, w_after)


def test_neural_rejects_bad_layer_count(mixed_catalog):
    extractor = FeatureExtractor(mixed_catalog)
    with pytest.raises(ValueError):
        NeuralScorer(extractor, mixed_catalog, hidden_layers=(8, 8, 8))


def test_build_scorer(mixed_catalog):
    extractor = FeatureExtractor(mixed_catalog)
    assert isinstance(build_scorer("heuristic", extractor, mixed_catalog), HeuristicScorer)
    assert isinstance(build_scorer("neural", extractor, mixed_catalog), NeuralScorer)
    with pytest.raises(ValueError, match="Unknown scorer"):
        build_scorer("forest", extractor, mixed_catalog)
