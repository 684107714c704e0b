"""Tests for the recommendation service.

Exercises the full train, score and rank pipeline on small in-memory
catalogs.
"""

import threading

import pytest

from adaptrec.exceptions import TrainingError
from adaptrec.recommender.catalog import Catalog, Product
from adaptrec.recommender.ranking import RankingConfig
from adaptrec.recommender.service import (
    RecommendationService,
    build_rationale,
    desired_recommendation_count,
)
from adaptrec.recommender.train import TrainingConfig


@pytest.mark.parametrize(
    "num_purchases, expected",
    [(0, 0), (1, 4), (2, 4), (3, 5), (4, 5), (5, 6), (7, 6), (8, 8), (9, 8), (10, 10), (42, 10)],
)
def test_desired_recommendation_count(num_purchases, expected):
    assert desired_recommendation_count(num_purchases) == expected


def test_empty_history_gives_no_recommendations(mixed_catalog):
    service = RecommendationService(mixed_catalog)
    assert service.recommend([]) == []
    assert service.recommend([], 5) == []


def test_purchased_products_are_never_recommended(mixed_catalog, mixed_history):
    service = RecommendationService(mixed_catalog)
    service.train(mixed_history)

    recommendations = service.recommend(mixed_history, 20)

    bought = {r.product_id for r in mixed_history}
    assert not bought & {r.product_id for r in recommendations}
    assert len(recommendations) == 20


def test_default_count_follows_history_length(mixed_catalog, mixed_history):
    service = RecommendationService(mixed_catalog)
    result = service.update(mixed_history)
    assert len(result.recommendations) == 5


def test_output_length_is_bounded_by_candidates(audio_catalog, audio_history):
    service = RecommendationService(audio_catalog)
    service.train(audio_history)
    assert len(service.recommend(audio_history, 50)) == len(audio_catalog) - 1


def test_recommend_is_deterministic_between_trainings(mixed_catalog, mixed_history):
    service = RecommendationService(mixed_catalog)
    service.train(mixed_history)

    first = service.recommend(mixed_history, 8)
    second = service.recommend(mixed_history, 8)

    assert [(r.product_id, r.score) for r in first] == [(r.product_id, r.score) for r in second]
    assert service.generation == 1


def test_same_seed_same_recommendations(mixed_catalog, mixed_history):
    first = RecommendationService(mixed_catalog).update(mixed_history).recommendations
    second = RecommendationService(mixed_catalog).update(mixed_history).recommendations
    assert [r.product_id for r in first] == [r.product_id for r in second]


def test_scores_in_unit_interval(mixed_catalog, mixed_history):
    service = RecommendationService(mixed_catalog)
    recommendations = service.update(mixed_history).recommendations
    assert all(0.0 <= r.score <= 1.0 for r in recommendations)


def test_six_recommendations_span_two_categories(audio_catalog, audio_history):
    service = RecommendationService(audio_catalog)
    service.train(audio_history)

    recommendations = service.recommend(audio_history, 6)

    assert len({r.category for r in recommendations}) >= 2


def test_strong_category_fills_list_above_floor(audio_catalog, audio_history):
    service = RecommendationService(audio_catalog)
    service.train(audio_history)

    recommendations = service.recommend(audio_history, 4)

    assert [r.category for r in recommendations] == ["Audio"] * 4


def test_new_category_admitted_when_floor_not_exceeded(audio_catalog, audio_history):
    service = RecommendationService(audio_catalog, ranking_config=RankingConfig(score_floor=0.999))
    service.train(audio_history)

    recommendations = service.recommend(audio_history, 4)

    assert [r.category for r in recommendations[:3]] == ["Audio"] * 3
    assert recommendations[3].category == "Electronics"


def test_malformed_products_are_excluded(mixed_catalog, mixed_history):
    products = list(mixed_catalog) + [
        Product(100, "Unlabelled", None, 30.0, ("wireless",)),
        Product(101, "Untagged", "Audio", 30.0, None),
    ]
    catalog = Catalog(products)
    service = RecommendationService(catalog)
    service.train(mixed_history)

    recommendations = service.recommend(mixed_history, 100)

    ids = {r.product_id for r in recommendations}
    assert not ids & {100, 101}
    assert len(recommendations) == len(mixed_catalog) - len(mixed_history)


def test_update_trains_then_recommends(audio_catalog, audio_history):
    service = RecommendationService(audio_catalog)

    result = service.update(audio_history)

    assert result.stats["generation"] == 1
    assert len(result.stats["training_log"]) == 1
    assert len(result.recommendations) == 4


def test_update_failure_raises_training_error(audio_catalog, audio_history, monkeypatch):
    service = RecommendationService(audio_catalog)

    def boom(history):
        raise FloatingPointError("diverged")

    monkeypatch.setattr(service.scorer, "train", boom)

    with pytest.raises(TrainingError):
        service.update(audio_history)
    assert service.generation == 0


def test_neural_service_recommends(mixed_catalog, mixed_history):
    service = RecommendationService(mixed_catalog, TrainingConfig(scorer="neural"))

    result = service.update(mixed_history)

    assert len(result.recommendations) == 5
    assert result.stats["parameters"]["layer_sizes"][-1] == 1


def test_reset_returns_to_untrained_state(mixed_catalog, mixed_history):
    service = RecommendationService(mixed_catalog)
    fresh = service.get_stats()["parameters"]
    service.update(mixed_history)

    service.reset()

    stats = service.get_stats()
    assert stats["generation"] == 0
    assert stats["training_log"] == []
    assert stats["parameters"] == fresh
    assert service.recommend([]) == []


def test_concurrent_updates_are_serialized(mixed_catalog, mixed_history):
    service = RecommendationService(mixed_catalog)
    errors = []

    def worker():
        try:
            service.update(mixed_history)
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    log = service.get_stats()["training_log"]
    assert service.generation == 8
    assert [e.generation for e in log] == list(range(1, 9))


def test_rationale_messages(mixed_catalog, mixed_history):
    assert build_rationale(mixed_catalog.get(3), []) == "Popular pick"
    assert build_rationale(mixed_catalog.get(3), mixed_history) == "You have bought 3 items in Audio"
    assert build_rationale(mixed_catalog.get(13), mixed_history) == "Based on your purchases in Gaming"
    # Books item 7 is tagged fiction; nothing matches
    assert build_rationale(mixed_catalog.get(7), mixed_history) == "Recommended for you"


def test_rationale_mentions_shared_tags():
    catalog = Catalog([
        Product(1, "Earbuds", "Audio", 50.0, ("wireless", "bluetooth", "portable")),
        Product(2, "Lamp", "Home", 40.0, ("portable", "wireless", "bluetooth")),
    ])
    history = [catalog.purchase(1)]

    assert build_rationale(catalog.get(2), history) == "Matches your interests: portable, wireless"
