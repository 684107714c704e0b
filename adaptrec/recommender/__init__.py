"""Recommendation engine for AdaptRec.

This module contains the catalog model, feature extraction, the heuristic
and neural scoring models, the trainer, the diversity ranker and the
session-scoped RecommendationService that ties them together.
"""
