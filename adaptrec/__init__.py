"""AdaptRec: adaptive product recommendation engine.

This package turns a user's purchase history into a ranked,
diversity-balanced list of product suggestions and keeps adapting its
scoring model as purchases accrue.

Modules:
    api: FastAPI application, session handling and REST endpoints
    recommender: feature extraction, scoring models, training and ranking
"""

__version__ = "0.1.0"
