"""Akin: batch collaborative-filtering recommendation engine.

This package turns raw user-item activity into decayed item weights,
user-user cosine similarities and similarity-weighted recommendations,
and serves them through weighted sampling.

Modules:
    api: FastAPI application and REST API endpoints
    recommender: Pipeline stages, document store contract and sampling
"""

__version__ = "0.1.0"
