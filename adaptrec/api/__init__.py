"""FastAPI application module for AdaptRec.

This module contains the FastAPI application, the per-user session
registry and the REST endpoints for logging in, recording purchases and
reading recommendations and model statistics.
"""
