"""FastAPI application module for Akin.

This module contains the FastAPI application, route handlers, and API
endpoints for logging activity, running the batch pipeline and sampling
recommendations.
"""
