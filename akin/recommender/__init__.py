"""Recommendation pipeline for Akin.

This module contains the decay model, the three batch stages (activity
aggregation, user similarity, recommendation aggregation), the sampler used
at serve time, and the document store contract they all read and write.
"""
