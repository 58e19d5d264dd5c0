"""Pipelines for feed ingestion, value normalization and the sold sweep.

Each step is callable on its own so it can be reused from the webhook,
scheduled jobs and tests.
"""
