"""Backend package: DB models, feed pipelines, catalog and API.

This package ingests the dealer inventory feed, sweeps sold listings, and
serves the vehicle catalog to the website and its admin dashboard.
"""
