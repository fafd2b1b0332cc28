"""Ingestion helpers.

Raw aggregation results are checked and normalized here before the differ
sees them.
"""
