"""Reconciliation engine: scanning, manifest retrieval, repair, and resilience."""
