"""Sync infrastructure for the Fitbit ledger.

Modules:
    orchestrator — Per-day / per-range pipelines under a shared rate budget
    dedup        — Sample identity keys, batch dedup and insert-or-ignore query builder
"""
