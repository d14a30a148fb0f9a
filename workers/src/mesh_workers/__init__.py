"""Unified worker runner for all Temporal components.

Every deployment runs the same image with a different CLI argument to select
which component's workflows/activities to expose on that worker.
"""
