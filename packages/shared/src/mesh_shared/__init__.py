"""Shared infrastructure for the Data Mesh central governance platform.

Provides the Temporal client connection factory, task queue constants, the
Redis storage adapter, failure kinds, and the Pydantic boundary models used
across all components.
"""
