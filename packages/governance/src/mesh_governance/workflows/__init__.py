"""Governance workflows: data product registration, domain registration, re-notification."""
