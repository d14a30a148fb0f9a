"""Event Bus: the central bus, its domain registry, and HTTP delivery.

Serves notification publishing and domain registration on event-bus-queue.
"""
