"""Catalog Access: provisioning activities over the central data catalog.

Locations, databases, tables and the grants on each, stored in Redis and
served to the registration workflow on catalog-access-queue.
"""
