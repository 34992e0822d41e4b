"""Notification records, their tenant-scoped store, the service and HTTP API."""
