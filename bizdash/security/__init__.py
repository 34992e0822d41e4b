"""Tenant authentication, CORS and rate limiting for the HTTP API."""
