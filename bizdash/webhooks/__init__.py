"""Webhook inbound system.

Receives order, payment and notification events from external systems.
Each webhook is tenant-resolved, signature-verified against the tenant's
secret, schema-validated, then turned into a domain write plus a
notification pushed to the tenant's room.
"""
