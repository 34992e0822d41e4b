"""bizdash — tenant notification pipeline for the business dashboard.

Webhook ingestion, notification persistence, tenant-scoped real-time
broadcast and the client-side notification feed.
"""

__version__ = "0.4.0"
