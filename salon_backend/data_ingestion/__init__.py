"""
Data ingestion package.

Responsibilities:
- Load raw MongoDB exports (salon profiles, bookings, subscriptions).
- Normalize them into the canonical schemas used by the recommendation store.
- Persist the processed CSVs locally for the API to load.
"""
