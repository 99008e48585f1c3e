"""
salesdesk package.

Design intent:
- Ingest live call transcripts into customer sessions.
- Keep append-only logs as the single source of truth.
- Build daily sales-activity reports on demand from those logs.
"""
