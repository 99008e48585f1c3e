"""
HTTP and WebSocket boundary for salesdesk.

Design intent:
- Accept transcript frames live; answer report queries from the logs.
- Keep request validation explicit and map bad input to 400.
- Orchestrate modules without embedding domain logic in routes.
"""
