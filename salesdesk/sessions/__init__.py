"""
Live session module boundary for salesdesk.

Design intent:
- Turn an ordered stream of transcript text into call sessions.
- Keep customer-name heuristics swappable per script/locale.
- Write every state change through to the append-only event log.
"""
