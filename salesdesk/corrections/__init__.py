"""
Correction overlay boundary for salesdesk.

Design intent:
- Record manual customer identity fixes as append-only entries.
- Resolve them on read with last-appended-wins semantics.
"""
