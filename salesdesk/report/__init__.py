"""
Daily report boundary for salesdesk.

Design intent:
- Rebuild sessions and customers purely from one day's logs.
- Keep output deterministic so repeated exports are byte-identical.
- Render Markdown/CSV as pure functions of the report object.
"""
