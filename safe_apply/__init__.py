"""safe-apply: apply generator-proposed file and command plans to a project.

Core design goals:
- Never trust the proposer's paths, commands or byte counts
- Reject unsafe plans before any mutation
- Additive merging that never drops existing lines
- Atomic writes; no partially-written file is ever observable
- Centralized logging and an audit trail of applied steps
"""

__all__ = []
