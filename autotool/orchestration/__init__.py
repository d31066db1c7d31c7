"""
Orchestration package for automatic tool selection:
- Agent resolution (inline, persisted, conversation-bound, ephemeral)
- Role-aware policy gating
- Pattern fast path and classifier fallback
- Reconciliation of the selected tools onto the outgoing request
"""
