"""Realtime conversation sync engine.

    - schemas: participants, messages, snapshots
    - message_log: ordered, deduplicated log with monotone receipts
    - presence: participant online map
    - typing_coordinator: debounced typing signals
    - scroll: scroll-anchor policy
    - session: per-conversation orchestrator
    - directory / search: sidebar list and user search
    - client: process-level owner of the single active session
"""
