"""Live-event transport.

    - events: closed catalogue of event kinds and payload models
    - connection: shared persistent connection (WebSocket implementation)
"""
