"""chatsync: realtime conversation sync engine for a one-to-one chat client.

Merges REST snapshots with the live event stream into one consistent view
per open conversation. See chatsync.main.build_client for wiring.
"""

__version__ = "0.1.0"
