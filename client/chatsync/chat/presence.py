"""Participant presence map.

Presence is advisory and eventually consistent. Values come only from the
live stream (userOnline/userOffline) or a snapshot refresh, and an unknown
participant is reported offline rather than raising.
"""
import logging
from typing import Callable, Dict, Iterable, List

from .schemas import Participant

logger = logging.getLogger(__name__)

PresenceListener = Callable[[str, bool], None]


class PresenceTracker:
    """Maps participant ID -> online flag."""

    def __init__(self) -> None:
        self._online: Dict[str, bool] = {}
        self._listeners: List[PresenceListener] = []

    def mark_online(self, participant_id: str) -> bool:
        """Record *participant_id* as online. Returns True if the value changed."""
        return self._set(participant_id, True)

    def mark_offline(self, participant_id: str) -> bool:
        """Record *participant_id* as offline. Returns True if the value changed."""
        return self._set(participant_id, False)

    def is_online(self, participant_id: str) -> bool:
        return self._online.get(participant_id, False)

    def apply_snapshot(self, participants: Iterable[Participant], overwrite: bool = False) -> None:
        """Refresh presence from snapshot participants.

        A snapshot can be older than live events that already arrived, so by
        default it only fills in participants without a recorded value.
        """
        for participant in participants:
            if overwrite or participant.id not in self._online:
                self._set(participant.id, participant.online)

    def known(self, participant_id: str) -> bool:
        return participant_id in self._online

    def add_listener(self, listener: PresenceListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set(self, participant_id: str, online: bool) -> bool:
        if not participant_id:
            return False
        if self._online.get(participant_id) == online:
            return False
        self._online[participant_id] = online
        logger.debug("[Presence] %s is %s", participant_id, "online" if online else "offline")
        for listener in list(self._listeners):
            listener(participant_id, online)
        return True
