"""Scroll-anchor policy: follow the newest message or hold position."""
from enum import Enum
from typing import Optional


class ScrollAction(str, Enum):
    """What the view should do after a log mutation.

    Attributes:
        HOLD: Keep the current scroll position.
        FOLLOW: Animate to the new tail.
        SNAP: Jump to the tail without animation (conversation switch).
    """
    HOLD = "hold"
    FOLLOW = "follow"
    SNAP = "snap"


def decide_scroll(
    previous_tail_id: Optional[str],
    new_tail_id: Optional[str],
    switched: bool = False,
) -> ScrollAction:
    """Decide whether a log mutation should move the view.

    Only a change of tail ID moves the view, so receipt updates on existing
    messages never scroll. A new tail is followed whoever sent it: a local
    send is always revealed, and a peer message once per distinct tail ID.
    """
    if switched:
        return ScrollAction.SNAP
    if new_tail_id is None or new_tail_id == previous_tail_id:
        return ScrollAction.HOLD
    return ScrollAction.FOLLOW
