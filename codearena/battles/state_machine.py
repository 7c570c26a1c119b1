"""Client-side view of the battle lifecycle.

The server is authoritative. These helpers only decide what to offer the
user; requests are still sent and a server rejection is what counts.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional, Set, Tuple

from .models import Battle, BattleStatus


class BattleAction(str, Enum):
    JOIN = "join"
    ACCEPT = "accept"
    DECLINE = "decline"
    RUN = "run"
    SUBMIT = "submit"
    VIEW = "view"


ACTIONS_BY_STATUS: Dict[BattleStatus, FrozenSet[BattleAction]] = {
    BattleStatus.WAITING: frozenset({BattleAction.JOIN}),
    BattleStatus.INVITED: frozenset({BattleAction.ACCEPT, BattleAction.DECLINE}),
    BattleStatus.IN_PROGRESS: frozenset({BattleAction.RUN, BattleAction.SUBMIT}),
    BattleStatus.COMPLETED: frozenset({BattleAction.VIEW}),
}

# nominal targets; None means the server decides (decline withdraws the invite,
# submit may or may not finish the match)
TRANSITIONS: Dict[Tuple[BattleStatus, BattleAction], Optional[BattleStatus]] = {
    (BattleStatus.WAITING, BattleAction.JOIN): BattleStatus.IN_PROGRESS,
    (BattleStatus.INVITED, BattleAction.ACCEPT): BattleStatus.IN_PROGRESS,
    (BattleStatus.INVITED, BattleAction.DECLINE): None,
    (BattleStatus.IN_PROGRESS, BattleAction.RUN): BattleStatus.IN_PROGRESS,
    (BattleStatus.IN_PROGRESS, BattleAction.SUBMIT): None,
}


def _allowed_for(battle: Battle, action: BattleAction, username: Optional[str]) -> bool:
    if action == BattleAction.VIEW:
        return True
    if action == BattleAction.RUN:
        # non-scoring execution, anyone may try code while the match runs
        return True
    if not username:
        return False
    if action == BattleAction.JOIN:
        return username != battle.creator.username
    if action in (BattleAction.ACCEPT, BattleAction.DECLINE):
        return battle.invited is not None and username == battle.invited
    if action == BattleAction.SUBMIT:
        return battle.is_participant(username)
    return False


def legal_actions(battle: Battle, username: Optional[str] = None) -> Set[BattleAction]:
    allowed = ACTIONS_BY_STATUS.get(battle.status, frozenset())
    return {a for a in allowed if _allowed_for(battle, a, username)}


def is_legal(battle: Battle, action: BattleAction, username: Optional[str] = None) -> bool:
    return action in legal_actions(battle, username)


def expected_status(status: BattleStatus, action: BattleAction) -> Optional[BattleStatus]:
    """Nominal status after ``action``. Raises KeyError for a pair with no transition."""
    return TRANSITIONS[(status, action)]


def is_terminal(status: BattleStatus) -> bool:
    return status == BattleStatus.COMPLETED
