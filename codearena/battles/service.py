# battle endpoints on top of the resilient fetcher
from enum import Enum
from typing import Any, List, Optional
from urllib.parse import quote

import structlog

from codearena.transport.envelope import Envelope, Outcome, to_outcome
from codearena.transport.fetcher import ResilientFetcher
from .models import Battle, BattleHistoryRow, RunResult, SubmissionResult

log = structlog.get_logger(__name__)


class BattleListKind(str, Enum):
    AVAILABLE = "available"
    WAITING = "waiting"
    ACTIVE = "active"
    HISTORY = "history"


def _battle_from(env: Envelope) -> Optional[Battle]:
    data = env.data if isinstance(env.data, dict) else {}
    raw = data.get("battle")
    if not isinstance(raw, dict):
        return None
    return Battle.model_validate(raw)


def _items(env: Envelope) -> List[Any]:
    if isinstance(env.data, list):
        return env.data
    if isinstance(env.data, dict) and isinstance(env.data.get("items"), list):
        return env.data["items"]
    return []


def _battles_from(env: Envelope) -> List[Battle]:
    return [Battle.model_validate(b) for b in _items(env) if isinstance(b, dict)]


class BattleService:
    """Battle actions. Every method resolves to an Outcome and never raises.

    Nothing here changes a battle optimistically: the caller gets the
    server's battle object back on success and keeps its own copy on failure.
    """

    def __init__(self, fetcher: ResilientFetcher):
        self.fetcher = fetcher

    async def _post(self, path: str, payload: dict) -> Any:
        return await self.fetcher.request(path, "POST", json=payload)

    async def _battle_action(self, path: str, battle_id: str, action: str) -> Outcome:
        r = await self._post(path, {"id": battle_id})
        out = to_outcome(r, _battle_from, default_message=f"{action} failed")
        if out.ok:
            log.info("battle.action", action=action, battle_id=battle_id, status=out.value.status.value)
        else:
            log.warning("battle.action_failed", action=action, battle_id=battle_id,
                        status=out.status, kind=out.kind, message=out.message)
        return out

    async def create_battle(self, title: str, *, challenge_id: Optional[str] = None,
                            challenge_title: str = "", duration_minutes: int = 30,
                            difficulty: str = "easy", language: str = "python",
                            prize_points: int = 25, opponent_username: Optional[str] = None) -> Outcome:
        payload = {
            "title": title,
            "challenge_id": challenge_id,
            "challenge_title": challenge_title,
            "duration_minutes": duration_minutes,
            "difficulty": difficulty,
            "language": language,
            "prize_points": prize_points,
        }
        if opponent_username:
            payload["opponent_username"] = opponent_username
        r = await self._post("/api/battles/create", payload)
        out = to_outcome(r, _battle_from, default_message="Create battle failed")
        if not out.ok:
            log.warning("battle.create_failed", status=out.status, kind=out.kind, message=out.message)
        return out

    async def join(self, battle_id: str) -> Outcome:
        return await self._battle_action("/api/battles/join", battle_id, "Join")

    async def accept(self, battle_id: str) -> Outcome:
        return await self._battle_action("/api/battles/accept", battle_id, "Accept")

    async def decline(self, battle_id: str) -> Outcome:
        return await self._battle_action("/api/battles/decline", battle_id, "Decline")

    async def get_battle(self, battle_id: str) -> Outcome:
        r = await self.fetcher.request(f"/api/battles/{quote(str(battle_id), safe='')}")
        return to_outcome(r, _battle_from, default_message="Unable to load battle")

    async def list_battles(self, kind: BattleListKind = BattleListKind.AVAILABLE) -> Outcome:
        r = await self.fetcher.request("/api/battles", params={"status": BattleListKind(kind).value})
        return to_outcome(r, _battles_from, default_message="Unable to load battles")

    async def history(self, current_user: Optional[str]) -> Outcome:
        out = await self.list_battles(BattleListKind.HISTORY)
        if not out.ok:
            return out
        rows = [BattleHistoryRow.from_battle(b, current_user) for b in out.value]
        return out.model_copy(update={"value": rows})

    async def run_code(self, language: str, code: str, input: str = "") -> Outcome:
        r = await self._post("/api/challenges/run", {"language": language, "code": code, "input": input or ""})
        return to_outcome(r, lambda env: RunResult.from_data(env.data), default_message="Execution failed")

    async def submit_code(self, battle_id: str, language: str, code: str) -> Outcome:
        r = await self._post("/api/battles/submit", {"id": battle_id, "language": language, "code": code})
        out = to_outcome(r, lambda env: SubmissionResult.model_validate(env.data or {}),
                         default_message="Submission failed")
        if out.ok and out.value.battle_completed:
            log.info("battle.completed", battle_id=battle_id, winner=out.value.winner)
        return out

    async def latest_submission(self, battle_id: str) -> Outcome:
        r = await self.fetcher.request("/api/battles/submission", params={"battle_id": battle_id})
        return to_outcome(r, lambda env: SubmissionResult.model_validate(env.data or {}),
                          default_message="No submissions found")
