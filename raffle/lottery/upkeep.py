"""Upkeep predicate deciding when a raffle round should close."""

from __future__ import annotations

from typing import NamedTuple, Optional

from raffle.lottery.models import RaffleState


class UpkeepCheck(NamedTuple):
    """Outcome of an upkeep check; ``blocked_by`` names the first failed condition."""

    needed: bool
    blocked_by: Optional[str] = None


def check_upkeep_conditions(
    state: RaffleState,
    num_players: int,
    balance: int,
    now: int,
    last_timestamp: int,
    interval: int,
) -> UpkeepCheck:
    if state != RaffleState.OPEN:
        return UpkeepCheck(False, "not_open")
    if num_players == 0:
        return UpkeepCheck(False, "no_players")
    if balance <= 0:
        return UpkeepCheck(False, "no_balance")
    if now - last_timestamp < interval:
        return UpkeepCheck(False, "interval_not_elapsed")
    return UpkeepCheck(True)


def upkeep_needed(
    state: RaffleState,
    num_players: int,
    balance: int,
    now: int,
    last_timestamp: int,
    interval: int,
) -> bool:
    return check_upkeep_conditions(state, num_players, balance, now, last_timestamp, interval).needed
