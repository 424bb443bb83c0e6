"""Target calculation, escalating rules, penalties and elimination checks."""
from __future__ import annotations
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from diamonds.core.config import Settings
from diamonds.game.game_state import (
    ALL_TIMED_OUT,
    ChoiceRecord,
    PointLoss,
    RoundResult,
    Rule,
)
from diamonds.game.player import Player

TIMEOUT = "Timeout"
TIMEOUT_ELIMINATION = "Second timeout (eliminated)"
DUPLICATE = "Duplicate number"
PERFECT_TARGET = "Someone hit exact target"
NOT_CLOSEST = "Not closest to target"


def active_rules(
    eliminated_count: int,
    live_count: int,
    duplicate_threshold: int = 1,
    perfect_target_threshold: int = 2,
) -> List[Rule]:
    """
    Rules in force for the given elimination counter and live-player count.

    Elimination-gated rules only ever accumulate because eliminated_count
    never decreases. The 0/100 rule depends on the live count alone.
    """
    rules = [Rule.TIMEOUT]
    if eliminated_count >= duplicate_threshold:
        rules.append(Rule.DUPLICATE)
    if eliminated_count >= perfect_target_threshold:
        rules.append(Rule.PERFECT_TARGET)
    if live_count == 2:
        rules.append(Rule.ZERO_HUNDRED)
    return rules


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_target(choices: Sequence[int], ratio: float = 0.8) -> Tuple[float, float]:
    """Return (average, target). Raises ValueError on an empty sequence."""
    if not choices:
        raise ValueError("cannot compute a target without choices")
    average = sum(choices) / len(choices)
    return average, average * ratio


def closest_to_target(submitters: Iterable[Player], target: float) -> Optional[Player]:
    """Submitter nearest the target; ties go to the earliest submission."""
    ranked = sorted(
        submitters,
        key=lambda p: (abs(p.current_choice - target), p.choice_seq),
    )
    return ranked[0] if ranked else None


def duplicate_choices(submitters: Iterable[Player]) -> List[Player]:
    submitters = list(submitters)
    counts = Counter(p.current_choice for p in submitters)
    return [p for p in submitters if counts[p.current_choice] > 1]


def zero_hundred_winner(submitters: Sequence[Player]) -> Optional[Player]:
    """The 100-chooser when one player picked 0 and another picked 100."""
    zero = next((p for p in submitters if p.current_choice == 0), None)
    hundred = next((p for p in submitters if p.current_choice == 100), None)
    if zero is not None and hundred is not None:
        return hundred
    return None


@dataclass
class RoundOutcome:
    result: RoundResult
    winner: Optional[Player] = None
    newly_eliminated: List[Player] = field(default_factory=list)


def resolve_round(
    round_number: int,
    eligible: Sequence[Player],
    roster: Iterable[Player],
    eliminated_count: int,
    settings: Settings,
) -> RoundOutcome:
    """
    Score one round. Mutates the players' scores, timeout counters and
    elimination flags and returns the immutable record plus the players
    eliminated by this round.

    `eligible` is the snapshot of players taking part in this round, in join
    order; `roster` is every player in the room (for the score-based
    elimination sweep).
    """
    losses: Dict[str, List[PointLoss]] = {p.player_id: [] for p in eligible}
    timeout_players: List[str] = []
    eliminated_by_timeout: List[str] = []
    newly_eliminated: List[Player] = []

    def penalise(player: Player, reason: str, points: int) -> None:
        player.score += points
        losses[player.player_id].append(PointLoss(reason, points))

    # Timeouts
    for p in eligible:
        if p.has_chosen:
            p.timeout_count = 0
            continue
        p.timeout_count += 1
        p.current_choice = None
        if p.timeout_count >= settings.timeout_elimination_threshold:
            p.is_eliminated = True
            newly_eliminated.append(p)
            eliminated_by_timeout.append(p.name)
            losses[p.player_id].append(PointLoss(TIMEOUT_ELIMINATION, 0))
        else:
            timeout_players.append(p.name)
            penalise(p, TIMEOUT, settings.timeout_penalty)

    submitters = [p for p in eligible if p.has_chosen]
    winner: Optional[Player] = None
    average = target = 0.0

    if submitters:
        average, target = compute_target([p.current_choice for p in submitters], settings.target_ratio)
        winner = closest_to_target(submitters, target)

        live_count = sum(1 for p in eligible if not p.is_eliminated)
        rules = active_rules(
            eliminated_count + len(newly_eliminated),
            live_count,
            settings.duplicate_rule_threshold,
            settings.perfect_target_rule_threshold,
        )

        if Rule.DUPLICATE in rules:
            for p in duplicate_choices(submitters):
                penalise(p, DUPLICATE, settings.duplicate_penalty)

        if Rule.PERFECT_TARGET in rules:
            exact = round_half_up(target)
            if any(p.current_choice == exact for p in submitters):
                for p in submitters:
                    if p.current_choice != exact:
                        penalise(p, PERFECT_TARGET, settings.perfect_target_penalty)

        if Rule.ZERO_HUNDRED in rules:
            winner = zero_hundred_winner(submitters) or winner

        for p in submitters:
            if p is not winner:
                penalise(p, NOT_CLOSEST, settings.not_closest_penalty)

    # Score-based eliminations, checked after every round's penalties
    for p in roster:
        if not p.is_eliminated and p.score <= settings.elimination_score:
            p.is_eliminated = True
            newly_eliminated.append(p)

    winner_label = winner.name if winner is not None else ALL_TIMED_OUT

    result = RoundResult(
        round=round_number,
        choices=tuple(
            ChoiceRecord(
                player_id=p.player_id,
                name=p.name,
                choice=p.current_choice if p.has_chosen else None,
                timed_out=not p.has_chosen,
                point_losses=tuple(losses[p.player_id]),
            )
            for p in eligible
        ),
        average=average,
        target=target,
        winner=winner_label,
        winner_id=winner.player_id if winner else None,
        timeout_players=tuple(timeout_players),
        eliminated_by_timeout=tuple(eliminated_by_timeout),
        eliminated_this_round=tuple(p.name for p in newly_eliminated),
    )
    return RoundOutcome(result=result, winner=winner, newly_eliminated=newly_eliminated)
