#!/usr/bin/env python3
"""
CLI for playing King of Diamonds against bots without the server.

Usage:
    python cli.py                  # 1 human + 4 bots
    python cli.py --bots 2         # 1 human + 2 bots
    python cli.py --auto           # a bot plays your seat too (spectator mode)
    python cli.py --rounds 5       # stop after 5 rounds
"""
from __future__ import annotations

import argparse
import random
import sys
from typing import List, Optional

from diamonds.ai.bot import BotPlayer
from diamonds.core.config import Settings, get_settings
from diamonds.core.constants import BOT_NAMES
from diamonds.game.game_state import BotContext, RoundResult
from diamonds.game.player import Player, PlayerKind
from diamonds.game.rules import active_rules, resolve_round


# -- ANSI colors ---------------------------------------------------------------

RESET  = "\033[0m"
BOLD   = "\033[1m"
DIM    = "\033[2m"
RED    = "\033[91m"
GREEN  = "\033[92m"
YELLOW = "\033[93m"
CYAN   = "\033[96m"
WHITE  = "\033[97m"


def fmt_score(n: int) -> str:
    color = GREEN if n >= 0 else (RED if n <= -7 else YELLOW)
    return f"{color}{n:+d}{RESET}"


# -- Display helpers -----------------------------------------------------------

def print_divider(label: str = "") -> None:
    if label:
        print(f"\n{DIM}{'─' * 20} {BOLD}{WHITE}{label} {DIM}{'─' * 20}{RESET}")
    else:
        print(f"{DIM}{'─' * 60}{RESET}")


def print_scoreboard(players: List[Player], human_id: Optional[str]) -> None:
    for p in sorted(players, key=lambda p: p.score, reverse=True):
        marker = f" {DIM}(eliminated){RESET}" if p.is_eliminated else ""
        you = f" {CYAN}<- you{RESET}" if p.player_id == human_id else ""
        print(f"  {p.name:<16} {fmt_score(p.score):>14}{marker}{you}")
    print()


def print_round_result(result: RoundResult, human_id: Optional[str]) -> None:
    print_divider(f"ROUND {result.round} RESULT")
    if result.choices and any(not c.timed_out for c in result.choices):
        print(f"  Average: {result.average:.2f}   Target: {BOLD}{result.target:.2f}{RESET}")
    for c in result.choices:
        choice = f"{DIM}timeout{RESET}" if c.timed_out else f"{c.choice:>3}"
        losses = ", ".join(f"{l.reason} ({l.points:+d})" for l in c.point_losses)
        you = f" {CYAN}*{RESET}" if c.player_id == human_id else ""
        print(f"  {c.name:<16} {choice:>8}  {DIM}{losses}{RESET}{you}")
    print(f"\n  {GREEN}{BOLD}Winner: {result.winner}{RESET}")
    for name in result.eliminated_this_round:
        print(f"  {RED}{BOLD}{name} has been eliminated{RESET}")
    print()


# -- Input helpers -------------------------------------------------------------

def prompt_choice() -> Optional[int]:
    """Ask the human for a number. Empty input counts as a timeout."""
    while True:
        try:
            raw = input(f"\n  {BOLD}Your number (0-100, empty to skip): {RESET}").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            sys.exit(0)

        if not raw:
            return None
        try:
            value = int(raw)
        except ValueError:
            print(f"  {RED}Enter a whole number.{RESET}")
            continue
        if 0 <= value <= 100:
            return value
        print(f"  {RED}Invalid choice. Must be an integer between 0 and 100{RESET}")


# -- Synchronous game driver ---------------------------------------------------

class CLIGame:
    """Drive the rule engine synchronously from the terminal."""

    def __init__(
        self,
        num_bots: int = 4,
        auto: bool = False,
        max_rounds: int = 0,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.bot = BotPlayer()
        self.auto = auto
        self.max_rounds = max_rounds
        self.human_id = "human"
        self.players: List[Player] = [Player(player_id=self.human_id, name="You")]
        self.history: List[RoundResult] = []
        self.eliminated_count = 0

        names = random.sample(BOT_NAMES, k=min(num_bots, len(BOT_NAMES)))
        for i, name in enumerate(names):
            self.players.append(Player(player_id=f"bot-{i}", name=name, kind=PlayerKind.BOT))

    @property
    def eligible(self) -> List[Player]:
        return [p for p in self.players if p.is_eligible]

    def _context(self, round_number: int) -> BotContext:
        return BotContext(
            active_rules=tuple(self._rules()),
            active_players=tuple(self.eligible),
            round_history=tuple(self.history),
            eliminated_count=self.eliminated_count,
            current_round=round_number,
        )

    def _rules(self):
        return active_rules(
            self.eliminated_count,
            len(self.eligible),
            self.settings.duplicate_rule_threshold,
            self.settings.perfect_target_rule_threshold,
        )

    def run(self) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  King of Diamonds  {DIM}(closest to 80% of the average wins){RESET}")
        print(f"  {len(self.players)} players, eliminated at {self.settings.elimination_score} points")
        print(f"{BOLD}{'=' * 60}{RESET}")

        round_number = 0
        while len(self.eligible) > 1:
            human = self.players[0]
            if human.is_eliminated and not self.auto:
                print(f"\n{RED}{BOLD}You have been eliminated! Game over.{RESET}")
                break

            round_number += 1
            if self.max_rounds and round_number > self.max_rounds:
                break
            self._play_round(round_number)

        remaining = self.eligible
        print_divider("FINAL STANDINGS")
        if len(remaining) == 1:
            print(f"  {GREEN}{BOLD}{remaining[0].name} is the King of Diamonds!{RESET}\n")
        print_scoreboard(self.players, self.human_id)

    def _play_round(self, round_number: int) -> None:
        print_divider(f"ROUND {round_number}")
        for rule in self._rules():
            print(f"  {YELLOW}•{RESET} {rule.description}")
        print()
        print_scoreboard(self.players, self.human_id)

        context = self._context(round_number)
        seq = 0
        for p in self.eligible:
            p.reset_round()
            if p.is_bot or self.auto:
                choice: Optional[int] = self.bot.decide(p, context)
            else:
                choice = prompt_choice()
            if choice is None:
                continue
            seq += 1
            p.current_choice = choice
            p.has_chosen = True
            p.choice_seq = seq

        outcome = resolve_round(
            round_number, self.eligible, self.players, self.eliminated_count, self.settings,
        )
        self.eliminated_count += len(outcome.newly_eliminated)
        self.history.append(outcome.result)
        print_round_result(outcome.result, self.human_id)


# -- Entry point ---------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(
        description="King of Diamonds — CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  python cli.py                 1 human + 4 bots
  python cli.py --bots 2        1 human + 2 bots
  python cli.py --auto          let a bot play your seat
  python cli.py --rounds 5      play 5 rounds then stop
""",
    )
    parser.add_argument("--bots", type=int, default=4, help="number of bots (default: 4)")
    parser.add_argument("--auto", action="store_true", help="a bot chooses for the human seat")
    parser.add_argument("--rounds", type=int, default=0, help="number of rounds to play (0=unlimited)")

    args = parser.parse_args()
    if args.bots < 1:
        parser.error("need at least one bot")

    game = CLIGame(num_bots=args.bots, auto=args.auto, max_rounds=args.rounds)
    game.run()


if __name__ == "__main__":
    main()
