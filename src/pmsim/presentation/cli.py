from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pmsim.application.services.achievement_catalog import ACHIEVEMENTS
from pmsim.application.services.progression_engine import ProgressionEngine
from pmsim.domain.models.metrics import ensure_dict, ensure_metrics, safe_int
from pmsim.domain.models.risk import RiskCard
from pmsim.domain.models.session import SimulationAction, SimulationSession


_BORDER_DAY = "yellow"
_BORDER_SUMMARY = "green"
_BORDER_COACH = "cyan"

DEMO_ACTION_PLAN: tuple[tuple[str, ...], ...] = (
    ("assign_task", "assign_task", "respond_event"),
    ("schedule_workshop", "allocate_overtime", "ack_budget_cut"),
    ("assign_task", "respond_event", "assign_task"),
    ("assign_task", "respond_event", "respond_event"),
)
XP_PER_LEVEL = 150


def _ornate_title(title: str) -> str:
    return f"[bold yellow]{title}[/bold yellow]"


def create_demo_session(engine: ProgressionEngine, *, session_id: str = "demo", seed: int = 7) -> SimulationSession:
    session = SimulationSession(
        id=session_id,
        user_id=1,
        current_day=1,
        budget_total=20000,
        budget_used=4000,
        rng_seed=int(seed),
        metrics={"morale": 74, "level": 1, "xp": 0},
    )
    return engine.repository.create(session)


def _sync_level(engine: ProgressionEngine, session_id: str) -> list[str]:
    """Stand-in for the leveling collaborator: level follows xp in fixed steps."""

    def _step(session: SimulationSession):
        metrics = ensure_metrics(session)
        before = safe_int(metrics.get("level", 1), 1)
        after = max(before, 1 + safe_int(metrics.get("xp", 0)) // XP_PER_LEVEL)
        metrics["level"] = after
        return before, after

    (before, after), _ = engine.guard.mutate(session_id, _step)
    if after <= before:
        return []
    return engine.unlock_perks(session_id, before, after).unlocked_perks


def run_demo(engine: ProgressionEngine, session_id: str, *, days: int, console: Console) -> SimulationSession:
    clock = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
    for day_index in range(max(1, int(days))):
        lines: list[str] = []
        plan = DEMO_ACTION_PLAN[day_index % len(DEMO_ACTION_PLAN)]
        for offset, action_type in enumerate(plan):
            outcome = engine.record_action(
                session_id,
                SimulationAction(type=action_type, performed_at=clock + timedelta(minutes=4 * offset)),
            )
            for key in outcome.earned_achievements:
                lines.append(f"[green]Achievement[/green] {ACHIEVEMENTS[key].title}")
            for key in outcome.completed_quests:
                lines.append(f"[magenta]Quest complete[/magenta] {key}")

        for perk_key in _sync_level(engine, session_id):
            lines.append(f"[cyan]Perk unlocked[/cyan] {perk_key}")

        session = engine.repository.require(session_id)
        active = session.metrics.get("risk_deck", {}).get("active", [])
        if active and day_index % 2 == 0:
            card = active[0]
            if engine.mitigate(session_id, str(card.get("id"))):
                lines.append(f"[green]Mitigated[/green] {card.get('title')}")

        cycle = engine.advance_day(session_id, perfect_capacity=(day_index % 3 == 2))
        if cycle.drawn_card is not None:
            lines.append(
                f"[yellow]Risk drawn[/yellow] {cycle.drawn_card.title} (deadline day {cycle.drawn_card.deadline_day})"
            )
        for card in cycle.triggered_cards:
            lines.append(f"[red]Risk triggered[/red] {card.title}")
        for modifier in cycle.expired_buffs:
            lines.append(f"[dim]Expired[/dim] {modifier.label}")
        for key in cycle.earned_achievements:
            lines.append(f"[green]Achievement[/green] {ACHIEVEMENTS[key].title}")

        console.print(
            Panel.fit(
                "\n".join(lines) or "[dim]A quiet day.[/dim]",
                title=_ornate_title(f"Day {cycle.day}"),
                border_style=_BORDER_DAY,
            )
        )
        clock += timedelta(days=1)
    return engine.repository.require(session_id)


def render_summary(
    console: Console,
    session: SimulationSession,
    tips: list[str],
    *,
    base_hours: int,
    hours: int,
    risk_history: list[RiskCard] | None = None,
) -> None:
    metrics = ensure_metrics(session)
    earned = ensure_dict(metrics, "achievements")

    table = Table(title="Achievements")
    table.add_column("Key")
    table.add_column("Title")
    table.add_column("Points", justify="right")
    for key, row in earned.items():
        definition = ACHIEVEMENTS.get(key)
        table.add_row(key, definition.title if definition else key, str(row.get("points", 0)))
    console.print(table)

    quests = Table(title="Quests")
    quests.add_column("Quest")
    quests.add_column("Steps done", justify="right")
    quests.add_column("Completed")
    for key, quest in ensure_dict(metrics, "quests").items():
        steps = quest.get("steps", [])
        done = sum(1 for step in steps if isinstance(step, dict) and step.get("done") is True)
        quests.add_row(str(quest.get("title", key)), f"{done}/{len(steps)}", "yes" if quest.get("completed") else "no")
    console.print(quests)

    if risk_history:
        risks = Table(title="Risk history")
        risks.add_column("Risk")
        risks.add_column("Drawn", justify="right")
        risks.add_column("Deadline", justify="right")
        risks.add_column("Outcome")
        for card in risk_history:
            risks.add_row(card.title, str(card.day_drawn), str(card.deadline_day), card.state.value)
        console.print(risks)

    deck = metrics.get("risk_deck", {})
    console.print(
        Panel.fit(
            "\n".join(
                [
                    f"Day: {session.current_day}",
                    f"XP: {safe_int(metrics.get('xp', 0))}  Level: {safe_int(metrics.get('level', 1), 1)}",
                    f"Active risks: {len(deck.get('active', []))}  Resolved: {len(deck.get('history', []))}",
                    f"Live buffs: {', '.join(str(row.get('key')) for row in metrics.get('buffs', [])) or 'none'}",
                    f"Task of {base_hours}h now takes {hours}h",
                ]
            ),
            title=_ornate_title("Session Summary"),
            border_style=_BORDER_SUMMARY,
        )
    )
    console.print(
        Panel.fit(
            "\n".join(f"- {tip}" for tip in tips),
            title=_ornate_title("Coach"),
            border_style=_BORDER_COACH,
        )
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pmsim", description="Run a scripted progression session.")
    parser.add_argument("--days", type=int, default=6, help="Simulated days to play (default: 6).")
    parser.add_argument("--seed", type=int, default=7, help="Session RNG seed (default: 7).")
    parser.add_argument("--session-id", default="demo", help="Session id to create (default: demo).")
    parser.add_argument("--base-hours", type=int, default=8, help="Task size used for the throughput readout.")
    return parser


def run_cli(engine: ProgressionEngine, argv: list[str] | None = None, *, console: Console | None = None) -> int:
    args = build_parser().parse_args(argv)
    out = console or Console()
    create_demo_session(engine, session_id=args.session_id, seed=args.seed)
    session = run_demo(engine, args.session_id, days=args.days, console=out)
    hours = engine.modify_task_throughput(args.session_id, args.base_hours)
    tips = engine.generate_tips(args.session_id)
    render_summary(
        out,
        session,
        tips,
        base_hours=args.base_hours,
        hours=hours,
        risk_history=engine.risk_deck.history_cards(session),
    )
    return 0
