#!/usr/bin/env python3
"""
Command line entry point for BullySim.

Runs the election engine headless and prints the protocol trace:
- elect: one election from a chosen initiator
- run: heartbeat monitoring with a scripted failure/recovery timeline

By default time is fast-forwarded on a virtual scheduler; ``--realtime``
binds the asyncio event loop so the trace unfolds at its real pace.
"""

import asyncio
import sys
from collections.abc import Callable
from typing import TypeAlias

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from ..core.config import SimulatorSettings
from ..core.errors import BullySimError
from ..core.events import LogCategory, SimulationCallbacks
from ..core.logging import configure_logging
from ..core.scheduler import Scheduler, VirtualScheduler
from ..datastructures.messages import CounterIdGenerator, Message
from ..datastructures.type_aliases import ProcessId
from ..simulator import BullySimulator

console = Console()

CATEGORY_STYLES = {
    LogCategory.INFO: "dim",
    LogCategory.ELECTION: "yellow",
    LogCategory.FAILURE: "bold red",
    LogCategory.RECOVERY: "green",
    LogCategory.LEADER: "bold cyan",
}

TimelineEvent: TypeAlias = tuple[ProcessId, float]


def parse_node_ids(raw: str) -> list[ProcessId]:
    """Parse comma-separated ids, dropping invalid entries and duplicates."""
    ids: set[ProcessId] = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = int(part)
        except ValueError:
            logger.debug(f"Skipping non-numeric node id {part!r}")
            continue
        if value > 0:
            ids.add(value)
    return sorted(ids)


def _ids_option(ctx: click.Context, param: click.Parameter, value: str) -> list[ProcessId]:
    ids = parse_node_ids(value)
    if not ids:
        raise click.BadParameter("enter valid node ids (positive numbers)")
    return ids


def _timeline_option(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> list[TimelineEvent]:
    events: list[TimelineEvent] = []
    for value in values:
        process_part, _, time_part = value.partition("@")
        try:
            events.append((int(process_part), float(time_part or 0.0)))
        except ValueError as e:
            raise click.BadParameter(f"expected PID@SECONDS, got {value!r}") from e
    return events


class TracePrinter:
    """Prints engine output as it happens, with times relative to the start."""

    def __init__(self, show_messages: bool) -> None:
        self.show_messages = show_messages
        self.started_at = 0.0
        self.clock: Callable[[], float] = lambda: 0.0
        self.winners: list[ProcessId] = []
        self.message_count = 0

    def bind(self, scheduler: Scheduler) -> None:
        self.clock = scheduler.now
        self.started_at = scheduler.now()

    def callbacks(self) -> SimulationCallbacks:
        return SimulationCallbacks(
            on_message=self.message,
            on_log=self.log,
            on_election_complete=self.winners.append,
        )

    def _stamp(self) -> str:
        return f"[dim]{self.clock() - self.started_at:7.2f}s[/dim]"

    def message(self, message: Message) -> None:
        self.message_count += 1
        if self.show_messages:
            style = "dim" if message.is_heartbeat else "magenta"
            console.print(f"{self._stamp()} [{style}]{message.describe()}[/{style}]")

    def log(self, text: str, category: LogCategory) -> None:
        style = CATEGORY_STYLES[category]
        console.print(f"{self._stamp()} [{style}]{text}[/{style}]")


def _summary(sim: BullySimulator, printer: TracePrinter) -> None:
    table = Table(title="Processes")
    table.add_column("Process", style="cyan")
    table.add_column("Active")
    table.add_column("Leader")
    for process in sim.snapshot():
        table.add_row(
            process.label,
            "[green]yes[/green]" if process.is_active else "[red]no[/red]",
            "[bold cyan]*[/bold cyan]" if process.is_leader else "",
        )
    console.print(table)
    leader = f"P{sim.leader_id}" if sim.leader_id is not None else "none"
    console.print(
        f"Leader: [bold]{leader}[/bold]  elections completed: {len(printer.winners)}"
        f"  messages: {printer.message_count}"
    )


def setup_logging(ctx: click.Context, level: str) -> None:
    configure_logging(
        "DEBUG" if ctx.obj["verbose"] else level,
        debug_scopes=ctx.obj["debug_scopes"],
        colorize=True,
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--debug-scope",
    "debug_scopes",
    multiple=True,
    help="Enable DEBUG logging for one engine module, e.g. election.heartbeat",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug_scopes: tuple[str, ...]) -> None:
    """
    BullySim: Bully leader-election simulator.

    Drives the election engine without a UI and prints every protocol
    milestone.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug_scopes"] = debug_scopes


@cli.command()
@click.option(
    "--ids",
    default="1,2,3,4,5",
    callback=_ids_option,
    help="Comma-separated process ids",
)
@click.option("--initiator", "-i", type=int, help="Initiating process (default: lowest active)")
@click.option("--fail", "failed", type=int, multiple=True, help="Process to fail before the election")
@click.option("--cascade-hops", type=click.IntRange(min=0), default=1, show_default=True)
@click.option("--messages/--no-messages", default=True, help="Print every protocol message")
@click.option("--realtime", is_flag=True, help="Run on the asyncio event loop in real time")
@click.pass_context
def elect(
    ctx: click.Context,
    ids: list[ProcessId],
    initiator: int | None,
    failed: tuple[int, ...],
    cascade_hops: int,
    messages: bool,
    realtime: bool,
) -> None:
    """Run a single election and print its trace."""
    settings = SimulatorSettings(
        default_process_ids=tuple(ids), cascade_hops=cascade_hops
    )
    setup_logging(ctx, settings.log_level)
    printer = TracePrinter(show_messages=messages)

    def prepare(sim: BullySimulator) -> bool:
        for process_id in failed:
            sim.toggle(process_id)
        request = sim.start_election(initiator)
        if not request.started:
            console.print(f"[red]Election not started: {request.rejection.value}[/red]")
        return request.started

    if realtime:

        async def _elect() -> BullySimulator:
            done = asyncio.Event()

            def completed(leader_id: ProcessId) -> None:
                printer.winners.append(leader_id)
                done.set()

            callbacks = printer.callbacks()
            callbacks.on_election_complete = completed
            sim = BullySimulator.for_event_loop(settings, callbacks)
            printer.bind(sim.scheduler)
            if prepare(sim):
                await done.wait()
            return sim

        sim = asyncio.run(_elect())
    else:
        scheduler = VirtualScheduler()
        sim = BullySimulator(
            scheduler, settings, printer.callbacks(), id_generator=CounterIdGenerator()
        )
        printer.bind(scheduler)
        if prepare(sim):
            scheduler.run_until_idle()

    _summary(sim, printer)


@cli.command()
@click.option(
    "--ids",
    default="1,2,3,4,5",
    callback=_ids_option,
    help="Comma-separated process ids",
)
@click.option("--duration", "-d", type=float, default=12.0, show_default=True, help="Seconds to simulate")
@click.option("--fail", "failures", multiple=True, callback=_timeline_option, help="PID@SECONDS, e.g. 5@1.0")
@click.option("--recover", "recoveries", multiple=True, callback=_timeline_option, help="PID@SECONDS, e.g. 5@8.0")
@click.option("--heartbeat-interval", type=float, help="Override the heartbeat period")
@click.option("--messages/--no-messages", default=False, help="Print every protocol message")
@click.option("--realtime", is_flag=True, help="Run on the asyncio event loop in real time")
@click.pass_context
def run(
    ctx: click.Context,
    ids: list[ProcessId],
    duration: float,
    failures: list[TimelineEvent],
    recoveries: list[TimelineEvent],
    heartbeat_interval: float | None,
    messages: bool,
    realtime: bool,
) -> None:
    """Run heartbeat monitoring with scripted failures and recoveries."""
    overrides = {"default_process_ids": tuple(ids)}
    if heartbeat_interval is not None:
        overrides["heartbeat_interval"] = heartbeat_interval
    settings = SimulatorSettings(**overrides)
    setup_logging(ctx, settings.log_level)
    printer = TracePrinter(show_messages=messages)

    def script(sim: BullySimulator) -> None:
        sim.set_running(True)
        for process_id, at in sorted([*failures, *recoveries], key=lambda e: e[1]):
            sim.scheduler.call_later(at, lambda pid=process_id: sim.toggle(pid))

    if realtime:

        async def _run() -> BullySimulator:
            sim = BullySimulator.for_event_loop(settings, printer.callbacks())
            printer.bind(sim.scheduler)
            script(sim)
            await asyncio.sleep(duration)
            sim.set_running(False)
            sim.orchestrator.clear_session()
            return sim

        sim = asyncio.run(_run())
    else:
        scheduler = VirtualScheduler()
        sim = BullySimulator(
            scheduler, settings, printer.callbacks(), id_generator=CounterIdGenerator()
        )
        printer.bind(scheduler)
        script(sim)
        scheduler.advance(duration)
        sim.set_running(False)

    _summary(sim, printer)


def main() -> None:
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except BullySimError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
