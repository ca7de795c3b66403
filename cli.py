"""CLI commands for wedding automation management."""

import asyncio
from uuid import UUID

import typer

from src.automation.dtos import (
    ExecutionNotFoundError,
    FlowNotFoundError,
    FlowStatus,
    InvalidTransitionError,
)
from src.automation.engine import build_automation_engine
from src.config.logging import setup_logging

app = typer.Typer(help="CLI commands for wedding automation management")


@app.callback()
def main():
    setup_logging()


@app.command()
def process_due(
    batch_size: int = typer.Option(
        None,
        "--batch-size",
        "-b",
        help="Maximum number of executions to process (defaults to the configured size)",
    ),
):
    """Run one sweep over the due PENDING executions. Meant to be called by a scheduler."""
    engine = build_automation_engine()
    result = asyncio.run(engine.processor.process_due_executions(batch_size=batch_size))

    typer.secho("Sweep finished", fg=typer.colors.GREEN)
    typer.secho(f"  Processed: {result.processed}", fg=typer.colors.BLUE)
    typer.secho(f"  Succeeded: {result.succeeded}", fg=typer.colors.GREEN)
    typer.secho(f"  Failed: {result.failed}", fg=typer.colors.RED)
    typer.secho(f"  Skipped: {result.skipped}", fg=typer.colors.YELLOW)
    typer.secho(f"  Rescheduled: {result.rescheduled}", fg=typer.colors.CYAN)
    if result.timed_out:
        typer.secho(f"  Timed out: {result.timed_out}", fg=typer.colors.MAGENTA)


@app.command()
def activate_flow(
    flow_id: str = typer.Argument(
        ...,
        help="Flow UUID",
    ),
):
    """Activate a flow and schedule every eligible guest."""
    engine = build_automation_engine()
    try:
        flow, report = asyncio.run(engine.flow_service.set_status(UUID(flow_id), FlowStatus.ACTIVE))
    except FlowNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    typer.secho(f"Flow '{flow.name}' is active", fg=typer.colors.GREEN)
    typer.secho(f"  Scheduled: {report.created}", fg=typer.colors.BLUE)
    typer.secho(f"  Not eligible: {report.skipped}", fg=typer.colors.YELLOW)


@app.command()
def run_execution(
    execution_id: str = typer.Argument(
        ...,
        help="Execution UUID",
    ),
):
    """Run a single PENDING or FAILED execution right now."""
    engine = build_automation_engine()
    try:
        result = asyncio.run(engine.processor.run_now(UUID(execution_id)))
    except (ExecutionNotFoundError, InvalidTransitionError) as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    if result.success:
        typer.secho(f"Sent: {result.message}", fg=typer.colors.GREEN)
        typer.secho(f"  Delivery ID: {result.delivery_id}", fg=typer.colors.CYAN)
    else:
        typer.secho(f"Failed ({result.error_code}): {result.message}", fg=typer.colors.RED)
        raise typer.Exit(1)


@app.command()
def retry_failed(
    flow_id: str = typer.Argument(
        ...,
        help="Flow UUID",
    ),
):
    """Run every FAILED execution of a flow again."""
    engine = build_automation_engine()
    try:
        result = asyncio.run(engine.processor.retry_failed(UUID(flow_id)))
    except FlowNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    typer.secho(f"Retried {result.processed} executions", fg=typer.colors.GREEN)
    typer.secho(f"  Succeeded: {result.succeeded}", fg=typer.colors.GREEN)
    typer.secho(f"  Failed: {result.failed}", fg=typer.colors.RED)


@app.command()
def cancel_pending(
    flow_id: str = typer.Argument(
        ...,
        help="Flow UUID",
    ),
):
    """Skip every PENDING execution of a flow."""
    engine = build_automation_engine()
    try:
        cancelled = asyncio.run(engine.processor.cancel_pending(UUID(flow_id)))
    except FlowNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    typer.secho(f"Cancelled {cancelled} pending executions", fg=typer.colors.GREEN)


@app.command()
def preview_flow(
    flow_id: str = typer.Argument(
        ...,
        help="Flow UUID",
    ),
):
    """Show what a flow would do for every guest right now, without sending anything."""
    engine = build_automation_engine()
    try:
        preview = asyncio.run(engine.processor.preview_flow(UUID(flow_id)))
    except FlowNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(1)

    due = [entry for entry in preview if entry.should_trigger]
    typer.secho(f"{len(preview)} guests, {len(due)} due now", fg=typer.colors.GREEN)
    for entry in preview:
        color = typer.colors.GREEN if entry.should_trigger else typer.colors.YELLOW
        if not entry.eligible:
            color = typer.colors.RED
        line = f"  {entry.guest_id}: {entry.reason}"
        if entry.scheduled_for:
            line += f" (at {entry.scheduled_for.isoformat()})"
        if entry.execution_status:
            line += f" [{entry.execution_status.value}]"
        typer.secho(line, fg=color)


@app.command()
def stats(
    event_id: str = typer.Argument(
        ...,
        help="Event UUID",
    ),
):
    """Show the automation flows of an event and their execution counts."""
    engine = build_automation_engine()
    flow_stats = asyncio.run(engine.flow_service.list_flows(UUID(event_id)))

    if not flow_stats:
        typer.secho("No automation flows for this event", fg=typer.colors.YELLOW)
        return

    for item in flow_stats:
        flow = item.flow
        typer.secho(f"{flow.name} [{flow.status.value}]", fg=typer.colors.GREEN)
        typer.secho(f"  {flow.trigger.value} -> {flow.action.value}", fg=typer.colors.BLUE)
        typer.secho(f"  ID: {flow.id}", fg=typer.colors.CYAN)
        typer.secho(
            f"  total={item.total} pending={item.pending} processing={item.processing} "
            f"completed={item.completed} failed={item.failed} skipped={item.skipped}",
            fg=typer.colors.MAGENTA,
        )


if __name__ == "__main__":
    app()
