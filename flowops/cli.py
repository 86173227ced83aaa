"""CLI tools for FlowOps operations."""

import asyncio
import json
from uuid import UUID

import click

from flowops.db.session import SessionLocal
from flowops.services import ai_artifact_service, outbox_service, sla_service
from flowops.worker import drain


@click.group()
def cli():
    """FlowOps CLI tools."""
    pass


@cli.command("outbox-run-once")
@click.option("--limit", default=100, show_default=True, help="Maximum events to process")
def outbox_run_once(limit: int):
    """Process eligible outbox events once, then exit."""
    with SessionLocal() as db:
        processed = asyncio.run(drain(db, limit=limit))
    click.echo(f"✓ Processed {processed} outbox events")


@cli.command("sla-scan")
def sla_scan():
    """Run one SLA breach scan."""
    with SessionLocal() as db:
        breached = sla_service.scan_for_breaches(db)
    click.echo(f"✓ Breached {len(breached)} handoffs")
    for handoff_id in breached:
        click.echo(f"  {handoff_id}")


@cli.command("list-artifacts")
@click.option("--limit", default=20, show_default=True)
@click.option("--full", is_flag=True, help="Print full artifact output JSON")
def list_artifacts(limit: int, full: bool):
    """
    Show the most recently updated AI artifacts.

    Example:
        python -m flowops.cli list-artifacts --limit 5 --full
    """
    with SessionLocal() as db:
        artifacts = ai_artifact_service.list_recent_artifacts(db, limit=limit)
        if not artifacts:
            click.echo("No artifacts found")
            return
        for artifact in artifacts:
            click.echo(
                f"{artifact.updated_at.isoformat()}  {artifact.type:<26} "
                f"{artifact.status:<6} handoff={artifact.handoff_id}"
            )
            if full:
                click.echo(json.dumps(artifact.output, indent=2, sort_keys=True))


@cli.command("requeue-dead")
@click.argument("event_id")
def requeue_dead(event_id: str):
    """Give a dead-lettered outbox event a fresh set of attempts."""
    try:
        event_uuid = UUID(event_id)
    except ValueError:
        raise click.BadParameter("event_id must be a UUID")

    with SessionLocal() as db:
        try:
            event = outbox_service.requeue_dead_event(db, event_uuid)
        except outbox_service.OutboxServiceError as e:
            click.echo(f"❌ {e}")
            raise SystemExit(1)
        click.echo(f"✓ Requeued {event.id} ({event.type})")


if __name__ == "__main__":
    cli()
