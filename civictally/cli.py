import click
from flask.cli import AppGroup

from civictally.models import VoteEvent
from civictally.services import lifecycle
from civictally.services.errors import VotingError

votes_cli = AppGroup("votes", help="Vote event scheduling and counting.")


@votes_cli.command("sync")
def sync_command():
    """Open votes whose start has passed and close votes whose end has passed."""
    changed = lifecycle.sync_due_events()
    for event_id, before, after in changed:
        click.echo(f"vote event {event_id}: {before} -> {after}")
    click.echo(f"{len(changed)} vote event(s) changed status.")


@votes_cli.command("tally")
@click.argument("event_id", type=int)
@click.option("--actor", default=None, help="Recorded as the counter of the result.")
def tally_command(event_id, actor):
    """Close a vote (if still open) and count it."""
    try:
        result = lifecycle.close_and_tally(event_id, actor=actor)
    except VotingError as exc:
        raise click.ClickException(f"{exc.code}: {exc.message}") from exc

    winners = ", ".join(row["option"] for row in result.payload["winning_options"])
    click.echo(f"vote event {event_id} completed; audit hash {result.audit_hash}")
    click.echo(f"winning options: {winners or '(none)'}")


@votes_cli.command("tally-due")
@click.option("--actor", default="scheduler")
def tally_due_command(actor):
    """Count every vote that is closed, or left in counting by an earlier run."""
    lifecycle.sync_due_events()
    due = [
        event_id
        for (event_id,) in VoteEvent.query.with_entities(VoteEvent.id)
        .filter(VoteEvent.status.in_(("closed", "counting")))
        .order_by(VoteEvent.id)
    ]

    failures = 0
    for event_id in due:
        try:
            lifecycle.close_and_tally(event_id, actor=actor)
        except VotingError as exc:
            failures += 1
            click.echo(f"vote event {event_id} failed: {exc.code}: {exc.message}", err=True)
        else:
            click.echo(f"vote event {event_id} completed")

    if failures:
        raise click.ClickException(f"{failures} vote event(s) could not be counted.")


def register_cli(app):
    app.cli.add_command(votes_cli)
