"""cardsched CLI: study-session commands, configuration and the HTTP daemon."""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer

from cardsched.application.config import AppConfig, resolve_config
from cardsched.application.factory import create_scheduler
from cardsched.application.scheduler import Scheduler
from cardsched.domain.errors import SchedulerError
from cardsched.domain.models import Card, Queue

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="cardsched: spaced-repetition scheduling engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Inspect cardsched configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(ctx: typer.Context) -> AppConfig:
    obj = ctx.obj or {}
    return resolve_config(
        {
            "collection_path": obj.get("collection"),
            "verbose": obj.get("verbose_bonus"),
        }
    )


def _fail(error: Exception) -> None:
    typer.secho(f"Error: {error}", fg="red", err=True)
    raise typer.Exit(1)


@contextmanager
def _session(ctx: typer.Context) -> Iterator[Scheduler]:
    """Open a study session for one command and close the collection afterwards."""
    try:
        sched = create_scheduler(_settings(ctx))
    except SchedulerError as e:
        _fail(e)
    try:
        yield sched
    except SchedulerError as e:
        _fail(e)
    finally:
        sched.col.close()


def _card_dict(card: Card) -> dict:
    d = asdict(card)
    d.pop("timer_started", None)
    d["queue"] = Queue(card.queue).name.lower()
    d["type"] = card.type.name.lower()
    return d


def _format_ivl(seconds: int) -> str:
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    collection: Annotated[
        Path | None, typer.Option(help="Collection file. Defaults to 'collection_path' in config.")
    ] = None,
):
    """Global settings for cardsched."""
    ctx.ensure_object(dict)
    ctx.obj["verbose_bonus"] = verbose
    ctx.obj["collection"] = collection
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Session commands
# ---------------------------------------------------------------------------


@app.command()
def decks(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show due counts for every deck."""
    with _session(ctx) as sched:
        rows = sched.deck_due_list()
    if as_json:
        typer.echo(json.dumps([asdict(row) for row in rows], indent=2))
        return
    typer.secho(f"{'Deck':<40} {'New':>5} {'Learn':>6} {'Due':>5}", bold=True)
    for row in rows:
        typer.echo(f"{row.name:<40} {row.new:>5} {row.lrn:>6} {row.rev:>5}")


@app.command()
def counts(ctx: typer.Context):
    """Show what is left to study today in the current deck."""
    with _session(ctx) as sched:
        new, lrn, rev = sched.counts()
    typer.echo(json.dumps({"new": new, "learning": lrn, "review": rev}))


@app.command("next")
def next_card(ctx: typer.Context):
    """Print the next card to study as JSON."""
    with _session(ctx) as sched:
        card = sched.get_card()
    if card is None:
        typer.secho("Nothing due. Congratulations!", fg="green")
        return
    typer.echo(json.dumps(_card_dict(card), indent=2))


@app.command()
def answer(
    ctx: typer.Context,
    card_id: Annotated[int, typer.Argument(help="Card to answer.")],
    ease: Annotated[int, typer.Argument(help="1 = again ... 3 (learning) or 4 (review) = easy.")],
):
    """[bold green]Answer[/bold green] a card and print its new scheduling state."""
    with _session(ctx) as sched:
        card = sched.col.cards.get(card_id)
        leech = sched.answer_card(card, ease)
    typer.echo(json.dumps(_card_dict(card), indent=2))
    if leech:
        typer.secho(f"Card {card_id} is a leech.", fg="yellow")


@app.command()
def preview(
    ctx: typer.Context,
    card_id: Annotated[int, typer.Argument(help="Card to preview.")],
):
    """Show when a card would come back for each answer."""
    with _session(ctx) as sched:
        card = sched.col.cards.get(card_id)
        top = 4 if card.queue == Queue.REVIEW else 3
        ivls = {ease: sched.next_ivl(card, ease) for ease in range(1, top + 1)}
    for ease, seconds in ivls.items():
        typer.echo(f"{ease}: {_format_ivl(seconds)}")


@app.command()
def close(ctx: typer.Context):
    """End the session: unbury every buried card."""
    with _session(ctx) as sched:
        changed = sched.on_close()
    typer.secho(f"Unburied {changed} card(s).", fg="green")


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP daemon."""
    import uvicorn

    logger.info(f"Starting cardsched server on {host}:{port}")
    uvicorn.run("cardsched.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _settings(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
