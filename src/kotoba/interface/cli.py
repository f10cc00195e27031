"""Kotoba CLI: review submission, difficulty ranking and configuration."""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import pydantic
import typer

from kotoba.application.config import AppConfig, resolve_config
from kotoba.application.factory import (
    MasteryServices,
    build_services,
    difficulty_params_from_config,
)
from kotoba.application.mastery.difficulty import DifficultyParams
from kotoba.domain.errors import KotobaError
from kotoba.domain.mastery.models import WordWithStats

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="kotoba: vocabulary review tracker.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

words_app = typer.Typer(help="Manage words in the catalog.", no_args_is_help=True)
app.add_typer(words_app, name="words")

config_app = typer.Typer(help="Manage kotoba configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_with_overrides(ctx: typer.Context, **overrides: Any) -> AppConfig:
    obj = ctx.obj or {}
    merged = {
        "backend": obj.get("backend"),
        "db_path": obj.get("db_path"),
        "verbose": obj.get("verbose"),
        **overrides,
    }
    try:
        return resolve_config(merged)
    except pydantic.ValidationError as e:
        typer.secho(f"Error: invalid configuration:\n{e}", fg="red", err=True)
        raise typer.Exit(1) from e


def _run(config: AppConfig, action: Callable[[MasteryServices], Awaitable[T]]) -> T:
    """Build services, run ``action`` and translate engine errors to exit code 1."""
    from kotoba.infrastructure.log_setup import setup_logging

    _, log_path, run_id = setup_logging(config.log_dir, config.verbose)
    logger.debug(f"Run {run_id} logging to {log_path}")
    try:
        services = build_services(config)
    except KotobaError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e
    try:
        return asyncio.run(action(services))
    except KotobaError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e
    finally:
        services.close()


def _word_dict(entry: WordWithStats) -> dict[str, Any]:
    w, s = entry.word, entry.stats
    return {
        "id": w.id,
        "french": w.french,
        "romaji": w.romaji,
        "kana": w.kana,
        "kanji": w.kanji,
        "note": w.note,
        "created_at": w.created_at.isoformat() if w.created_at else None,
        "success_count": s.success_count,
        "partial_count": s.partial_count,
        "fail_count": s.fail_count,
        "score": s.score,
        "last_reviewed_at": s.last_reviewed_at.isoformat() if s.last_reviewed_at else None,
    }


def _params_dict(params: DifficultyParams) -> dict[str, Any]:
    # Same keys as the HTTP /words/difficult response.
    return {
        "scoreThreshold": params.score_threshold,
        "failRateThreshold": params.fail_rate_threshold,
        "minAttempts": params.min_attempts,
    }


def _echo_words(entries: list[WordWithStats]) -> None:
    for e in entries:
        s = e.stats
        reading = " / ".join(x for x in (e.word.kanji, e.word.kana, e.word.romaji) if x)
        typer.echo(
            f"  #{e.word_id:<5} {e.word.french:<24} {reading:<24}"
            f" score={s.score:<4} ok={s.success_count} ~={s.partial_count} x={s.fail_count}"
        )


UserOpt = Annotated[int, typer.Option("--user", "-u", help="Acting user id.")]
JsonOpt = Annotated[bool, typer.Option("--json", help="Output as JSON.")]


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
    backend: Annotated[
        str | None, typer.Option(help="Storage backend: sqlite or memory.")
    ] = None,
    db_path: Annotated[Path | None, typer.Option("--db", help="SQLite database file.")] = None,
):
    """Global settings for kotoba."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose or None
    ctx.obj["backend"] = backend
    ctx.obj["db_path"] = db_path


# ---------------------------------------------------------------------------
# Review commands
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    word_id: Annotated[int, typer.Argument(help="Word to review.")],
    outcome: Annotated[str, typer.Argument(help="success, partial or fail.")],
    user: UserOpt = 1,
):
    """[bold green]Record[/bold green] one review outcome for a word."""
    config = _resolve_with_overrides(ctx)
    record = _run(config, lambda s: s.reviews.submit_review(user, word_id, outcome))
    typer.echo(
        f"Word {record.word_id}: score={record.score} "
        f"(ok={record.success_count} ~={record.partial_count} x={record.fail_count})"
    )


@app.command()
def bulk(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(
            help='JSON file: [{"wordId": 1, "result": "success"}, ...] or {"reviews": [...]}.',
            exists=True,
            dir_okay=False,
        ),
    ],
    user: UserOpt = 1,
):
    """Submit a completed session's outcomes as one batch."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        typer.secho(f"Error: could not read {path}: {e}", fg="red", err=True)
        raise typer.Exit(1) from e
    items = payload.get("reviews", []) if isinstance(payload, dict) else payload
    try:
        reviews = [(item["wordId"], item["result"]) for item in items]
    except (KeyError, TypeError) as e:
        typer.secho(f"Error: malformed review list in {path}: {e}", fg="red", err=True)
        raise typer.Exit(1) from e

    config = _resolve_with_overrides(ctx)
    applied = _run(config, lambda s: s.reviews.submit_bulk_reviews(user, reviews))
    color = "green" if applied == len(reviews) else "yellow"
    typer.secho(f"Applied {applied}/{len(reviews)} reviews.", fg=color)


@app.command()
def difficult(
    ctx: typer.Context,
    user: UserOpt = 1,
    score_threshold: Annotated[
        int | None, typer.Option(help="Scores at or below this are difficult.")
    ] = None,
    min_attempts: Annotated[
        int | None, typer.Option(min=0, help="Attempts needed before the fail rate counts.")
    ] = None,
    fail_rate_threshold: Annotated[
        float | None,
        typer.Option(min=0.0, max=1.0, help="Fail rates above this are difficult."),
    ] = None,
    json_output: JsonOpt = False,
):
    """List difficult words, hardest first."""
    config = _resolve_with_overrides(
        ctx,
        score_threshold=score_threshold,
        min_attempts=min_attempts,
        fail_rate_threshold=fail_rate_threshold,
    )
    params = difficulty_params_from_config(config)
    entries = _run(config, lambda s: s.difficulty.list_difficult_words(user, params))

    if json_output:
        typer.echo(
            json.dumps(
                {"words": [_word_dict(e) for e in entries], "params": _params_dict(params)},
                indent=2,
            )
        )
        return

    if not entries:
        typer.secho("No difficult words.", fg="green")
        return
    typer.secho(f"Difficult words: {len(entries)}", fg="yellow")
    _echo_words(entries)


@app.command()
def series(ctx: typer.Context, user: UserOpt = 1, json_output: JsonOpt = False):
    """Word count and total score per series."""
    config = _resolve_with_overrides(ctx)
    summaries = _run(config, lambda s: s.difficulty.list_series(user))

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "tagId": s.tag_id,
                        "tagName": s.tag_name,
                        "wordsCount": s.words_count,
                        "totalScore": s.total_score,
                    }
                    for s in summaries
                ],
                indent=2,
            )
        )
        return
    for s in summaries:
        typer.echo(f"  [{s.tag_id}] {s.tag_name}: {s.words_count} words, score {s.total_score}")


# ---------------------------------------------------------------------------
# Words subgroup
# ---------------------------------------------------------------------------


@words_app.command("add")
def words_add(
    ctx: typer.Context,
    french: Annotated[str, typer.Argument(help="Source text.")],
    romaji: Annotated[str | None, typer.Option(help="Phonetic transcription.")] = None,
    kana: Annotated[str | None, typer.Option(help="Kana spelling.")] = None,
    kanji: Annotated[str | None, typer.Option(help="Kanji spelling.")] = None,
    note: Annotated[str | None, typer.Option(help="Free-form note.")] = None,
    tag: Annotated[list[str] | None, typer.Option("--tag", "-t", help="Series name.")] = None,
    user: UserOpt = 1,
):
    """Add a word, optionally tagging it into series."""
    config = _resolve_with_overrides(ctx)

    async def add(services: MasteryServices):
        word = await services.catalog.add_word(user, french, romaji, kana, kanji, note)
        for name in tag or []:
            tag_id = await services.catalog.add_tag(user, name)
            await services.catalog.tag_word(user, word.id, tag_id)
        await services.reviews.ensure_stats(user, word.id)
        return word

    word = _run(config, add)
    typer.secho(f"Added word #{word.id}: {word.french}", fg="green")


@words_app.command("list")
def words_list(
    ctx: typer.Context,
    user: UserOpt = 1,
    tag_id: Annotated[int | None, typer.Option(help="Restrict to one series.")] = None,
    json_output: JsonOpt = False,
):
    """List words with their review stats, newest first."""
    config = _resolve_with_overrides(ctx)
    entries = _run(config, lambda s: s.difficulty.list_words_with_stats(user, tag_id=tag_id))
    if json_output:
        typer.echo(json.dumps([_word_dict(e) for e in entries], indent=2))
        return
    _echo_words(entries)


@words_app.command("delete")
def words_delete(
    ctx: typer.Context,
    word_id: Annotated[int, typer.Argument(help="Word to delete.")],
    user: UserOpt = 1,
):
    """Delete a word and its stats."""
    config = _resolve_with_overrides(ctx)
    deleted = _run(config, lambda s: s.catalog.delete_word(user, word_id))
    if not deleted:
        typer.secho(f"Word {word_id} not found.", fg="red", err=True)
        raise typer.Exit(1)
    typer.secho(f"Deleted word #{word_id}.", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _resolve_with_overrides(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str | None, typer.Option(help="Host to bind the server to.")] = None,
    port: Annotated[int | None, typer.Option(help="Port to bind the server to.")] = None,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the HTTP server."""
    import os

    import uvicorn

    config = _resolve_with_overrides(ctx, host=host, port=port)
    # The server resolves its own config; pass CLI choices through the environment.
    if config.backend:
        os.environ["KOTOBA_BACKEND"] = config.backend
    os.environ["KOTOBA_DB_PATH"] = str(config.db_path)

    typer.secho(f"Serving on http://{config.host}:{config.port}", fg="green")
    uvicorn.run("kotoba.server:app", host=config.host, port=config.port, reload=reload)


def main():
    app()


if __name__ == "__main__":
    main()
