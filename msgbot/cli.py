"""
Command-line interface for msgbot.

Offline diagnostics for the push core: score an item, match it against
a subscription file, or plan the deliveries the pipeline would create.

Usage:
    msgbot score item.json
    msgbot match item.json subscriptions.json --now 2026-03-01T10:00:00Z
    msgbot plan item.json subscriptions.json
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any

import click
from pydantic import ValidationError

from msgbot.items.schemas import Item, ensure_utc
from msgbot.matching.engine import MatchingEngine
from msgbot.observability.logging import setup_logging
from msgbot.pipeline import PushPipeline
from msgbot.scoring.engine import ScoreEngine
from msgbot.subscriptions.schemas import Subscription


def _load_json(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path}: invalid JSON ({e})") from e


def _load_item(path: str) -> Item:
    data = _load_json(path)
    if not isinstance(data, dict):
        raise click.ClickException(f"{path}: expected a JSON object")
    try:
        return Item.from_dict(data)
    except (ValidationError, KeyError, TypeError, ValueError) as e:
        raise click.ClickException(f"{path}: invalid item ({e})") from e


def _load_subscriptions(path: str) -> list[Subscription]:
    data = _load_json(path)
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise click.ClickException(f"{path}: expected a JSON object or array")
    try:
        return [Subscription.model_validate(entry) for entry in data]
    except ValidationError as e:
        raise click.ClickException(f"{path}: invalid subscription ({e})") from e


def _parse_now(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as e:
        raise click.BadParameter(f"not an ISO-8601 timestamp: {value}") from e


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """msgbot - keyword subscription push core."""
    setup_logging("DEBUG" if debug else None)


@main.command()
@click.argument("item_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--now", "now_value", default=None, help="Reference time (ISO-8601, default: now)")
def score(item_json: str, now_value: str | None) -> None:
    """Compute the hotness score and quality verdict of an item."""
    item = _load_item(item_json)
    engine = ScoreEngine()
    now = _parse_now(now_value)

    value = engine.compute_score(item, now)
    high_quality = engine.is_high_quality(item)

    click.echo(f"Item {item.item_id}")
    click.echo(f"  hotness score: {value:.0f}")
    color = "green" if high_quality else "yellow"
    click.echo(click.style(f"  high quality:  {'yes' if high_quality else 'no'}", fg=color))


@main.command()
@click.argument("item_json", type=click.Path(exists=True, dir_okay=False))
@click.argument("subscriptions_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--now", "now_value", default=None, help="Reference time (ISO-8601, default: now)")
def match(item_json: str, subscriptions_json: str, now_value: str | None) -> None:
    """Match an item against subscriptions and print ranked results."""
    item = _load_item(item_json)
    subscriptions = _load_subscriptions(subscriptions_json)

    matches = MatchingEngine().match(item, subscriptions, _parse_now(now_value))
    _echo_json([m.to_dict() for m in matches])


@main.command()
@click.argument("item_json", type=click.Path(exists=True, dir_okay=False))
@click.argument("subscriptions_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--now", "now_value", default=None, help="Reference time (ISO-8601, default: now)")
def plan(item_json: str, subscriptions_json: str, now_value: str | None) -> None:
    """Run the pipeline without sending and print the planned attempts."""
    item = _load_item(item_json)
    subscriptions = _load_subscriptions(subscriptions_json)
    now = _parse_now(now_value)

    result = asyncio.run(PushPipeline().process_item(item, subscriptions, now))
    _echo_json(result.to_dict())


if __name__ == "__main__":
    main()
