"""streamtyper CLI - watch an event stream with paced output, manage defaults."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib

import tomli_w
from pydantic import ValidationError

from .event_source import EventSource
from .pacer import PacingQueue
from .session import TypingSession
from .types import EVENT_DONE, EVENT_ERROR, EventSourceConfig, FlushInfo, PacerConfig, StreamError


# ============================================================================
# Config helpers
# ============================================================================

CONFIG_DIR = Path.home() / ".streamtyper"
CONFIG_FILE = CONFIG_DIR / "config.toml"


def _ensure_config_dir() -> None:
    """Create ~/.streamtyper/ if it doesn't exist."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def _load_config() -> Dict[str, Any]:
    """Read config.toml, returning an empty dict if it doesn't exist."""
    if not CONFIG_FILE.exists():
        return {}
    with open(CONFIG_FILE, "rb") as f:
        return tomllib.load(f)


def _save_config(cfg: Dict[str, Any]) -> None:
    """Write config dict to config.toml."""
    _ensure_config_dir()
    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(cfg, f)


def _set_nested(cfg: Dict[str, Any], dotted_key: str, value: str) -> None:
    """Set a value in a nested dict using a dotted key like 'pacer.mode'."""
    parts = dotted_key.split(".")
    d = cfg
    for part in parts[:-1]:
        d = d.setdefault(part, {})
    d[parts[-1]] = value


def _parse_headers(values: Tuple[str, ...]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected NAME:VALUE, got {item!r}", param_hint="--header")
        headers[name.strip()] = value.strip()
    return headers


def build_source_config(cfg: Dict[str, Any], url: str, headers: Dict[str, str]) -> EventSourceConfig:
    """Merge [source] and [headers] from the config file with command-line values.

    The URL argument always wins over a ``url`` key in [source]; a
    ``headers`` table under [source] is merged below [headers].
    """
    source = dict(cfg.get("source", {}))
    source.pop("url", None)
    source_headers = source.pop("headers", {})
    if not isinstance(source_headers, dict):
        raise click.ClickException(
            f"source.headers in {CONFIG_FILE} must be a table; use headers.NAME keys instead"
        )
    merged_headers = {str(k): str(v) for k, v in source_headers.items()}
    merged_headers.update((str(k), str(v)) for k, v in cfg.get("headers", {}).items())
    merged_headers.update(headers)
    return EventSourceConfig(url=url, headers=merged_headers, **source)


def build_pacer_config(cfg: Dict[str, Any], **overrides: Any) -> PacerConfig:
    """Merge [pacer] from the config file with command-line overrides."""
    values = dict(cfg.get("pacer", {}))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return PacerConfig(**values)


# ============================================================================
# CLI group
# ============================================================================

@click.group()
@click.option("-v", "--verbose", count=True, help="Log to stderr (-v info, -vv debug)")
def cli(verbose: int):
    """streamtyper CLI"""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


# ============================================================================
# streamtyper watch <url>
# ============================================================================

@cli.command()
@click.argument("url")
@click.option("--mode", type=click.Choice(["fragment", "token"]), default=None,
              help="Pacing granularity (default: fragment)")
@click.option("--interval", "flush_interval_ms", type=int, default=None,
              help="Flush interval in ms (default: 33)")
@click.option("--max-chars", "max_chars_per_flush", type=int, default=None,
              help="Max characters released per flush")
@click.option("-H", "--header", "header_values", multiple=True,
              help="Extra request header NAME:VALUE (repeatable)")
@click.option("--dedup-ids/--no-dedup-ids", default=None,
              help="Drop records whose id was already delivered")
def watch(url: str, mode: Optional[str], flush_interval_ms: Optional[int],
          max_chars_per_flush: Optional[int], header_values: Tuple[str, ...],
          dedup_ids: Optional[bool]):
    """Stream URL and print message text at a typing pace."""
    cfg = _load_config()
    try:
        source_config = build_source_config(cfg, url, _parse_headers(header_values))
        if dedup_ids is not None:
            source_config.dedup_ids = dedup_ids
        pacer_config = build_pacer_config(
            cfg,
            mode=mode,
            flush_interval_ms=flush_interval_ms,
            max_chars_per_flush=max_chars_per_flush,
        )
    except ValidationError as e:
        click.echo(f"Error: invalid configuration\n{e}", err=True)
        sys.exit(2)

    try:
        ok = asyncio.run(_watch(source_config, pacer_config))
    except KeyboardInterrupt:
        ok = False
    click.echo("")
    if not ok:
        sys.exit(1)


async def _watch(source_config: EventSourceConfig, pacer_config: PacerConfig) -> bool:
    finished = asyncio.Event()
    completed = []

    def on_flush(info: FlushInfo) -> None:
        click.echo(info.appended, nl=False)

    def on_error(error: StreamError) -> None:
        click.echo(f"\n[{error.code}] {error.message}", err=True)

    source = EventSource(source_config)
    source.on(EVENT_ERROR, on_error)
    source.on(EVENT_DONE, completed.append)
    session = TypingSession(source, PacingQueue(on_flush, pacer_config), on_finished=finished.set)
    session.start()
    try:
        await finished.wait()
    finally:
        session.close()
    return bool(completed)


# ============================================================================
# streamtyper config (subgroup)
# ============================================================================

@cli.group()
def config():
    """Manage configuration."""
    pass


@config.command("show")
def config_show():
    """Print config file contents."""
    if not CONFIG_FILE.exists():
        click.echo(f"No config file found at {CONFIG_FILE}")
        return

    with open(CONFIG_FILE, "r") as f:
        click.echo(f.read())


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a config value (e.g., streamtyper config set pacer.mode token)"""
    cfg = _load_config()
    _set_nested(cfg, key, value)
    _save_config(cfg)
    click.echo(f"Set {key} = {value}")


# ============================================================================
# Entry point
# ============================================================================

def main():
    cli()


if __name__ == "__main__":
    main()
