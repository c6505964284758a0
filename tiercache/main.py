"""Main entry point for the tiercache CLI.

Sets up the Typer CLI application, builds the cache for each command
(Composition Root), and delegates execution to the CommandHandler. Every
command constructs its own MultiLevelCacheService and closes it before
exiting, so pending write-back propagation lands before the process ends.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import redis.asyncio as redis
import typer
from typing_extensions import Annotated

from tiercache.core.command_handler import CommandHandler
from tiercache.core.services.cache_service import MultiLevelCacheService
from tiercache.domain.exceptions import CacheConfigError
from tiercache.infrastructure.cli.display import ConsoleDisplay
from tiercache.infrastructure.config.settings import (
    DEFAULT_CONFIG_FILE,
    build_cache_config,
    get_config,
    get_redis_url,
    load_configuration,
    set_config,
)
from tiercache.infrastructure.monitoring.logger_setup import DEFAULT_LOG_FORMAT, resolve_log_level, setup_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

# --- Typer App Definition ---
app = typer.Typer(
    name="tiercache",
    help="tiercache: inspect and operate a three-level (memory / Redis / disk) cache.",
    add_completion=False,
)


@dataclass
class AppContext:
    """Per-invocation state shared from the callback to the commands."""
    ui: ConsoleDisplay


# --- Dependency wiring ---

def create_cache(redis_url: Optional[str] = None) -> MultiLevelCacheService:
    """Creates the cache service from the loaded configuration."""
    config = build_cache_config()
    redis_client = None
    if config.l2.enabled:
        redis_client = redis.Redis.from_url(redis_url or get_redis_url())
    return MultiLevelCacheService(config=config, redis_client=redis_client)


async def _run_with_handler(ui: ConsoleDisplay, action: Callable[[CommandHandler], Awaitable[T]]) -> T:
    cache = create_cache()
    redis_client = getattr(cache.l2, "client", None)
    try:
        async with cache:
            return await action(CommandHandler(cache_service=cache, ui=ui))
    finally:
        if redis_client is not None:
            await redis_client.aclose()


def run_command(ctx: typer.Context, action: Callable[[CommandHandler], Awaitable[T]]) -> T:
    """Runs an async handler action with a freshly built cache."""
    app_ctx: AppContext = ctx.obj
    try:
        return asyncio.run(_run_with_handler(app_ctx.ui, action))
    except CacheConfigError as e:
        logger.error(f"Invalid cache configuration: {e}")
        app_ctx.ui.display_error(f"Invalid cache configuration: {e}")
        raise typer.Exit(code=2)


# --- CLI Commands ---

SkipL1Option = Annotated[bool, typer.Option("--skip-l1", help="Do not read the in-memory level.")]
SkipL2Option = Annotated[bool, typer.Option("--skip-l2", help="Do not read the Redis level.")]
SkipL3Option = Annotated[bool, typer.Option("--skip-l3", help="Do not read the disk level.")]


@app.command()
def get(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key to read.")],
    skip_l1: SkipL1Option = False,
    skip_l2: SkipL2Option = False,
    skip_l3: SkipL3Option = False,
):
    """Read a key. Exits with code 1 on a miss."""
    hit = run_command(ctx, lambda h: h.handle_get(key, skip_l1=skip_l1, skip_l2=skip_l2, skip_l3=skip_l3))
    if not hit:
        raise typer.Exit(code=1)


@app.command(name="set")
def set_command(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key to write.")],
    value: Annotated[str, typer.Argument(help="Value to store.")],
    ttl: Annotated[Optional[int], typer.Option("--ttl", min=1, help="Time-to-live in milliseconds.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Parse VALUE as JSON before storing.")] = False,
):
    """Store a value under a key."""
    if not run_command(ctx, lambda h: h.handle_set(key, value, ttl=ttl, as_json=as_json)):
        raise typer.Exit(code=1)


@app.command()
def delete(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key to delete.")],
):
    """Delete a key from every level."""
    if not run_command(ctx, lambda h: h.handle_delete(key)):
        raise typer.Exit(code=1)


@app.command(name="clear-cache")
def clear_cache_command(
    ctx: typer.Context,
    level: Annotated[str, typer.Option(help="Level ('l1', 'l2', 'l3', 'all').")] = 'all',
):
    """Clears the cache."""
    if not run_command(ctx, lambda h: h.handle_clear_cache(level)):
        raise typer.Exit(code=1)


@app.command()
def invalidate(
    ctx: typer.Context,
    pattern: Annotated[str, typer.Argument(help="Regular expression matched against normalized keys.")],
):
    """Invalidate entries whose normalized key matches PATTERN (L1 and L2 only)."""
    run_command(ctx, lambda h: h.handle_invalidate(pattern))


@app.command()
def warmup(
    ctx: typer.Context,
    keys: Annotated[List[str], typer.Argument(help="Keys to read so lower-level hits are promoted.")],
):
    """Read keys so lower-level hits are copied to the upper levels."""
    run_command(ctx, lambda h: h.handle_warmup(keys))


@app.command()
def stats(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Print the statistics as JSON (camelCase fields).")] = False,
):
    """Show hit/miss statistics."""
    run_command(ctx, lambda h: h.handle_stats(as_json=as_json))


@app.command()
def size(ctx: typer.Context):
    """Show entry counts per level."""
    run_command(ctx, lambda h: h.handle_size())


@app.command()
def ops(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Number of operations to show.")] = 20,
):
    """Show the most recent cache operations of this invocation."""
    run_command(ctx, lambda h: h.handle_operations(limit))


@app.command()
def cleanup(ctx: typer.Context):
    """Remove expired and unreadable files from the disk level."""
    run_command(ctx, lambda h: h.handle_cleanup())


@app.command()
def health(ctx: typer.Context):
    """Check that every enabled level is reachable."""
    if not run_command(ctx, lambda h: h.handle_health()):
        raise typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help="YAML configuration file.", dir_okay=False)
    ] = DEFAULT_CONFIG_FILE,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Logging level (debug, info, warning, error).")
    ] = None,
    no_l2: Annotated[bool, typer.Option("--no-l2", help="Disable the Redis level.")] = False,
    no_l3: Annotated[bool, typer.Option("--no-l3", help="Disable the disk level.")] = False,
):
    """Load configuration and logging before any command runs."""
    load_configuration(config_file=config)
    level = resolve_log_level(log_level or get_config('logging.level', 'WARNING'), default=logging.WARNING)
    setup_logging(
        log_level=level,
        log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
        log_file=get_config('logging.file'),
    )
    if no_l2:
        set_config('cache.l2.enabled', False)
    if no_l3:
        set_config('cache.l3.enabled', False)
    ctx.obj = AppContext(ui=ConsoleDisplay())
    logger.debug(f"tiercache invoked with command: {ctx.invoked_subcommand}")


# --- Main Execution Guard ---

def cli_entry_point() -> Any:
    """Function called by the console script entry point in pyproject.toml."""
    return app()


if __name__ == "__main__":
    cli_entry_point()
