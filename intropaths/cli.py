"""CLI for intro-paths."""

import asyncio
import json
import logging
from pathlib import Path

import click

from .errors import IntroPathError
from .graph.neo4j_storage import Neo4jGraphStore
from .graph.snapshot import graph_hash, load_snapshot, store_from_snapshot
from .paths.cache import SqlitePathCache
from .paths.config import PathConfig
from .paths.pipeline import find_intro_paths
from .paths.renderer import render_paths_markdown


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging verbosity",
)
def cli(log_level: str):
    """Intro Paths - warm introduction routes through your relationship graph."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command("find-paths")
@click.argument("target", type=str)
@click.option("--source", "-s", "sources", multiple=True, help="Source entity id (repeatable)")
@click.option("--max-depth", "-d", type=int, default=None, help="Maximum hops (1-6)")
@click.option("--min-strength", type=float, default=None, help="Minimum edge strength (0-1)")
@click.option("--top-k", "-k", type=int, default=None, help="Number of paths to return")
@click.option("--no-enrichment", is_flag=True, help="Skip node metadata lookup")
@click.option("--no-cache", is_flag=True, help="Always recompute")
@click.option(
    "--snapshot",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the graph from a JSON snapshot instead of Neo4j",
)
@click.option(
    "--cache-db",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="INTRO_PATHS_CACHE_DB",
    default="data/path_cache.db",
    help="Path cache database",
)
@click.option("--uri", default="bolt://localhost:7687", envvar="NEO4J_URI", help="Neo4j URI")
@click.option("--user", default="neo4j", envvar="NEO4J_USER", help="Neo4j username")
@click.option("--password", default="neo4j", envvar="NEO4J_PASSWORD", help="Neo4j password")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON response")
def find_paths(
    target: str,
    sources: tuple[str, ...],
    max_depth: int | None,
    min_strength: float | None,
    top_k: int | None,
    no_enrichment: bool,
    no_cache: bool,
    snapshot: Path | None,
    cache_db: Path,
    uri: str,
    user: str,
    password: str,
    as_json: bool,
):
    """Find ranked introduction paths to TARGET."""
    config = PathConfig.from_env()
    cache = None if no_cache else SqlitePathCache(cache_db, ttl_seconds=config.cache_ttl_seconds)

    if snapshot is not None:
        try:
            data = load_snapshot(snapshot)
        except ValueError as e:
            raise click.ClickException(str(e))
        storage = store_from_snapshot(data)
        if cache is not None and cache.sync_graph_version(graph_hash(data)):
            click.echo("Snapshot changed since last run; path cache cleared.", err=True)
    else:
        storage = Neo4jGraphStore(
            uri=uri,
            user=user,
            password=password,
            query_timeout_seconds=config.time_budget_seconds,
        )

    try:
        result = find_intro_paths(
            target,
            sources=list(sources) or None,
            max_depth=max_depth,
            min_strength=min_strength,
            top_k=top_k,
            include_enrichment=not no_enrichment,
            use_cache=not no_cache,
            store=storage,
            cache=cache,
            config=config,
        )
    except IntroPathError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")
    finally:
        storage.close()

    if as_json:
        click.echo(json.dumps(result, indent=2))
    else:
        click.echo(render_paths_markdown(result))


@cli.command("cache-clear")
@click.option("--target", default=None, help="Only clear entries for this target")
@click.option("--expired", is_flag=True, help="Only clear entries older than the cache TTL")
@click.option(
    "--cache-db",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="INTRO_PATHS_CACHE_DB",
    default="data/path_cache.db",
    help="Path cache database",
)
def cache_clear(target: str | None, expired: bool, cache_db: Path):
    """Invalidate cached paths."""
    if expired and target:
        raise click.UsageError("--expired and --target are mutually exclusive")

    cache = SqlitePathCache(cache_db, ttl_seconds=PathConfig.from_env().cache_ttl_seconds)
    if expired:
        removed = cache.purge_expired()
        click.echo(f"Removed {removed} expired cached entries.")
        return

    removed = cache.invalidate(target)
    scope = f"target {target}" if target else "all targets"
    click.echo(f"Removed {removed} cached entries ({scope}).")


@cli.command("mcp-server")
@click.option(
    "--neo4j-uri", default="bolt://localhost:7687", help="Neo4j connection URI"
)
@click.option("--neo4j-user", default="neo4j", help="Neo4j username")
@click.option("--neo4j-password", default="neo4j", help="Neo4j password")
@click.option(
    "--snapshot",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Serve a JSON snapshot instead of Neo4j",
)
@click.option(
    "--cache-db",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Persist the path cache to this SQLite file",
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse"]),
    default="stdio",
    help="MCP transport type",
)
def mcp_server(
    neo4j_uri: str,
    neo4j_user: str,
    neo4j_password: str,
    snapshot: Path | None,
    cache_db: Path | None,
    transport: str,
):
    """Run the Intro Paths MCP server."""
    from .mcp import init_server, mcp

    if snapshot is None:
        click.echo(f"Connecting to Neo4j: {neo4j_uri}", err=True)

    init_server(
        neo4j_uri=neo4j_uri,
        neo4j_user=neo4j_user,
        neo4j_password=neo4j_password,
        snapshot_path=str(snapshot) if snapshot else None,
        cache_db=str(cache_db) if cache_db else None,
    )

    click.echo(f"Starting MCP server ({transport} transport)...", err=True)

    if transport == "stdio":
        asyncio.run(mcp.run_stdio_async())
    else:
        asyncio.run(mcp.run_sse_async())


if __name__ == "__main__":
    cli()
