"""Intro Paths MCP Server.

Exposes warm introduction path discovery as MCP tools so agents and other
callers can ask "who can introduce us to X?" over the relationship graph.
"""

import asyncio
import threading

from mcp.server.fastmcp import FastMCP

from ..errors import IntroPathError
from ..graph.neo4j_storage import Neo4jGraphStore
from ..graph.snapshot import graph_hash, load_snapshot, store_from_snapshot
from ..graph.store import GraphStore
from ..paths.cache import InMemoryPathCache, PathCache, SqlitePathCache
from ..paths.config import DEFAULT_PATH_CONFIG, PathConfig
from ..paths.pipeline import find_intro_paths as run_find_intro_paths
from ..paths.renderer import render_paths_markdown

mcp = FastMCP(
    "Intro Paths",
    instructions="""
Warm introduction path discovery over the firm's relationship graph.

Use find_intro_paths with a target entity id to get ranked routes from
internal people (or explicit source ids) to that target.
Widen min_strength toward 0 or raise max_depth (max 6) when nothing is found.
Use invalidate_path_cache after the underlying relationships change.
""",
)

store: GraphStore | None = None
cache: PathCache | None = None
config: PathConfig = DEFAULT_PATH_CONFIG


def init_server(
    neo4j_uri: str = "bolt://localhost:7687",
    neo4j_user: str = "neo4j",
    neo4j_password: str = "neo4j",
    snapshot_path: str | None = None,
    cache_db: str | None = None,
):
    """Initialize server with a graph store and a path cache.

    A snapshot file takes precedence over Neo4j. Without ``cache_db`` the
    cache lives in process memory.
    """
    global store, cache, config
    config = PathConfig.from_env()

    if cache_db:
        cache = SqlitePathCache(cache_db, ttl_seconds=config.cache_ttl_seconds)
    else:
        cache = InMemoryPathCache(ttl_seconds=config.cache_ttl_seconds)

    if snapshot_path:
        snapshot = load_snapshot(snapshot_path)
        store = store_from_snapshot(snapshot)
        cache.sync_graph_version(graph_hash(snapshot))
    else:
        store = Neo4jGraphStore(
            uri=neo4j_uri,
            user=neo4j_user,
            password=neo4j_password,
            query_timeout_seconds=config.time_budget_seconds,
        )


def _require_store() -> GraphStore:
    """Get store or raise error."""
    if store is None:
        raise RuntimeError("Server not initialized. Call init_server() first.")
    return store


@mcp.tool()
async def find_intro_paths(
    target: str,
    sources: list[str] | None = None,
    max_depth: int = 3,
    min_strength: float = 0.0,
    top_k: int = 5,
    include_enrichment: bool = True,
    use_cache: bool = True,
) -> dict:
    """Find the best warm introduction paths to a target person or organization.

    Args:
        target: Entity id of the person or organization to reach
        sources: Entity ids to start from (default: all internal people)
        max_depth: Maximum hops per path, 1-6
        min_strength: Ignore relationships weaker than this, 0-1
        top_k: Number of paths to return
        include_enrichment: Attach names and flags to each step
        use_cache: Reuse a recent result for the same request

    Returns:
        Dict with success, target_node, paths, meta and a markdown summary.
        On failure: success=False with error and error_type.

    The search runs on a worker thread. Cancelling the call stops it at the
    next store batch or frontier step.
    """
    db = _require_store()
    cancel = threading.Event()
    try:
        result = await asyncio.to_thread(
            run_find_intro_paths,
            target,
            sources=sources,
            max_depth=max_depth,
            min_strength=min_strength,
            top_k=top_k,
            include_enrichment=include_enrichment,
            use_cache=use_cache,
            store=db,
            cache=cache,
            config=config,
            cancel_event=cancel,
        )
    except asyncio.CancelledError:
        cancel.set()
        raise
    except IntroPathError as e:
        return {"success": False, "error": str(e), "error_type": type(e).__name__}

    result["markdown"] = render_paths_markdown(result)
    return result


@mcp.tool()
def invalidate_path_cache(target: str | None = None) -> dict:
    """Drop cached paths after relationship data changed.

    Args:
        target: Only drop entries for this target (default: everything)

    Returns:
        Dict with success and number of entries removed
    """
    if cache is None:
        return {"success": False, "error": "Path cache not configured"}
    removed = cache.invalidate(target)
    return {"success": True, "removed": removed, "target": target}


def main():
    """Run the MCP server (stdio transport)."""
    import os

    init_server(
        neo4j_uri=os.environ.get("NEO4J_URI", "bolt://localhost:7687"),
        neo4j_user=os.environ.get("NEO4J_USER", "neo4j"),
        neo4j_password=os.environ.get("NEO4J_PASSWORD", "neo4j"),
        snapshot_path=os.environ.get("INTRO_PATHS_SNAPSHOT") or None,
        cache_db=os.environ.get("INTRO_PATHS_CACHE_DB") or None,
    )

    asyncio.run(mcp.run_stdio_async())


if __name__ == "__main__":
    main()
