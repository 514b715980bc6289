from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from episode_graph.errors import ConfigurationError, EpisodeGraphError
from episode_graph.settings import GraphSettings, settings


def configure_logging(level: str | None) -> None:
    # stderr only: stdout is the MCP transport when serving
    logging.basicConfig(
        level=(level or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_version(_args: argparse.Namespace) -> int:
    from episode_graph import __version__

    print(__version__)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from episode_graph.mcp_server.server import serve

    asyncio.run(serve(args.settings))
    return 0


async def _with_service(cfg: GraphSettings, fn):
    from episode_graph.knowledge_graph.service import KnowledgeGraphService

    service = KnowledgeGraphService.from_settings(cfg)
    try:
        await service.initialize()
        return await fn(service)
    finally:
        await service.shutdown()


def cmd_health(args: argparse.Namespace) -> int:
    from episode_graph.knowledge_graph.service import KnowledgeGraphService

    async def _run():
        # No initialize(): the probe must report an unreachable database, not fail on it.
        service = KnowledgeGraphService.from_settings(args.settings)
        try:
            return await service.health_check()
        finally:
            await service.shutdown()

    health = asyncio.run(_run())
    print(json.dumps({"status": "healthy" if health.healthy else "unhealthy", **health.as_dict()}, indent=2))
    return 0 if health.healthy else 1


def cmd_ingest(args: argparse.Namespace) -> int:
    from episode_graph.knowledge_graph.models import Episode

    path = Path(args.path)
    episode = Episode(
        name=args.name or path.stem,
        content=path.read_text(encoding="utf-8"),
        source_description=args.source_description or f"file:{path}",
        source=str(path),
    )

    async def _run(service):
        return await service.add_episodes([episode])

    stats = asyncio.run(_with_service(args.settings, _run))
    for s in stats:
        print(
            json.dumps(
                {
                    "episode": s.episode,
                    "nodes": s.nodes_written,
                    "edges": s.edges_written,
                    "edges_dropped": s.edges_dropped,
                    "timing_ms": {"extract": round(s.extract_ms, 1), "upsert": round(s.upsert_ms, 1)},
                }
            )
        )
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    from episode_graph.mcp_server.tools import format_search

    async def _run(service):
        return await service.search(args.query, args.num_results, args.search_type)

    results = asyncio.run(_with_service(args.settings, _run))
    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        print(format_search(args.query, results))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="episode-graph")
    sub = p.add_subparsers(dest="cmd")

    sub.add_parser("version").set_defaults(func=cmd_version)
    sub.add_parser("serve", help="Serve the knowledge graph tools over MCP stdio").set_defaults(func=cmd_serve)
    sub.add_parser("health", help="Probe the database, LLM and embedding services").set_defaults(func=cmd_health)

    ingest = sub.add_parser("ingest", help="Ingest a text file as one episode")
    ingest.add_argument("path")
    ingest.add_argument("--name", default=None, help="Episode name (defaults to the file stem)")
    ingest.add_argument("--source-description", default=None)
    ingest.set_defaults(func=cmd_ingest)

    search = sub.add_parser("search", help="Search the knowledge graph")
    search.add_argument("query")
    search.add_argument("-n", "--num-results", type=int, default=10, choices=range(1, 101), metavar="[1-100]")
    search.add_argument("--type", dest="search_type", default="hybrid", choices=["semantic", "keyword", "hybrid"])
    search.add_argument("--json", action="store_true", help="Print results as JSON")
    search.set_defaults(func=cmd_search)

    p.set_defaults(func=cmd_serve)
    return p


def app(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.settings = settings
    configure_logging(args.settings.log_level)
    try:
        rc = args.func(args)
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        rc = 2
    except EpisodeGraphError as e:
        print(f"{args.cmd or 'serve'} failed: {e}", file=sys.stderr)
        rc = 1
    raise SystemExit(rc)


if __name__ == "__main__":
    app()
