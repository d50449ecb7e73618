import argparse
import asyncio
import os
import sys

from databases import Database
from sqlalchemy import create_engine

from .config import resolve_config
from .container import build_services
from .errors import FrameChainError
from .logging_setup import configure_logging
from .store import Base, seed_defaults


def init_db(database_url: str, seed: bool = False) -> None:
    """Create all tables (and optionally the default registry rows)."""
    engine = create_engine(database_url)
    Base.metadata.create_all(engine)
    engine.dispose()
    print(f"Database initialized at {database_url}")

    if seed:
        inserted = asyncio.run(_seed(database_url))
        print(
            f"Seeded {inserted['upscaler_models']} upscalers, "
            f"{inserted['model_capabilities']} model capability rows"
        )


async def _seed(database_url: str):
    database = Database(database_url)
    await database.connect()
    try:
        return await seed_defaults(database)
    finally:
        await database.disconnect()


async def _drain(config, max_jobs, concurrency):
    database = Database(config.database.url)
    await database.connect()
    try:
        services = build_services(database, config)
        services.worker.concurrency = max(1, concurrency)
        return await services.worker.drain(max_jobs=max_jobs)
    finally:
        await database.disconnect()


async def _generate_timeline(config, timeline_id, user_id, mode, source):
    database = Database(config.database.url)
    await database.connect()
    try:
        services = build_services(database, config)
        await services.timelines.require(timeline_id, user_id)
        return await services.orchestrator.generate_timeline(
            timeline_id, user_id, first_segment_mode=mode, first_segment_source=source
        )
    finally:
        await database.disconnect()


def main():
    parser = argparse.ArgumentParser(
        prog="framechain", description="Chained multi-segment AI video timelines"
    )
    parser.add_argument("--db", type=str, help="Database URL (overrides config and DATABASE_URL)")
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Override log level"
    )
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    # INIT-DB
    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.add_argument("--seed", action="store_true", help="Insert default registry rows")

    # SERVE
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    # ENHANCE
    enhance_parser = subparsers.add_parser("enhance", help="Enhancement jobs")
    enhance_subparsers = enhance_parser.add_subparsers(dest="enhance_command", help="Enhance commands")
    drain_parser = enhance_subparsers.add_parser("drain", help="Process queued enhancement jobs")
    drain_parser.add_argument("--max-jobs", type=int, help="Max jobs to process")
    drain_parser.add_argument("--concurrency", "-c", type=int, default=2, help="Jobs processed at once")

    # TIMELINE
    timeline_parser = subparsers.add_parser("timeline", help="Timeline operations")
    timeline_subparsers = timeline_parser.add_subparsers(dest="timeline_command", help="Timeline commands")
    generate_parser = timeline_subparsers.add_parser("generate", help="Generate all segments in order")
    generate_parser.add_argument("timeline_id", type=str, help="Timeline to generate")
    generate_parser.add_argument("--user", type=str, required=True, help="Owning user id")
    generate_parser.add_argument(
        "--mode",
        choices=["text-to-video", "image-to-video", "video-to-video", "first-frame-to-video"],
        help="Generation mode of the first segment",
    )
    generate_parser.add_argument("--source", type=str, help="Source image/video URL for the first segment")

    args = parser.parse_args()

    config = resolve_config({"database_url": args.db, "log_level": args.log_level})
    configure_logging(config.logging.log_file, config.logging.level, enable_console=False)

    if args.command == "init-db":
        init_db(config.database.url, seed=args.seed)

    elif args.command == "serve":
        import uvicorn

        # The API module reads DATABASE_URL at import time
        os.environ["DATABASE_URL"] = config.database.url
        uvicorn.run("framechain.api.main:app", host=args.host, port=args.port)

    elif args.command == "enhance":
        if args.enhance_command == "drain":
            stats = asyncio.run(_drain(config, args.max_jobs, args.concurrency))
            print("\n" + "=" * 60)
            print("ENHANCEMENT SUMMARY")
            print("=" * 60)
            print(f"Succeeded:            {stats['succeeded']}")
            print(f"Failed:               {stats['failed']}")
            print(f"Skipped:              {stats['skipped']}")
            print(f"Total duration:       {stats['duration_s']:.2f}s")
            print("=" * 60)
        else:
            enhance_parser.print_help()

    elif args.command == "timeline":
        if args.timeline_command == "generate":
            try:
                run = asyncio.run(
                    _generate_timeline(config, args.timeline_id, args.user, args.mode, args.source)
                )
            except FrameChainError as e:
                print(f"Error: {e}")
                sys.exit(1)
            for result in run.results:
                mark = "ok" if result.success else f"FAILED: {result.error}"
                print(f"[{result.position}] {result.segment_id} {result.generation_mode.value} {mark}")
            print(f"Generated {run.segments_generated}/{run.total_segments} segments")
            if run.cancelled:
                print(f"Run cancelled: {run.cancel_reason}")
            if run.segments_generated < run.total_segments:
                sys.exit(1)
        else:
            timeline_parser.print_help()

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
