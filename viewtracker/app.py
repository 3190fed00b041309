import argparse
import json
import signal
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from . import __version__
from .config import Settings
from .database import get_session_factory, init_database
from .earnings import EarningsPolicy
from .env import load_env
from .errors import ViewTrackerError
from .logger import StructuredLogger, get_logger
from .providers import EnsembleClient
from .retry import RetryError
from .service import TrackingService
from .storage import VideoStore
from .transaction import Transactor
from .updater import UpdaterService


@dataclass
class Components:
    settings: Settings
    logger: StructuredLogger
    store: VideoStore
    transactor: Transactor
    policy: EarningsPolicy
    provider: Optional[EnsembleClient] = None

    def tracking(self) -> TrackingService:
        return TrackingService(self.store, self.provider, self.policy, logger=self.logger)

    def updater(self) -> UpdaterService:
        return UpdaterService(
            self.store,
            self.provider,
            self.transactor,
            self.settings.updater,
            self.policy,
            logger=self.logger,
        )


def build_components(settings: Settings, with_provider: bool = True) -> Components:
    logger = get_logger(level=settings.log_level, log_dir=settings.log_dir)
    engine = init_database(settings.database.path)
    session_factory = get_session_factory(engine)
    return Components(
        settings=settings,
        logger=logger,
        store=VideoStore(session_factory),
        transactor=Transactor(session_factory),
        policy=EarningsPolicy.from_config(settings.earnings),
        provider=EnsembleClient(settings.provider, logger=logger) if with_provider else None,
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _parse_unix(raw: Optional[str], name: str) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    try:
        return datetime.fromtimestamp(int(raw))
    except (ValueError, OverflowError, OSError):
        raise SystemExit(f"Invalid --{name} value (expected unix seconds): {raw}")


def cmd_init_db(args: argparse.Namespace, components: Components) -> None:
    print(f"Database ready: {components.settings.database.path}")


def cmd_track(args: argparse.Namespace, components: Components) -> None:
    try:
        video = components.tracking().track(url=args.url, tiktok_id=args.tiktok_id)
    except RetryError as e:
        raise SystemExit(f"Provider unavailable: {e}")
    _print_json(video)


def cmd_show(args: argparse.Namespace, components: Components) -> None:
    _print_json(components.tracking().get(args.tiktok_id))


def cmd_history(args: argparse.Namespace, components: Components) -> None:
    start = _parse_unix(args.start, "from")
    end = _parse_unix(args.end, "to")
    _print_json(components.tracking().history(args.id, start=start, end=end))


def cmd_list(args: argparse.Namespace, components: Components) -> None:
    videos, total = components.store.list_all(status=args.status, limit=args.limit, offset=args.offset)
    if not videos:
        print("No videos tracked.")
        return
    print(f"Showing {len(videos)} of {total} videos:\n")
    for video in videos:
        print(f"ID: {video.id}  TikTok: {video.external_id}")
        print(f"  URL: {video.url}")
        print(f"  Views: {video.current_views}  Earnings: {video.current_earnings:.4f} USD")
        print(f"  Status: {video.status.value}  Updated: {video.updated_at.isoformat()}")
        if video.last_error:
            print(f"  Last error: {video.last_error}")
        print()


def cmd_stop(args: argparse.Namespace, components: Components) -> None:
    _print_json(components.tracking().stop(args.id))


def cmd_update_once(args: argparse.Namespace, components: Components) -> None:
    report = components.updater().drain()
    components.logger.log_metrics_summary()
    _print_json(report.summary())


def cmd_run(args: argparse.Namespace, components: Components) -> None:
    stop = threading.Event()

    def handle_signal(signum, frame):
        components.logger.info("Shutdown signal received, stopping updater", signal=signum)
        stop.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    components.updater().run(stop)
    components.logger.log_metrics_summary()


COMMANDS_WITHOUT_PROVIDER = {"init-db", "show", "history", "list", "stop"}


def main(argv=None):
    # Load .env if present (PROVIDER_TOKEN, VIEWTRACKER_DB_PATH, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="viewtracker", description="TikTok view and earnings tracker")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create the database tables")
    ini.set_defaults(func=cmd_init_db)

    trk = subparsers.add_parser("track", help="Start tracking a video (fetches its first snapshot)")
    trk.add_argument("--url", help="TikTok video URL")
    trk.add_argument("--tiktok-id", dest="tiktok_id", help="TikTok video id (derived from --url if omitted)")
    trk.set_defaults(func=cmd_track)

    shw = subparsers.add_parser("show", help="Show the latest stored stats of a tracked video")
    shw.add_argument("--tiktok-id", dest="tiktok_id", required=True, help="TikTok video id")
    shw.set_defaults(func=cmd_show)

    his = subparsers.add_parser("history", help="Show the stored stats history of a video")
    his.add_argument("--id", type=int, required=True, help="Internal video id")
    his.add_argument("--from", dest="start", help="Start time, unix seconds (inclusive)")
    his.add_argument("--to", dest="end", help="End time, unix seconds (exclusive)")
    his.set_defaults(func=cmd_history)

    lst = subparsers.add_parser("list", help="List tracked videos")
    lst.add_argument("--status", choices=["active", "error", "stopped"], help="Filter by status")
    lst.add_argument("--limit", type=int, default=50, help="Page size (default 50)")
    lst.add_argument("--offset", type=int, default=0, help="Page offset")
    lst.set_defaults(func=cmd_list)

    stp = subparsers.add_parser("stop", help="Stop refreshing a video")
    stp.add_argument("--id", type=int, required=True, help="Internal video id")
    stp.set_defaults(func=cmd_stop)

    one = subparsers.add_parser("update-once", help="Drain all stale videos once and exit")
    one.set_defaults(func=cmd_update_once)

    run = subparsers.add_parser("run", help="Run the periodic updater until interrupted")
    run.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        settings = Settings.from_env()
        components = build_components(settings, with_provider=args.command not in COMMANDS_WITHOUT_PROVIDER)
        args.func(args, components)
    except ViewTrackerError as e:
        raise SystemExit(f"Error: {e}")
    except ValueError as e:
        raise SystemExit(f"Invalid configuration: {e}")


if __name__ == "__main__":
    main()
