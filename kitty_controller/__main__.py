"""
Standalone entrypoint for running the composition launcher.

Starts the launcher (command queue, container reconciler, manifest catalog)
and serves its HTTP API with uvicorn until interrupted.

Usage:
    python -m kitty_controller [OPTIONS]
    kitty-controller [OPTIONS]  (after pip install)

Environment Variables:
    See kitty_controller.config; additionally KITTY_HOST, KITTY_PORT and
    KITTY_LOG_FILE.
"""

import argparse
import asyncio
import dataclasses
import logging
import os
import sys

import uvicorn

from kitty_controller.config import LauncherConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Container Kitty - launch and supervise docker compose compositions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  KITTY_DEV_MODE          Use bundled fixtures instead of git (1/true/yes)
  KITTY_REPO_URL          Compositions repository URL
  KITTY_BRANCH            Branch to read (default: main)
  KITTY_POLL_INTERVAL     Seconds between container polls (default: 5.0)
  KITTY_DOCKER            docker executable (default: docker)
  KITTY_GRACE_PERIOD      Shutdown grace period in seconds (default: 10.0)
  KITTY_HOST / KITTY_PORT API bind address (default: 127.0.0.1:8765)
  KITTY_LOG_FILE          Append the activity log to this file

Note: Command-line arguments override environment variables.

Examples:
  # Run against bundled fixtures
  kitty-controller --dev

  # Use another compositions repository and branch
  kitty-controller --repo-url https://gitlab.com/acme/compose.git --branch release

  # Keep an activity log and enable debug output
  kitty-controller --log-file ~/.kitty/activity.log --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--dev",
        action="store_true",
        default=None,
        help="Development mode: bundled manifest and templates (default: KITTY_DEV_MODE)",
    )
    parser.add_argument(
        "--repo-url",
        type=str,
        default=None,
        help="Compositions repository URL (default: KITTY_REPO_URL env)",
    )
    parser.add_argument(
        "--branch",
        type=str,
        default=None,
        help="Branch whose head is read (default: KITTY_BRANCH env or main)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between container polls (default: KITTY_POLL_INTERVAL env or 5.0)",
    )
    parser.add_argument(
        "--docker",
        type=str,
        default=None,
        help="docker executable (default: KITTY_DOCKER env or docker)",
    )
    parser.add_argument(
        "--collect-memory",
        action="store_true",
        default=None,
        help="Read per-container memory usage on each poll",
    )
    parser.add_argument(
        "--grace-period",
        type=float,
        default=None,
        help="Seconds to wait for the running command at shutdown (default: 10.0)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="API bind host (default: KITTY_HOST env or 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="API bind port (default: KITTY_PORT env or 8765)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Append the timestamped activity log to this file (default: KITTY_LOG_FILE env)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> LauncherConfig:
    """
    Merge command-line arguments over the environment configuration.

    Args:
        args: Parsed command-line arguments

    Returns:
        Effective launcher configuration
    """
    config = LauncherConfig.from_env()
    overrides = {}

    if args.dev:
        overrides["dev_mode"] = True
    if args.repo_url:
        overrides["repo_url"] = args.repo_url
    if args.branch:
        overrides["branch"] = args.branch
    if args.docker:
        overrides["docker"] = args.docker
    if args.collect_memory:
        overrides["collect_memory"] = True

    if args.interval is not None:
        if args.interval <= 0:
            logger.warning(f"Invalid interval={args.interval}, using {config.poll_interval}")
        else:
            overrides["poll_interval"] = args.interval

    if args.grace_period is not None:
        if args.grace_period <= 0:
            logger.warning(
                f"Invalid grace period={args.grace_period}, using {config.grace_period}"
            )
        else:
            overrides["grace_period"] = args.grace_period

    return dataclasses.replace(config, **overrides)


def get_host(args: argparse.Namespace) -> str:
    if args.host:
        return args.host
    return os.environ.get("KITTY_HOST", "127.0.0.1")


def get_port(args: argparse.Namespace) -> int:
    if args.port is not None:
        return args.port
    try:
        return int(os.environ.get("KITTY_PORT", "8765"))
    except ValueError:
        logger.warning(
            f"Invalid KITTY_PORT={os.environ.get('KITTY_PORT')}, using default 8765"
        )
        return 8765


def get_log_file(args: argparse.Namespace) -> str | None:
    return args.log_file or os.environ.get("KITTY_LOG_FILE") or None


def configure_logging(level: str, log_file: str | None = None) -> None:
    """
    Configure root logging, optionally appending to a log file.

    The file handler opens in append mode so the activity log survives
    restarts.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        path = os.path.expanduser(log_file)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="a", encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level), format=LOG_FORMAT, handlers=handlers
    )


async def run_controller(args: argparse.Namespace) -> None:
    """
    Configure the launcher and serve the API until interrupted.

    uvicorn handles SIGINT/SIGTERM; the app lifespan starts and stops the
    launcher.
    """
    from kitty_server import app as server

    config = build_config(args)
    host = get_host(args)
    port = get_port(args)

    logger.info("Starting Container Kitty")
    logger.info(f"  Mode: {'development' if config.dev_mode else 'production'}")
    logger.info(f"  Repository: {config.repo_url} ({config.branch})")
    logger.info(f"  Poll interval: {config.poll_interval}s")
    logger.info(f"  API: http://{host}:{port}")

    server.configure(config)
    uvicorn_server = uvicorn.Server(
        uvicorn.Config(server.app, host=host, port=port, log_config=None)
    )
    await uvicorn_server.serve()


def main(argv: list[str] | None = None) -> int:
    """
    Main entrypoint for the launcher.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)
    configure_logging(args.log_level, get_log_file(args))

    try:
        asyncio.run(run_controller(args))
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
