"""Command-line entry point for the mailbox forwarder."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from mail_forwarder.config.environment import EnvironmentConfig
from mail_forwarder.config.exceptions import ConfigurationError
from mail_forwarder.config.loader import load_config, validate_config_file
from mail_forwarder.config.models import AppConfig
from mail_forwarder.domain.models import RunMode
from mail_forwarder.forwarding import ForwardRun
from mail_forwarder.logging import get_logger
from mail_forwarder.logging.config import configure_logging
from mail_forwarder.persistence.database import close_database, get_session, init_database

logger = get_logger(__name__, component="cli")

EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mail-forwarder",
        description=(
            "Forward every email a mailbox received in a date range to another "
            "mailbox, using the Microsoft Graph compliance search API"
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: forwarder.yaml or config/forwarder.yaml if present)",
    )
    parser.add_argument("--source", default=None, help="Mailbox whose email is forwarded")
    parser.add_argument("--target", default=None, help="Mailbox that receives the forwards")
    parser.add_argument("--start", default=None, help="First day to include (YYYY-MM-DD)")
    parser.add_argument("--end", default=None, help="Last day to include (YYYY-MM-DD)")
    parser.add_argument(
        "--target-folder", default=None, help="Folder in the target mailbox (default: ForwardedEmails)"
    )
    parser.add_argument("--log-path", type=Path, default=None, help="Log file to append to")
    parser.add_argument(
        "--strategy",
        default=None,
        choices=["per-item", "bulk-export"],
        help="Forward items one by one, or hand the result to one export action",
    )
    parser.add_argument(
        "--timeout", default=None, help="Deadline for each remote job (e.g. 30m, 1h, PT45M)"
    )
    parser.add_argument(
        "--test-mode",
        action="store_true",
        default=None,
        help="Simulate the run without contacting the platform",
    )
    parser.add_argument(
        "--verbose", action="store_true", default=None, help="Also write log records to the console"
    )
    parser.add_argument(
        "--yes", action="store_true", default=None, help="Do not ask for confirmation"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate the configuration file and exit",
    )
    return parser


def cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map parsed flags onto the configuration layout; unset flags stay None."""
    return {
        "run": {
            "source_scope": args.source,
            "target_scope": args.target,
            "date_range_start": args.start,
            "date_range_end": args.end,
            "target_folder": args.target_folder,
            "log_path": args.log_path,
            "strategy": args.strategy,
            "test_mode": args.test_mode,
            "verbose": args.verbose,
            "assume_yes": args.yes,
        },
        "polling": {"timeout": args.timeout},
    }


def load_runtime_config(
    config_path: Optional[Path], overrides: Dict[str, Any], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > environment > config file > INFO.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path, overrides)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run one forwarding job from the command line.

    Returns:
        Exit code: 0 done or cancelled, 1 failed, 2 timed out, 130 interrupted.
    """
    args = build_parser().parse_args(argv)

    if args.validate_config:
        if args.config is None:
            print("--validate-config requires --config", file=sys.stderr)
            return 1
        return 0 if validate_config_file(args.config) else 1

    database_ready = False
    try:
        app_config, env_config = load_runtime_config(
            args.config, cli_overrides(args), args.log_level
        )
        settings = app_config.run

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            log_path=settings.log_path,
            verbose=settings.verbose,
            environment=env_config.environment,
        )
        logger.info(
            "Mail forwarder starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_path": str(settings.log_path),
                "log_level": env_config.log_level,
                "test_mode": settings.test_mode,
            },
        )

        # Test runs leave no trace outside the log file
        if settings.mode == RunMode.LIVE:
            init_database(env_config.database_url)
            database_ready = True

        run = ForwardRun(
            app_config,
            env_config,
            db_session_factory=get_session if database_ready else None,
        )
        result = run.execute()

        if result.report and not settings.verbose:
            print(result.report)
        if result.error_message:
            print(f"Run {result.state.value}: {result.error_message}", file=sys.stderr)
        print(f"Log file: {settings.log_path}", file=sys.stderr)

        return result.exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted; the platform session has been released", file=sys.stderr)
        logger.warning("Run interrupted by user", extra={"event": "service.keyboard_interrupt"})
        return EXIT_INTERRUPTED
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1
    finally:
        if database_ready:
            close_database()


if __name__ == "__main__":
    sys.exit(main())
