"""Main entry point for the email retry engine service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from email_retry.config.environment import EnvironmentConfig
from email_retry.config.exceptions import ConfigurationError
from email_retry.config.loader import load_config
from email_retry.config.models import AppConfig
from email_retry.domain.models import EmailType
from email_retry.logging import get_logger
from email_retry.logging.config import configure_logging
from email_retry.notifications import ReplaySender
from email_retry.persistence.database import close_database, init_database
from email_retry.persistence.store import DatabaseFailureStore
from email_retry.retry.classifier import PatternFailureClassifier
from email_retry.retry.coordinator import BatchRetryCoordinator
from email_retry.retry.engine import RetryEngine
from email_retry.retry.models import BatchRetrySummary
from email_retry.retry.policy import RetryPolicy
from email_retry.retry.store import FailureStore
from email_retry.scheduler import SchedulerService

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_engine(app_config: AppConfig, store: Optional[FailureStore] = None) -> RetryEngine:
    """Wire a RetryEngine from the retry section of the configuration."""
    retry = app_config.retry
    return RetryEngine(
        store=store or DatabaseFailureStore(),
        policy=RetryPolicy(retry.limits, default_limit=retry.default_limit),
        classifier=PatternFailureClassifier.with_extra_patterns(
            extra_permanent=retry.extra_permanent_patterns,
            extra_transient=retry.extra_transient_patterns,
        ),
        base_delay=retry.base_delay_seconds,
        max_delay=retry.max_delay_seconds,
        jitter_factor=retry.jitter_factor,
    )


def run_batch(
    coordinator: BatchRetryCoordinator,
    sender: ReplaySender,
    email_type: Optional[EmailType] = None,
) -> BatchRetrySummary:
    """Execute one batch retry run."""
    return coordinator.retry_all(sender.build_attempt_send, email_type=email_type)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Email Retry Engine - retries failed email deliveries with exponential backoff"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--manual-run",
        action="store_true",
        help="Run a single batch retry immediately and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--email-type",
        default=None,
        choices=[t.value for t in EmailType],
        help="Only retry failures of this email type",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the email retry engine.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=os.environ.get("ENVIRONMENT", app_config.logging.environment),
        )

        logger.info(
            "Email retry engine starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "manual_run": args.manual_run,
            },
        )

        init_database(env_config.database_url)
        try:
            email_type = EmailType(args.email_type) if args.email_type else app_config.retry.email_type
            engine = build_engine(app_config)
            coordinator = BatchRetryCoordinator(engine)
            sender = ReplaySender(env_config, app_config.email)

            logger.info(
                "Configuration loaded",
                extra={
                    "event": "config.loaded",
                    "retry_interval_seconds": app_config.retry_interval_seconds,
                    "retry_policy": repr(engine.policy),
                    "email_type_filter": email_type.value if email_type else None,
                },
            )

            if args.manual_run:
                logger.info("Executing manual batch retry", extra={"event": "service.manual_run.starting"})
                summary = run_batch(coordinator, sender, email_type)

                logger.info(
                    f"Manual batch retry completed: {summary.successful} succeeded, "
                    f"{summary.failed} failed",
                    extra={"event": "service.manual_run.completed", **summary.as_dict()},
                )

                _log_stopping(start_time)
                return 1 if summary.had_failures else 0

            shutdown_event = threading.Event()
            scheduler_service = SchedulerService(
                batch_callable=lambda: run_batch(coordinator, sender, email_type),
                interval_seconds=app_config.retry_interval_seconds,
                shutdown_event=shutdown_event,
            )

            def signal_handler(signum, frame):
                logger.info(
                    f"Received signal {signum}, shutting down",
                    extra={"event": "service.signal_received", "signal": signum},
                )
                scheduler_service.shutdown(wait=False)

            signal.signal(signal.SIGINT, signal_handler)
            signal.signal(signal.SIGTERM, signal_handler)

            scheduler_service.start()
            logger.info(
                "Scheduler started. Press Ctrl+C to stop",
                extra={"event": "service.daemon_mode.started"},
            )

            try:
                shutdown_event.wait()
            except KeyboardInterrupt:
                scheduler_service.shutdown(wait=False)

            _log_stopping(start_time)
            return 0
        finally:
            close_database()

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e.message}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            exc_info=True,
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
        )
        return 1


def _log_stopping(start_time: float) -> None:
    logger.info(
        "Email retry engine stopped",
        extra={
            "event": "service.stopping",
            "uptime_seconds": round(time.time() - start_time, 2),
        },
    )


if __name__ == "__main__":
    sys.exit(main())
