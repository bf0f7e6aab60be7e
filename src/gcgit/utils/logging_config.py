"""Logging configuration for gcgit.

Provides configurable logging with:
- File-based logging with rotation
- Console output for interactive runs
- Performance timing helpers for pulls and API calls

Environment Variables:
    GCGIT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    GCGIT_LOG_FILE: Path to log file (default: ~/.gcgit/gcgit.log)
    GCGIT_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    GCGIT_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from gcgit.utils.logging_config import setup_logging, timed_section

    setup_logging()  # Call once at startup

    async with timed_section("pull", subject="xsiam/dashboards"):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("gcgit.perf")
main_logger = logging.getLogger("gcgit")


def get_log_level(default: str = "INFO") -> int:
    """Get log level from environment."""
    level_str = os.environ.get("GCGIT_LOG_LEVEL", default).upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".gcgit" / "gcgit.log"
    path_str = os.environ.get("GCGIT_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects GCGIT_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for timing metrics

    Calling it again replaces the handlers installed by the previous call.

    Args:
        verbose: Force DEBUG on the console regardless of GCGIT_LOG_LEVEL
    """
    log_level = logging.DEBUG if verbose else get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("GCGIT_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("GCGIT_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-30s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    perf_log_file = log_file.parent / "gcgit-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    for configured in (main_logger, perf_logger):
        for handler in list(configured.handlers):
            configured.removeHandler(handler)
            handler.close()

    main_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    main_logger.addHandler(console_handler)
    main_logger.addHandler(file_handler)

    # Perf records only go to their own file
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.propagate = False
    perf_logger.addHandler(perf_handler)

    main_logger.debug(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")


def _format_perf(operation: str, subject: Optional[str], elapsed: float, outcome: str, extra: dict) -> str:
    msg = f"{operation:20s} | {subject or 'N/A':30s} | {elapsed:8.2f}ms | {outcome}"
    if extra:
        msg += " | " + " | ".join(f"{k}={v}" for k, v in extra.items())
    return msg


def timed(operation: str, subject: Optional[str] = None):
    """Decorator to log execution time of sync/async functions.

    Args:
        operation: Name of the operation (e.g., "pull", "diff", "commit")
        subject: Optional subject label (inferred from self.instance_name when omitted)

    Usage:
        @timed("pull")
        async def pull(self):
            ...
    """
    def decorator(func: Callable) -> Callable:
        def resolve_subject(args: tuple) -> Optional[str]:
            if subject is None and args and hasattr(args[0], "instance_name"):
                return args[0].instance_name
            return subject

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            label = resolve_subject(args)
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_perf(operation, label, elapsed, f"FAIL: {e}", {}))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_format_perf(operation, label, elapsed, "OK", {}))
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            label = resolve_subject(args)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_perf(operation, label, elapsed, f"FAIL: {e}", {}))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_format_perf(operation, label, elapsed, "OK", {}))
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, subject: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Args:
        operation: Name of the operation
        subject: What the operation runs against (e.g. "xsiam/biocs")
        **extra: Additional context to log

    Usage:
        async with timed_section("pull", subject="appsec/rules", strategy="offset"):
            await engine.pull(definition)
    """
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        perf_logger.warning(_format_perf(operation, subject, elapsed, f"FAIL: {e}", extra))
        raise
    elapsed = (time.perf_counter() - start) * 1000
    perf_logger.info(_format_perf(operation, subject, elapsed, "OK", extra))
