"""Logging setup and operation timing for cardnote.

``traced`` wraps the sync entry points. Each call is timed, logged with a
short correlation ID and counted in the process-wide ``metrics`` collector,
which the CLI prints with ``--metrics``.
"""
import functools
import inspect
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".cardnote" / "logs"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB per file
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the ``cardnote`` logger hierarchy to a rotating log file.

    Calling this again with the same directory does not add a second
    file handler.

    Args:
        log_dir: Directory for ``cardnote.log``. Defaults to ~/.cardnote/logs/
        level: Logging level (default: INFO)
        max_bytes: Size at which the file is rotated
        backup_count: Number of rotated files to keep
        console: Also log to stderr

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger("cardnote")
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "cardnote.log"
    if not any(
        isinstance(h, RotatingFileHandler)
        and Path(h.baseFilename) == log_file.resolve()
        for h in package_logger.handlers
    ):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in package_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    package_logger.info(f"Logging to {log_file}")
    return log_path


@dataclass
class OperationStats:
    """Running totals for one traced operation."""
    calls: int = 0
    failures: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    last_error: Optional[str] = None

    @property
    def average_ms(self) -> float:
        return self.total_ms / self.calls if self.calls else 0.0


class MetricsCollector:
    """Thread-safe call counts and durations per operation name."""

    def __init__(self):
        self._stats: Dict[str, OperationStats] = {}
        self._lock = Lock()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        with self._lock:
            stats = self._stats.setdefault(operation, OperationStats())
            stats.calls += 1
            stats.total_ms += duration_ms
            stats.slowest_ms = max(stats.slowest_ms, duration_ms)
            if not success:
                stats.failures += 1
                stats.last_error = error

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation's stats, keyed by operation name."""
        with self._lock:
            return {
                name: {
                    'calls': s.calls,
                    'failures': s.failures,
                    'avg_ms': round(s.average_ms, 2),
                    'slowest_ms': round(s.slowest_ms, 2),
                    'last_error': s.last_error,
                }
                for name, s in self._stats.items()
            }

    def format_report(self) -> str:
        """One line per operation, sorted by name, for terminal output."""
        lines = []
        for name, m in sorted(self.get_metrics().items()):
            line = (
                f"{name}: {m['calls']} call(s), {m['failures']} failed, "
                f"avg {m['avg_ms']:.2f}ms, slowest {m['slowest_ms']:.2f}ms"
            )
            if m['last_error']:
                line += f", last error: {m['last_error']}"
            lines.append(line)
        return "\n".join(lines)


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block, log its start and end, and record it in ``metrics``.

    Yields a dict; keys stored in it are appended to the END log line.

    Example:
        with timed_operation('parse_references', length=len(text)) as op:
            result = parse_references(text)
            op['token_count'] = len(result.tokens)
    """
    correlation_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    try:
        yield result_info
    except Exception as e:
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, duration_ms, error_msg is None, error_msg)

        result_str = ', '.join(f'{k}={v}' for k, v in result_info.items())
        status = 'OK' if error_msg is None else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )


def _trace_context(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: kwargs[key]
        for key in ('card_id', 'source_card_id', 'project_id')
        if key in kwargs
    }


def _describe_result(op: Dict[str, Any], result: Any) -> None:
    # Tuples are composite results; their length says nothing
    if isinstance(result, (list, set, dict)):
        op['result_count'] = len(result)


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator running a function inside ``timed_operation``.

    Works for plain functions and coroutine functions. Identifying keyword
    arguments (card and project IDs) are included in the log lines.

    Example:
        @traced('sync_references')
        async def sync(self, source_card_id: int, project_id: int, text: str):
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with timed_operation(op_name, **_trace_context(kwargs)) as op:
                    result = await func(*args, **kwargs)
                    _describe_result(op, result)
                    return result

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(op_name, **_trace_context(kwargs)) as op:
                result = func(*args, **kwargs)
                _describe_result(op, result)
                return result

        return wrapper  # type: ignore
    return decorator
