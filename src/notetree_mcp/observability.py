"""Observability utilities for the Notetree MCP server.

Rotating file logging, per-operation timing metrics and a tracing
decorator that works for both plain and coroutine functions.
"""
import functools
import inspect
import json
import logging
import time
import uuid
from collections import Counter, defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# Every module logs under this package name
ROOT_LOGGER_NAME = "notetree_mcp"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar('F', bound=Callable[..., Any])

_logging_configured = False


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Send the package's log records to a rotating file.

    Args:
        log_dir: Directory for log files. Defaults to ``config.get_log_dir()``
        level: Logging level
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files to keep
        console: Also log to stderr

    Returns:
        Path to the log directory
    """
    global _logging_configured

    if log_dir is None:
        from notetree_mcp.config import config
        log_path = config.get_log_dir()
    else:
        log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "notetree.log"
    # Calling twice must not duplicate output
    for handler in list(root_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            root_logger.removeHandler(handler)
            handler.close()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        # MCP speaks over stdout, so the console handler must use stderr
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _logging_configured = True
    root_logger.info(f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)")
    return log_path


def is_logging_configured() -> bool:
    """Check if file logging has been configured."""
    return _logging_configured


@dataclass
class OperationMetrics:
    """Counters for one operation name."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    # Mutation outcomes ("committed", "rolled_back", "rejected") by count
    outcomes: Counter = field(default_factory=Counter)

    def as_dict(self) -> Dict[str, Any]:
        avg = self.total_duration_ms / self.count if self.count else 0.0
        return {
            'count': self.count,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'avg_duration_ms': round(avg, 2),
            'min_duration_ms': round(self.min_duration_ms or 0.0, 2),
            'max_duration_ms': round(self.max_duration_ms, 2),
            'last_error': self.last_error,
            'outcomes': dict(self.outcomes),
        }


class MetricsCollector:
    """Timing, error and outcome counters keyed by operation name.

    Repository calls run in worker threads while the orchestrator runs on
    the event loop, so every access goes through one lock.
    """

    def __init__(self, metrics_file: Optional[Union[str, Path]] = None):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)
        self._metrics_file = Path(metrics_file) if metrics_file else None

    def set_metrics_file(self, metrics_file: Optional[Union[str, Path]]) -> None:
        """Point ``save_metrics`` at a file (None disables saving)."""
        with self._lock:
            self._metrics_file = Path(metrics_file) if metrics_file else None

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
        outcome: Optional[str] = None,
    ) -> None:
        """Record one finished operation.

        Args:
            operation: The operation name (e.g. 'workspace.move_folder')
            duration_ms: Duration in milliseconds
            success: False if the operation raised
            error: Error message if it raised
            outcome: Mutation status, when the operation was a mutation
        """
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            if m.min_duration_ms is None or duration_ms < m.min_duration_ms:
                m.min_duration_ms = duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
            if outcome:
                m.outcomes[outcome] += 1

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation metrics, keyed by operation name."""
        with self._lock:
            return {op: m.as_dict() for op, m in self._metrics.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across every operation."""
        with self._lock:
            outcomes: Counter = Counter()
            for m in self._metrics.values():
                outcomes.update(m.outcomes)
            total_ops = sum(m.count for m in self._metrics.values())
            total_errors = sum(m.error_count for m in self._metrics.values())
            return {
                'uptime_seconds': (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                'total_operations': total_ops,
                'total_errors': total_errors,
                'overall_success_rate': (total_ops - total_errors) / total_ops if total_ops else 1.0,
                'rolled_back': outcomes['rolled_back'],
                'rejected': outcomes['rejected'],
                'operations_tracked': sorted(self._metrics.keys()),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)

    def save_metrics(self) -> bool:
        """Write the current metrics to the metrics file.

        Returns:
            True if saved, False if no file is set or the write failed.
        """
        with self._lock:
            if self._metrics_file is None:
                return False
            data = {
                "start_time": self._start_time.isoformat(),
                "saved_at": datetime.now(timezone.utc).isoformat(),
                "operations": {op: m.as_dict() for op, m in self._metrics.items()},
            }
            try:
                self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
                temp_file = self._metrics_file.with_suffix(".tmp")
                temp_file.write_text(json.dumps(data, indent=2), encoding="utf-8")
                temp_file.replace(self._metrics_file)
                return True
            except OSError as e:
                logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
                return False


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block, record it in ``metrics`` and log start/end.

    Yields a dict the caller can add result details to. A ``status`` key
    is recorded as the mutation outcome; everything else only shows up in
    the END log line.

    Example:
        with timed_operation('folder.move', folder_id=3) as op:
            result = await persist_move()
            op['status'] = 'committed' if result else 'rolled_back'
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    details: Dict[str, Any] = {}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    try:
        yield details
    except Exception as e:
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(
            operation, duration_ms, error_msg is None, error_msg, details.get('status')
        )
        details_str = ', '.join(f'{k}={v}' for k, v in details.items())
        status = 'OK' if error_msg is None else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {details_str}"
        )


def _trace_context(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: kwargs[key]
        for key in ("folder_id", "note_id", "tag_id", "parent_id")
        if key in kwargs
    }


def _note_result(op: Dict[str, Any], result: Any) -> None:
    status = getattr(result, "status", None)
    if isinstance(status, Enum):
        op['status'] = status.value
    elif isinstance(result, (list, tuple, dict, set)):
        op['result_count'] = len(result)


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator that wraps a function (sync or async) in ``timed_operation``.

    Results with a ``status`` enum (mutation results) are counted by
    outcome; collections are logged with their size.

    Args:
        operation_name: Name to record. Defaults to the function name.
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with timed_operation(op_name, **_trace_context(kwargs)) as op:
                    result = await func(*args, **kwargs)
                    _note_result(op, result)
                    return result

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(op_name, **_trace_context(kwargs)) as op:
                result = func(*args, **kwargs)
                _note_result(op, result)
                return result

        return wrapper  # type: ignore
    return decorator
