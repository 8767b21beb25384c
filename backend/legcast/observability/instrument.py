from __future__ import annotations

import functools
import inspect
import time
from typing import Any, Callable, Dict, TypeVar

import structlog

from .metrics import JOB_DURATION, JOB_FAILURES

F = TypeVar("F", bound=Callable[..., Any])

logger = structlog.get_logger("job")

# keyword arguments worth echoing on job events
_CONTEXT_KWARGS = ("version_tag", "from_tag", "to_tag", "dev_tag", "target_tag")


def _result_size(res: Any) -> int | None:
    if isinstance(res, (list, tuple, set, dict)):
        return len(res)
    for attr in ("models_written", "model_count"):
        size = getattr(res, attr, None)
        if isinstance(size, int):
            return size
    if isinstance(res, int) and not isinstance(res, bool):
        return res
    return None


def _job_context(func: Callable[..., Any], args: tuple, kwargs: dict) -> Dict[str, Any]:
    """Pick tag-like arguments out of the call so job logs say which version they touched."""
    try:
        bound = inspect.signature(func).bind_partial(*args, **kwargs)
    except TypeError:
        return {}
    return {k: v for k, v in bound.arguments.items() if k in _CONTEXT_KWARGS and v is not None}


class _JobTimer:
    def __init__(self, name: str, context: Dict[str, Any]) -> None:
        self.name = name
        self.context = context
        self.start = time.perf_counter()
        logger.info("job.start", job=name, **context)

    def _elapsed_ms(self) -> float:
        elapsed = time.perf_counter() - self.start
        JOB_DURATION.labels(job=self.name).observe(elapsed)
        return round(elapsed * 1000, 2)

    def failed(self) -> None:
        JOB_FAILURES.labels(job=self.name).inc()
        logger.exception("job.error", job=self.name, duration_ms=self._elapsed_ms(), **self.context)

    def completed(self, result: Any) -> None:
        logger.info(
            "job.completed",
            job=self.name,
            duration_ms=self._elapsed_ms(),
            result_size=_result_size(result),
            **self.context,
        )


def log_job(name: str) -> Callable[[F], F]:
    """Time a batch operation, emit job.start / job.completed / job.error and re-raise failures."""

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any):
                timer = _JobTimer(name, _job_context(func, args, kwargs))
                try:
                    result = await func(*args, **kwargs)
                except Exception:
                    timer.failed()
                    raise
                timer.completed(result)
                return result

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any):
            timer = _JobTimer(name, _job_context(func, args, kwargs))
            try:
                result = func(*args, **kwargs)
            except Exception:
                timer.failed()
                raise
            timer.completed(result)
            return result

        return sync_wrapper  # type: ignore[return-value]

    return decorator
