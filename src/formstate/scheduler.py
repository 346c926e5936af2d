"""
Debounced, batched validation scheduling on the asyncio event loop.

Two entry points feed the same debounce timer:

- schedule(): (re)starts the timer. Used for value writes.
- schedule_batched(): coalesces every call made in the current loop
  iteration into one schedule() via loop.call_soon. Used for array
  operations, so a burst of pushes/splices collapses to one timer restart.

When the timer fires, run_now() snapshots the tree, calls the validator and
hands the result to the owner's callback.

Overlapping passes (a slow async validation still in flight when a newer one
starts) are resolved by sequence number: only the most recently issued pass
may apply its result. An older pass that finishes late is discarded.
In-flight validator calls are never cancelled.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Mapping, Optional, Set

from formstate.validators import ValidationResult

logger = logging.getLogger(__name__)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def coerce_result(result: Any) -> ValidationResult:
    """Accept ValidationResult or a ``{'success': ..., 'errors': ...}`` mapping."""
    if isinstance(result, ValidationResult):
        return result
    if isinstance(result, Mapping) and 'success' in result:
        return ValidationResult(
            success=bool(result['success']),
            data=result.get('data'),
            errors=dict(result.get('errors') or {}),
        )
    raise TypeError(f"Validator returned unsupported result type {type(result).__name__}")


class ValidationScheduler:
    """
    Runs one validator against snapshots of the tree, at most once per burst.

    Args:
        validator: Object with safe_parse and optionally safe_parse_async
        snapshot: Returns the data to validate (called when a pass starts)
        on_result: Receives the ValidationResult, or None if the validator raised
        debounce_seconds: Quiet period after the last schedule() call
        on_status: Called whenever is_validating may have changed
    """

    def __init__(
        self,
        validator: Any,
        snapshot: Callable[[], Any],
        on_result: Callable[[Optional[ValidationResult]], None],
        debounce_seconds: float = 0.1,
        on_status: Optional[Callable[[], None]] = None,
    ):
        self._validator = validator
        self._snapshot = snapshot
        self._on_result = on_result
        self._on_status = on_status
        self.debounce_seconds = debounce_seconds

        self._timer: Optional[asyncio.TimerHandle] = None
        self._batch_handle: Optional[asyncio.Handle] = None
        self._deferred = False  # requested while no loop was running
        self._tasks: Set[asyncio.Task] = set()
        self._sequence = 0
        self._in_flight = 0
        self._disposed = False

    # ==================== STATUS ====================

    @property
    def is_validating(self) -> bool:
        return self._in_flight > 0

    @property
    def pending(self) -> bool:
        """True while a pass is requested but has not started yet."""
        return self._deferred or self._timer is not None or self._batch_handle is not None

    @property
    def sequence(self) -> int:
        """Sequence number of the latest issued (or retired) pass."""
        return self._sequence

    # ==================== SCHEDULING ====================

    def schedule(self) -> None:
        """Start or restart the debounce timer."""
        if self._disposed:
            return
        loop = _running_loop()
        if loop is None:
            self._deferred = True
            logger.debug("No running event loop; validation deferred until flush()")
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self._fire)

    def schedule_batched(self) -> None:
        """Coalesce same-iteration requests into a single schedule()."""
        if self._disposed:
            return
        loop = _running_loop()
        if loop is None:
            self._deferred = True
            return
        if self._batch_handle is None:
            self._batch_handle = loop.call_soon(self._flush_batch)

    def _flush_batch(self) -> None:
        self._batch_handle = None
        self.schedule()

    def _fire(self) -> None:
        self._timer = None
        self._deferred = False
        task = asyncio.ensure_future(self.run_now())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self, discard_in_flight: bool = False) -> None:
        """Cancel a pending (not yet started) pass.

        In-flight passes keep running; with ``discard_in_flight`` their results
        are dropped when they complete.
        """
        if discard_in_flight:
            self._sequence += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._batch_handle is not None:
            self._batch_handle.cancel()
            self._batch_handle = None
        self._deferred = False

    # ==================== RUNNING ====================

    async def _invoke(self) -> Optional[ValidationResult]:
        try:
            data = self._snapshot()
            safe_parse_async = getattr(self._validator, 'safe_parse_async', None)
            if safe_parse_async is not None:
                result = await safe_parse_async(data)
            else:
                result = self._validator.safe_parse(data)
                if inspect.isawaitable(result):
                    result = await result
            return coerce_result(result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Validator failed, treating form as invalid: {e}")
            return None

    async def run_now(self) -> Optional[ValidationResult]:
        """Validate immediately and apply the result if no newer pass was issued.

        Returns:
            The ValidationResult of this pass (None if the validator raised),
            whether or not it was applied.
        """
        self._sequence += 1
        sequence = self._sequence
        self._in_flight += 1
        self._notify_status()
        try:
            result = await self._invoke()
            if self._disposed:
                return result
            if sequence != self._sequence:
                logger.debug(f"Discarding stale validation pass {sequence} (latest is {self._sequence})")
                return result
            self._on_result(result)
            return result
        finally:
            self._in_flight -= 1
            self._notify_status()

    async def flush(self) -> Optional[ValidationResult]:
        """Run a pending pass now, then wait for passes already in flight."""
        result = None
        if self.pending:
            self.cancel()
            result = await self.run_now()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return result

    def dispose(self) -> None:
        """Cancel pending and timer-started passes; further requests are ignored."""
        self.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._disposed = True

    def _notify_status(self) -> None:
        if self._on_status is None or self._disposed:
            return
        try:
            self._on_status()
        except Exception as e:
            logger.warning(f"Error in validation status callback: {e}")
