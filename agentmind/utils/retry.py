"""
Deadline enforcement and bounded retry for external capability calls.
"""

import random
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Tuple, Type, TypeVar

from ..models.errors import CapabilityError
from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (CapabilityError, TimeoutError, ConnectionError)


class CancelledError(Exception):
    """Raised when a cancel event is set while waiting on a capability."""
    pass


def call_with_deadline(func: Callable[[], T], timeout: Optional[float]) -> T:
    """Run func on a worker thread and wait at most timeout seconds.

    The worker cannot be killed; on timeout its eventual result is dropped.

    Raises:
        TimeoutError: If func does not finish in time
    """
    if timeout is None:
        return func()

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='capability')
    future = executor.submit(func)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        raise TimeoutError(f'Capability call exceeded {timeout:.1f}s deadline')
    finally:
        executor.shutdown(wait=False)


def call_with_retry(func: Callable[[], T],
                    attempts: int = 3,
                    delay: float = 1.0,
                    timeout: Optional[float] = None,
                    label: str = 'capability',
                    participant_id: Optional[str] = None,
                    cancel_event: Optional[threading.Event] = None) -> T:
    """Call func with a deadline per attempt and exponential backoff between attempts.

    Args:
        func: Zero-argument callable performing the external call
        attempts: Maximum number of attempts
        delay: Base backoff in seconds; attempt n waits delay * 2**n plus jitter
        timeout: Per-attempt deadline in seconds
        label: Name used in log lines
        participant_id: Participant the call speaks for
        cancel_event: Aborts waiting when set

    Returns:
        The value returned by func

    Raises:
        CapabilityError: If every attempt fails or an unexpected error occurs
        CancelledError: If cancel_event is set before or between attempts
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        if cancel_event is not None and cancel_event.is_set():
            raise CancelledError(f'{label} cancelled')
        try:
            logger.debug(f'{label} attempt {attempt + 1}/{attempts}')
            return call_with_deadline(func, timeout)

        except RETRYABLE_ERRORS as e:
            logger.warning(f'{label} attempt {attempt + 1}/{attempts} failed: {e}')

            if attempt < attempts - 1:
                # Exponential backoff with jitter
                wait = delay * (2**attempt) + random.uniform(0, delay)
                if cancel_event is not None:
                    if cancel_event.wait(wait):
                        raise CancelledError(f'{label} cancelled')
                elif wait > 0:
                    threading.Event().wait(wait)
            else:
                raise CapabilityError(f'{label} failed after {attempts} attempts: {e}',
                                      participant_id=participant_id,
                                      attempts=attempts)

        except Exception as e:
            logger.error(f'Unexpected error in {label}: {e}')
            raise CapabilityError(f'Unexpected {label} error: {e}', participant_id=participant_id, attempts=attempt + 1)

    raise CapabilityError(f'{label} failed after {attempts} attempts', participant_id=participant_id, attempts=attempts)
