"""
Fire-and-forget side effects (email, spreadsheet sync).
Tasks run on a shared thread pool inside an error boundary; the caller never
waits on them and their failures are only logged.
"""

import atexit
import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_BG_MAX_WORKERS = int(os.environ.get('BG_MAX_WORKERS', '4'))
_EXECUTOR = ThreadPoolExecutor(max_workers=_BG_MAX_WORKERS, thread_name_prefix='side-effect')

# Run tasks on the calling thread (tests, one-shot scripts)
RUN_INLINE = os.environ.get('BACKGROUND_TASKS_INLINE', 'false').lower() in ('1', 'true', 'yes')


def _guarded(label: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    try:
        result = func(*args, **kwargs)
    except Exception as e:
        logger.error(f"Background task '{label}' failed: {e}", exc_info=True)
        return None

    if isinstance(result, dict) and result.get('success') is False:
        logger.warning(f"Background task '{label}' reported failure: {result.get('error')}")
    return result


def run_in_background(label: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
    """Dispatch func(*args, **kwargs) and detach; returns the Future when pooled"""
    if RUN_INLINE:
        _guarded(label, func, *args, **kwargs)
        return None
    return _EXECUTOR.submit(_guarded, label, func, *args, **kwargs)


@atexit.register
def _shutdown_executor() -> None:
    # Let in-flight emails finish, drop anything not yet started
    _EXECUTOR.shutdown(wait=True, cancel_futures=True)
