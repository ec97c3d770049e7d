import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def now_ms() -> int:
    return int(time.time() * 1000)


def run_with_timeout(func: Callable[..., Any], timeout: float, *args, **kwargs) -> Tuple[bool, Any, Optional[BaseException]]:
    """Run ``func`` in a daemon thread and wait at most ``timeout`` seconds.

    Returns ``(finished, result, error)``. When the call is still running after
    the timeout, ``finished`` is False; the thread is left to complete on its
    own, so a late write may still land.
    """
    result = [None]
    error = [None]

    def target():
        try:
            result[0] = func(*args, **kwargs)
        except Exception as e:
            error[0] = e

    worker = threading.Thread(target=target)
    worker.daemon = True
    worker.start()
    worker.join(timeout=timeout)

    if worker.is_alive():
        return False, None, None
    return True, result[0], error[0]
