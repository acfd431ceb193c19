from typing import Awaitable, Callable, Optional

from db.errors import BackendError
from utils.logger import get_logger

_logger = get_logger(__name__)

Notify = Callable[[str, str], None]


async def run_optimistic(
    apply_local: Callable[[], None],
    remote: Callable[[], Awaitable[object]],
    reconcile: Callable[[], Awaitable[None]],
    action: str,
    notify: Optional[Notify] = None,
) -> bool:
    """
    Apply ``apply_local`` right away, then run ``remote``.

    If the remote mutation fails the local projection is thrown away and
    ``reconcile`` replaces it with a fresh fetch. No retry is attempted.
    Returns True when the remote mutation succeeded.
    """
    apply_local()
    try:
        await remote()
    except BackendError as e:
        _logger.warning(f"Error trying to {action}: {e}; reloading")
        if notify is not None:
            notify(f"Could not {action}. Your cart was refreshed.", "error")
        await reconcile()
        return False
    return True
