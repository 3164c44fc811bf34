"""
Bounded wait for a human to finish logging in out-of-band.
"""
import logging
import time
from typing import Any, Callable

from config import LOGIN_CHECK_INTERVAL_SECONDS, LOGIN_TIMEOUT_SECONDS
from sites.base_site import AuthState

logger = logging.getLogger(__name__)


def wait_for_login(
    surface: Any,
    detect: Callable[[Any], AuthState],
    max_wait: float = LOGIN_TIMEOUT_SECONDS,
    check_interval: float = LOGIN_CHECK_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Poll the detector at a fixed interval until the user is logged in.

    A probe that raises (e.g. the page is mid-navigation) counts as "not yet".

    Args:
        surface: Surface the user logs in on; its wait() does the sleeping
        detect: Returns the current AuthState of the surface
        max_wait: Seconds to wait before giving up
        check_interval: Seconds between probes
        clock: Monotonic clock, in seconds

    Returns:
        True once AUTHENTICATED is observed, False when max_wait has elapsed
    """
    logger.info("Waiting up to %.0fs for login to complete...", max_wait)
    start = clock()

    while clock() - start < max_wait:
        try:
            if detect(surface) is AuthState.AUTHENTICATED:
                logger.info("Login detected after %.1fs", clock() - start)
                return True
        except Exception as e:
            logger.debug("Login probe failed, retrying: %s", e)
        surface.wait(check_interval)

    logger.warning("Login timeout reached. Manual login was not completed in time.")
    return False
