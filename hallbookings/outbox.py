from collections.abc import Awaitable
from typing import Any

from loguru import logger


class SideEffects:
    """
    Best-effort dispatch for work that follows a committed write: emails,
    PDFs, audit entries. Failures are logged and swallowed so they can never
    undo or fail the primary state change.
    """

    async def run(self, label: str, effect: Awaitable[Any]) -> bool:
        try:
            await effect
        except Exception:
            logger.warning("Side effect '{}' failed", label, exc_info=True)
            return False
        logger.debug("Side effect '{}' done", label)
        return True


_side_effects = SideEffects()


def get_side_effects() -> SideEffects:
    return _side_effects
