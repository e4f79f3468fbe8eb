"""Structured results for the boundary layer.

The engine raises taxonomy errors; the boundary wants a value. ``capture``
awaits an operation and folds either outcome into a ``RideResult``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional

from .exceptions import RideError
from .models import Ride

logger = logging.getLogger(__name__)


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


async def capture(operation: Awaitable[Any], message: str = "OK") -> RideResult:
    """Run an operation and translate engine errors into a failed RideResult."""
    try:
        value = await operation
    except RideError as error:
        logger.info("Ride operation rejected (%s): %s", error.code, error.message)
        return RideResult(success=False, message=error.message, error_code=error.code)

    if isinstance(value, Ride):
        return RideResult(success=True, ride=value, message=message)
    return RideResult(success=True, message=message, extra={"value": value})
