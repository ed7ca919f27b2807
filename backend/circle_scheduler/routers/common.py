"""Shared router helpers: Result unwrapping and injectable dependencies."""
from fastapi import HTTPException

from circle_scheduler.clock import Clock, system_clock
from circle_scheduler.errors import Result


def unwrap(result: Result):
    """Return the success value or raise the matching HTTPException."""
    if not result.ok:
        raise HTTPException(
            status_code=result.error.http_status,
            detail={"error": result.error.kind.value, "message": result.error.message},
        )
    return result.value


def get_clock() -> Clock:
    return system_clock
