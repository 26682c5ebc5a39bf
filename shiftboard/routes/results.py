"""Translate reconciler results into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from shiftboard.scheduling.reconciler import TransitionResult

STATUS_BY_ERROR = {
    "validation": 422,
    "not_found": 404,
    "conflict": 409,
    "store": 503,
}


def transition_response(result: TransitionResult) -> dict:
    if not result.ok:
        raise HTTPException(
            status_code=STATUS_BY_ERROR.get(result.error, 400), detail=result.message
        )
    return {
        "assignment": result.assignment.model_dump() if result.assignment else None,
        "message": result.message,
        "warning": result.warning,
        "count": result.count,
    }
