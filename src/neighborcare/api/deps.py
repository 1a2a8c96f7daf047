"""Shared helpers for route handlers."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..errors import DispatchError, InvalidStateError, NotFoundError, ResponderBusyError
from ..services.core import DispatchCore


def get_core(request: Request) -> DispatchCore:
    return request.app.state.core


def http_error(exc: DispatchError) -> HTTPException:
    """Translate a dispatch failure into the matching HTTP error."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_dict())
    if isinstance(exc, (InvalidStateError, ResponderBusyError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_dict())
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_dict())
