"""
Typed failures of the dispatch core.

Transition-level failures (NotFound, InvalidTransition, CommitConflict) abort
the atomic unit that raised them and reach the caller. UpstreamUnavailable is
raised by side-effect adapters and is only ever surfaced by operations that
call those adapters directly (the manual invoice endpoint); the outbox
dispatcher records it instead.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class DispatchError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(DispatchError):
    """Order or distributor is absent, or the caller may not act on it."""

    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(DispatchError):
    """A state machine precondition does not hold."""

    status_code = status.HTTP_409_CONFLICT


class CommitConflict(DispatchError):
    """The atomic unit lost a race or would overfill a distributor. Retryable."""

    status_code = status.HTTP_409_CONFLICT


class UpstreamUnavailable(DispatchError):
    """Geo, mail or invoice collaborator failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


async def _dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DispatchError, _dispatch_error_handler)
