from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("caw.workflow")


class WorkflowError(Exception):
    """Base class for workflow failures that must not mutate state."""

    status_code = 400
    default_message = "An error occurred while processing the request."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidContentId(WorkflowError):
    status_code = 404
    default_message = "Invalid content ID or content item not found."


class InvalidUser(WorkflowError):
    status_code = 400
    default_message = "Invalid user."


class NotAssignedError(WorkflowError):
    status_code = 409
    default_message = "User is not a pending reviewer of this content item."


class EmptyFeedbackError(WorkflowError):
    status_code = 422
    default_message = "Feedback must not be empty."


class StatusConflictError(WorkflowError):
    status_code = 409
    default_message = "Previous status does not match the stored status of this content item."


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowError)
    async def _workflow_error(request: Request, exc: WorkflowError) -> JSONResponse:
        logger.info("workflow error on %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
