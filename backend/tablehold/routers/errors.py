import logging

from fastapi import HTTPException, status

from ..domain.errors import ConflictError, DomainError, InvalidInputError, NotFoundError
from ..utils.audit_log import AuditAction, AuditInitiator, audit_transition, emit_audit_log

logger = logging.getLogger(__name__)


def http_error(exc: DomainError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _audit_failed(exc: RuntimeError) -> HTTPException:
    logger.error("audit log failed: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to record audit log")


def record_transition(action: AuditAction, initiator: AuditInitiator, transition: object, **kwargs: object) -> None:
    try:
        audit_transition(action, initiator, transition, **kwargs)
    except RuntimeError as exc:
        raise _audit_failed(exc) from exc


def record_event(**kwargs: object) -> None:
    try:
        emit_audit_log(**kwargs)  # type: ignore[arg-type]
    except RuntimeError as exc:
        raise _audit_failed(exc) from exc
