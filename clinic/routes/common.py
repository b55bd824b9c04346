import logging

from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic.core import config
from clinic.database import SessionLocal, ensure_appointment_schema
from clinic.services.errors import (
    BookingValidationError,
    CapacityExceededError,
    ConflictError,
    NotFoundError,
    PartialBatchFailure,
    PlacementNotFoundError,
    SchedulingError,
)

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_staff(staff_email: str, action: str) -> str:
    normalized_email = (staff_email or '').strip().lower()
    if not normalized_email.endswith(config.STAFF_EMAIL_DOMAIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f'Only clinic staff can {action}.',
        )
    return normalized_email


def database_unavailable(db: Session | None, exc: SQLAlchemyError) -> HTTPException:
    if db is not None:
        db.rollback()
    logger.exception('Database operation failed')
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def scheduling_http_error(exc: SchedulingError) -> HTTPException:
    """Translate a domain error into a response the UI can tell apart."""
    if isinstance(exc, BookingValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
        detail = {'error': 'validation', 'message': exc.message, 'appointment_ids': exc.appointment_ids}
    elif isinstance(exc, CapacityExceededError):
        status_code = status.HTTP_409_CONFLICT
        detail = {'error': 'capacity_exceeded', 'message': exc.message, 'days': exc.days}
    elif isinstance(exc, PlacementNotFoundError):
        status_code = status.HTTP_409_CONFLICT
        detail = {
            'error': 'placement_not_found',
            'message': exc.message,
            'applied': exc.applied,
            'pending': exc.pending,
        }
    elif isinstance(exc, PartialBatchFailure):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        detail = {
            'error': 'partial_batch_failure',
            'message': exc.message,
            'failed_id': exc.failed_id,
            'applied': exc.applied,
            'pending': exc.pending,
        }
    elif isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
        detail = {'error': 'not_found', 'message': str(exc)}
    elif isinstance(exc, ConflictError):
        status_code = status.HTTP_409_CONFLICT
        detail = {'error': 'conflict', 'message': str(exc)}
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        detail = {'error': 'scheduling', 'message': str(exc)}

    return HTTPException(status_code=status_code, detail=jsonable_encoder(detail))
