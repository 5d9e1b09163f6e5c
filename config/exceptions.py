# config/exceptions.py

import logging

from django.db import DatabaseError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from reservation.exceptions import ReservationError, StorageFailure

logger = logging.getLogger("reservation.api")


def envelope_exception_handler(exc, context):
    """
    Render every API error as {"success": false, "message", "code", "data"}.
    Storage errors are reported as StorageFailure.
    """
    if isinstance(exc, DatabaseError):
        logger.exception(f"Storage failure in {context.get('view').__class__.__name__}")
        exc = StorageFailure()

    if isinstance(exc, ReservationError):
        return Response(
            {"success": False, "message": exc.message, "code": exc.code, "data": None},
            status=exc.status_code,
        )

    response = exception_handler(exc, context)
    if response is None:
        return None

    errors = response.data
    if isinstance(errors, dict) and set(errors) == {"detail"}:
        message, errors = str(errors["detail"]), None
    else:
        message = "Invalid request."

    response.data = {
        "success": False,
        "message": message,
        "code": getattr(exc, "default_code", "error"),
        "data": errors,
    }
    return response
