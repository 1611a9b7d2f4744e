"""
Typed workflow errors and the unified API exception handler.

Services raise the :class:`WorkflowError` subclasses below; views let
them propagate and DRF hands them to :func:`api_exception_handler`,
which renders every error (workflow or DRF) in the same envelope.
"""
from __future__ import annotations

import functools
import logging

from django.db import InterfaceError, OperationalError
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    code = 'workflow_error'
    status_code = 500
    default_message = 'workflow error'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(WorkflowError):
    """A referenced entity (facility, request, room, file) does not exist."""
    code = 'not_found'
    status_code = 404
    default_message = 'not found'


class Forbidden(WorkflowError):
    """The caller is authenticated but not a participant or owner."""
    code = 'forbidden'
    status_code = 403
    default_message = 'access denied'


class InvalidState(WorkflowError):
    """The operation is not legal from the entity's current status."""
    code = 'invalid_state'
    status_code = 400
    default_message = 'operation not allowed in the current state'


class Conflict(WorkflowError):
    """Another actor transitioned the entity between read and write."""
    code = 'conflict'
    status_code = 409
    default_message = 'concurrent update, retry the operation'


class Unavailable(WorkflowError):
    """The store could not be reached."""
    code = 'unavailable'
    status_code = 503
    default_message = 'storage temporarily unavailable'


LOCK_CONTENTION_MARKERS = ('locked', 'deadlock', 'could not serialize', 'lock wait timeout')


def is_lock_contention(exc: Exception) -> bool:
    """True for errors raised when another transaction holds the row or table."""
    text = str(exc).lower()
    return any(marker in text for marker in LOCK_CONTENTION_MARKERS)


def translate_storage_errors(func):
    """Re-raise database errors as workflow errors.

    Losing a lock race to a concurrent writer is a :class:`Conflict`;
    any other operational failure means the store is unreachable and
    becomes :class:`Unavailable`.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except OperationalError as exc:
            if is_lock_contention(exc):
                logger.info('lock contention in %s: %s', func.__name__, exc)
                raise Conflict() from exc
            logger.warning('storage error in %s: %s', func.__name__, exc)
            raise Unavailable() from exc
        except InterfaceError as exc:
            logger.warning('storage error in %s: %s', func.__name__, exc)
            raise Unavailable() from exc
    return wrapper


def api_exception_handler(exc, context):
    if isinstance(exc, WorkflowError):
        return Response(
            {'ok': False, 'error': {'code': exc.code, 'message': exc.message}},
            status=exc.status_code,
        )
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('unhandled error in %s', context.get('view'))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = str(resp.data)
    return Response({'ok': False, 'error': {'code': _drf_code(exc), 'message': detail}}, status=resp.status_code)


def _drf_code(exc) -> str:
    if isinstance(exc, drf_exceptions.PermissionDenied):
        return Forbidden.code
    if isinstance(exc, drf_exceptions.NotFound):
        return NotFound.code
    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        return 'unauthenticated'
    if isinstance(exc, drf_exceptions.Throttled):
        return 'throttled'
    if isinstance(exc, drf_exceptions.ValidationError):
        return 'validation_error'
    return 'api_error'
