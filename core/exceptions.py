"""
Error taxonomy shared by every marketplace engine.

Each class is a DRF ``APIException`` so engines can raise it directly and the
API layer renders it with a distinct status code and machine-readable code.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class MarketplaceError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request could not be processed.'
    default_code = 'error'
    # Upstream and integrity failures never leak their detail to the caller
    expose_detail = True


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class ForbiddenError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You are not allowed to perform this action.'
    default_code = 'forbidden'


class ConflictError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource already exists.'
    default_code = 'conflict'


class InvalidStateError(MarketplaceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = 'Operation is not allowed in the current state.'
    default_code = 'invalid_state'


class InvalidInputError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'invalid_input'


class UpstreamError(MarketplaceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Payment provider is unavailable. Please try again later.'
    default_code = 'upstream_failure'
    expose_detail = False


class IntegrityFailure(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request signature could not be verified.'
    default_code = 'integrity_failure'
    expose_detail = False


def marketplace_exception_handler(exc, context):
    """Render errors as {'error': ..., 'code': ...}"""
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, MarketplaceError):
        if exc.expose_detail:
            message = str(exc.detail)
        else:
            logger.warning(f"{exc.default_code} in {context.get('view').__class__.__name__}: {exc.detail}")
            message = str(exc.default_detail)
        response.data = {'error': message, 'code': exc.default_code}
        return response

    # DRF's own errors (serializer validation, auth) keep their payload under 'error'
    code = getattr(exc, 'default_code', 'error')
    if isinstance(response.data, dict) and 'detail' in response.data:
        response.data = {'error': str(response.data['detail']), 'code': code}
    else:
        response.data = {'error': response.data, 'code': 'invalid_input' if code == 'invalid' else code}
    return response
