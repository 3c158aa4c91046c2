import logging

from rest_framework import status
from rest_framework.exceptions import APIException, PermissionDenied
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)


class Forbidden(PermissionDenied):
    default_detail = "You are not allowed to perform this action."
    default_code = "forbidden"


class InvalidState(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The resource is not in a valid state for this request."
    default_code = "invalid_state"


class InvalidPayment(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid payment"
    default_code = "invalid_payment"


class GatewayError(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "The payment gateway could not process the request."
    default_code = "gateway_error"


class DuplicateKey(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "A record with the same identifier already exists."
    default_code = "duplicate_key"


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "api view", exc_info=exc)
        set_rollback()
        return Response(
            {
                "success": False,
                "code": "server_error",
                "detail": "The request could not be completed.",
                "fields": {},
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {}

    response.data = {
        "success": False,
        "code": getattr(exc, "default_code", "error"),
        "detail": detail,
        "fields": fields,
    }
    return response
