from rest_framework import status
from rest_framework.exceptions import APIException


class InvalidState(APIException):
    """The operation does not fit the record's current lifecycle state."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This operation is not allowed in the current state.'
    default_code = 'invalid_state'


class DocumentRenderError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'The document could not be generated.'
    default_code = 'render_failed'
