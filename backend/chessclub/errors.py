"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; the app factory registers a single handler that turns
any of them into a ``{"success": false, "error": kind, "message": ...}``
response with the matching status code.
"""


class ClubError(Exception):
    kind = 'internal'
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'success': False, 'error': self.kind, 'message': self.message}


class NotFound(ClubError):
    kind = 'not_found'
    status_code = 404
    default_message = 'Not found'


class InvalidArgument(ClubError):
    kind = 'invalid_argument'
    status_code = 400
    default_message = 'Invalid argument'


class Conflict(ClubError):
    kind = 'conflict'
    status_code = 409
    default_message = 'Conflict'


class Unauthorized(ClubError):
    kind = 'unauthorized'
    status_code = 401
    default_message = 'Unauthorized access'


class Forbidden(ClubError):
    kind = 'forbidden'
    status_code = 403
    default_message = 'Insufficient permissions'


class Internal(ClubError):
    pass
