"""HTTP blueprints plus the small request helpers they share."""
from functools import wraps

from flask import request
from flask_login import current_user, login_required

from chessclub.errors import Forbidden, InvalidArgument


_TRUE = ('1', 'true', 'yes', 'on')
_FALSE = ('0', 'false', 'no', 'off')


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgument('Request body must be a JSON object')
    return data


def query_arg(*names, default=None):
    """First present query argument among ``names`` (snake_case, then camelCase)."""
    for name in names:
        value = request.args.get(name)
        if value not in (None, ''):
            return value
    return default


def body_arg(data, *names, default=None):
    """First present key among ``names`` in a JSON body (snake_case, then camelCase)."""
    for name in names:
        value = data.get(name)
        if value is not None:
            return value
    return default


def to_int(value, field, required=True):
    if value is None or value == '':
        if required:
            raise InvalidArgument(f'{field} is required')
        return None
    if isinstance(value, bool):
        raise InvalidArgument(f'{field} must be an integer')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f'{field} must be an integer')
    if isinstance(value, float) and number != value:
        raise InvalidArgument(f'{field} must be an integer')
    return number


def to_bool(value, field):
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise InvalidArgument(f'{field} must be a boolean')


def is_admin_caller():
    return bool(current_user.is_authenticated and current_user.is_admin)


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not current_user.is_admin:
            raise Forbidden('Admin privileges required')
        return view(*args, **kwargs)
    return wrapped
