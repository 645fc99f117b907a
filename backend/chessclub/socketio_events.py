import time

from flask import current_app, request
from flask_socketio import emit

from chessclub import socketio


NAMESPACE = '/ws'


def handle_connect():
    current_app.logger.info(f"[ws-connect] sid={_get_sid()}")
    emit('connection', {'type': 'connection', 'message': 'Connected to Chess Club WebSocket Server'})


def handle_disconnect(*args):
    current_app.logger.info(f"[ws-disconnect] sid={_get_sid()}")


def handle_ping(data=None):
    emit('pong', {'type': 'pong', 'timestamp': int(time.time() * 1000)})


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return getattr(request, 'sid', None)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Clients only listen here: domain events are pushed by the notifier as
    ``message``. When testing is True, also mirror handlers on the default
    namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)

    if testing:
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('disconnect', handle_disconnect, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
