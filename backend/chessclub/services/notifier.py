"""Change notifications pushed to connected clients.

Every mutation of a game or player record is announced as::

    {"type": "game_update" | "player_update",
     "data": {"action": "create" | "update" | "delete",
              "game" | "player": <record>, "game_id" | "player_id": <id>}}

Records are sanitized here, whatever the caller passes in: games lose
``verified`` and players lose ``pin_hash`` and ``is_admin``.
"""
from flask import current_app


GAME_UPDATE = 'game_update'
PLAYER_UPDATE = 'player_update'
ACTIONS = ('create', 'update', 'delete')

_GAME_PRIVATE_FIELDS = ('verified',)
_PLAYER_PRIVATE_FIELDS = ('pin_hash', 'is_admin')


def sanitize_game(record):
    data = record.to_dict() if hasattr(record, 'to_dict') else dict(record)
    for field in _GAME_PRIVATE_FIELDS:
        data.pop(field, None)
    return data


def sanitize_player(record):
    data = record.to_dict() if hasattr(record, 'to_dict') else dict(record)
    for field in _PLAYER_PRIVATE_FIELDS:
        data.pop(field, None)
    return data


class ChangeNotifier:
    """Base notifier; subclasses deliver ``broadcast`` events somewhere.

    Events go out after the triggering transaction has committed, so
    building or delivering one never raises into the caller: failures are
    logged and dropped.
    """

    def broadcast(self, event: dict) -> None:
        raise NotImplementedError

    def game_event(self, action, game):
        self._publish(GAME_UPDATE, action, 'game', sanitize_game, game)

    def player_event(self, action, player):
        self._publish(PLAYER_UPDATE, action, 'player', sanitize_player, player)

    def _publish(self, event_type, action, key, sanitize, record):
        if action not in ACTIONS:
            raise ValueError(f'unknown action {action!r}')
        try:
            payload = sanitize(record)
            self.broadcast({
                'type': event_type,
                'data': {'action': action, key: payload, f'{key}_id': payload.get('id')},
            })
        except Exception as exc:
            current_app.logger.warning(f"[broadcast-failed] type={event_type} action={action} error={exc}")


class NullNotifier(ChangeNotifier):
    def broadcast(self, event):
        return None


class SocketIONotifier(ChangeNotifier):
    """Fan events out to every client on the Socket.IO namespace."""

    def __init__(self, socketio, namespace='/ws', event_name='message'):
        self.socketio = socketio
        self.namespace = namespace
        self.event_name = event_name

    def broadcast(self, event):
        self.socketio.emit(self.event_name, event, namespace=self.namespace)
