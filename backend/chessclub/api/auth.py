from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user

from chessclub.api import body_arg, json_body, to_int
from chessclub.errors import InvalidArgument
from chessclub.services import get_services

auth = Blueprint('auth', __name__)


@auth.route('/login', methods=['POST'])
def login():
    data = json_body()
    name, pin = data.get('name'), data.get('pin')
    if not name or pin in (None, ''):
        raise InvalidArgument('Name and PIN are required')
    player = get_services().players.authenticate(name, pin)
    login_user(player, remember=True)
    return jsonify({'success': True, 'player': player.to_dict(include_admin=True)})


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@auth.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'success': True, 'player': current_user.to_dict(include_admin=True)})


@auth.route('/verify-pin', methods=['POST'])
def verify_pin():
    """Confirm a PIN without opening a session (used when submitting games)."""
    data = json_body()
    player_id = to_int(body_arg(data, 'player_id', 'playerId'), 'player_id')
    pin = data.get('pin')
    if pin in (None, ''):
        raise InvalidArgument('Player ID and PIN are required')
    return jsonify({'success': get_services().players.verify_pin(player_id, pin)})
