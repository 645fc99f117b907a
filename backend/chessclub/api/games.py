from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from chessclub.api import admin_required, body_arg, is_admin_caller, json_body, query_arg, to_bool, to_int
from chessclub.errors import Forbidden, InvalidArgument
from chessclub.services import get_services
from chessclub.services.ledger import GameFilter, GamePatch
from chessclub.services.timeframes import normalize_date_range, parse_filter_date


games = Blueprint('games', __name__)


def serialize(game):
    # Only admins see the verification flag
    return game.to_dict(include_verified=is_admin_caller())


def game_filter_from_request(player_id=None):
    """Build a GameFilter from query args; malformed values are rejected up front."""
    date_range = query_arg('date_range', 'dateRange')
    day = query_arg('day')
    date_from = query_arg('date_from', 'from')
    date_to = query_arg('date_to', 'to')
    if player_id is None:
        player_id = to_int(query_arg('player_id', 'playerId'), 'player_id', required=False)
    if day is not None:
        # Validates the value; GameFilter keeps the raw day
        parse_filter_date(day, 'day')
    return GameFilter(
        verified=to_bool(query_arg('verified'), 'verified'),
        player_id=player_id,
        date_range=normalize_date_range(date_range) if date_range and date_range != 'all' else None,
        day=day,
        date_from=parse_filter_date(date_from, 'date_from') if date_from else None,
        date_to=parse_filter_date(date_to, 'date_to', end_of_day=True) if date_to else None,
        order=(query_arg('order', default='desc') or 'desc').lower(),
    )


@games.route('', methods=['GET'])
def list_games():
    found = get_services().ledger.list(game_filter_from_request())
    return jsonify({'success': True, 'games': [serialize(g) for g in found]})


@games.route('/<int:game_id>', methods=['GET'])
def get_game(game_id):
    return jsonify({'success': True, 'game': serialize(get_services().ledger.get(game_id))})


@games.route('', methods=['POST'])
@login_required
def create_game():
    data = json_body()
    white_id = to_int(body_arg(data, 'white_player_id', 'whitePlayerId'), 'white_player_id')
    black_id = to_int(body_arg(data, 'black_player_id', 'blackPlayerId'), 'black_player_id')
    if not data.get('result'):
        raise InvalidArgument('White player, black player, and result are required')

    if not current_user.is_admin and current_user.id not in (white_id, black_id):
        raise Forbidden('You can only submit games you played')

    auto_verify = bool(current_app.config.get('AUTO_VERIFY_GAMES', False))
    if current_user.is_admin and data.get('verified') is not None:
        auto_verify = to_bool(data.get('verified'), 'verified')

    game = get_services().ledger.create(
        white_id, black_id, data.get('result'), date=data.get('date'), auto_verify=auto_verify
    )
    return jsonify({'success': True, 'game': serialize(game)}), 201


@games.route('/<int:game_id>/verify', methods=['PUT', 'POST'])
@admin_required
def verify_game(game_id):
    game = get_services().ledger.verify(game_id)
    return jsonify({'success': True, 'game': serialize(game)})


@games.route('/<int:game_id>', methods=['PUT', 'PATCH'])
@admin_required
def update_game(game_id):
    data = json_body()
    patch = GamePatch(
        result=data.get('result'),
        verified=to_bool(data.get('verified'), 'verified'),
        date=parse_filter_date(data['date'], 'date') if data.get('date') is not None else None,
    )
    game = get_services().ledger.update(game_id, patch)
    return jsonify({'success': True, 'game': serialize(game)})


@games.route('/<int:game_id>', methods=['DELETE'])
@admin_required
def delete_game(game_id):
    get_services().ledger.delete(game_id)
    return jsonify({'success': True, 'message': 'Game deleted successfully'})
