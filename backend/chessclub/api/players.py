from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from chessclub.api import admin_required, is_admin_caller, json_body, query_arg, to_bool
from chessclub.api.games import game_filter_from_request, serialize as serialize_game
from chessclub.errors import Forbidden, InvalidArgument
from chessclub.services import get_services
from chessclub.services.players import PlayerPatch


players_api = Blueprint('players', __name__)

# Field names sent by the original web client
_SORT_ALIASES = {'currentElo': 'current_rating', 'elo': 'current_rating', 'rating': 'current_rating'}


def serialize(player, stats=None):
    data = player.to_dict(include_admin=is_admin_caller())
    if stats is not None:
        data['stats'] = stats.to_dict()
    return data


@players_api.route('', methods=['GET'])
def list_players():
    sort_by = query_arg('sort_by', 'sortBy', default='current_rating')
    rows = get_services().players.list(
        sort_by=_SORT_ALIASES.get(sort_by, sort_by),
        order=query_arg('order', default='desc'),
        time_filter=query_arg('time_filter', 'timeFilter', default='all'),
    )
    return jsonify({'success': True, 'players': [serialize(p, s) for p, s in rows]})


@players_api.route('/<int:player_id>', methods=['GET'])
def get_player(player_id):
    store = get_services().players
    player = store.get(player_id)
    stats = store.stats(player.id, time_filter=query_arg('time_filter', 'timeFilter', default='all'))
    return jsonify({'success': True, 'player': serialize(player, stats)})


@players_api.route('/<int:player_id>/games', methods=['GET'])
def get_player_games(player_id):
    services = get_services()
    services.players.get(player_id)
    found = services.ledger.list(game_filter_from_request(player_id=player_id))
    return jsonify({'success': True, 'games': [serialize_game(g) for g in found]})


@players_api.route('', methods=['POST'])
@admin_required
def create_player():
    data = json_body()
    if not data.get('name') or data.get('pin') in (None, ''):
        raise InvalidArgument('Name and PIN are required')
    initial_rating = data.get('initial_rating')
    player = get_services().players.create(
        data['name'],
        data['pin'],
        is_admin=bool(to_bool(data.get('is_admin'), 'is_admin')),
        initial_rating=initial_rating,
    )
    return jsonify({'success': True, 'player': serialize(player)}), 201


@players_api.route('/<int:player_id>', methods=['PUT', 'PATCH'])
@login_required
def update_player(player_id):
    if not current_user.is_admin and current_user.id != player_id:
        raise Forbidden('Insufficient permissions')
    data = json_body()
    if 'current_rating' in data:
        raise InvalidArgument('Ratings are not edited here; use PUT /api/players/<id>/rating')
    is_admin = to_bool(data.get('is_admin'), 'is_admin')
    if is_admin is not None and not current_user.is_admin:
        raise Forbidden('Only admins can change admin rights')
    patch = PlayerPatch(name=data.get('name'), pin=data.get('pin'), is_admin=is_admin)
    player = get_services().players.update(player_id, patch)
    return jsonify({'success': True, 'player': serialize(player)})


@players_api.route('/<int:player_id>/rating', methods=['PUT'])
@admin_required
def override_rating(player_id):
    data = json_body()
    if data.get('rating') is None:
        raise InvalidArgument('rating is required')
    player = get_services().players.admin_set_rating(player_id, data['rating'])
    return jsonify({'success': True, 'player': serialize(player)})


@players_api.route('/<int:player_id>', methods=['DELETE'])
@admin_required
def delete_player(player_id):
    get_services().players.delete(player_id)
    return jsonify({'success': True, 'message': 'Player deleted successfully'})


@players_api.route('/reconcile', methods=['POST'])
@admin_required
def reconcile_ratings():
    data = json_body()
    dry_run = bool(to_bool(data.get('dry_run'), 'dry_run'))
    drifted = get_services().ledger.reconcile_ratings(dry_run=dry_run)
    return jsonify({'success': True, 'dry_run': dry_run, 'drifted': drifted})
