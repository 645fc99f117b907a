"""Player identity, PIN authentication and derived statistics."""
from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm import joinedload

from chessclub import db
from chessclub.errors import Conflict, InvalidArgument, NotFound, Unauthorized
from chessclub.models import Game, Player
from chessclub.services.rating import performance_rating, validate_rating
from chessclub.services.timeframes import stats_window_start
from chessclub.services.transaction import atomic


SORT_FIELDS = ('name', 'id', 'current_rating', 'performance')
MAX_NAME_LENGTH = 64
INVALID_CREDENTIALS = 'Invalid name or PIN'


@dataclass
class PlayerPatch:
    """Partial update for a player; ``None`` slots are left untouched."""
    name: Optional[str] = None
    pin: Optional[str] = None
    is_admin: Optional[bool] = None

    def is_empty(self):
        return self.name is None and self.pin is None and self.is_admin is None


@dataclass
class PlayerStats:
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    opponent_ratings: List[int] = field(default_factory=list, repr=False)
    scores: List[float] = field(default_factory=list, repr=False)

    def record(self, score, opponent_rating):
        self.games_played += 1
        if score == 1:
            self.wins += 1
        elif score == 0:
            self.losses += 1
        else:
            self.draws += 1
        self.scores.append(score)
        self.opponent_ratings.append(opponent_rating)

    @property
    def win_rate(self):
        if not self.games_played:
            return 0.0
        return round(self.wins / self.games_played * 100, 1)

    @property
    def performance_rating(self):
        return performance_rating(self.opponent_ratings, self.scores)

    def to_dict(self):
        return {
            'games_played': self.games_played,
            'wins': self.wins,
            'losses': self.losses,
            'draws': self.draws,
            'win_rate': self.win_rate,
            'performance_rating': self.performance_rating,
        }


def _clean_name(name):
    if not isinstance(name, str) or not name.strip():
        raise InvalidArgument('Name is required')
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidArgument(f'Name must be at most {MAX_NAME_LENGTH} characters')
    return name


def _clean_pin(pin):
    if isinstance(pin, int) and not isinstance(pin, bool):
        pin = str(pin)
    if not isinstance(pin, str) or not pin.strip():
        raise InvalidArgument('PIN is required')
    return pin.strip()


class PlayerStore:

    def __init__(self, notifier, ledger, default_rating=1200):
        self.notifier = notifier
        self.ledger = ledger
        self.default_rating = default_rating

    def _name_taken(self, name, exclude_id=None):
        query = Player.query.filter(func.lower(Player.name) == name.lower())
        if exclude_id is not None:
            query = query.filter(Player.id != exclude_id)
        return query.first() is not None

    def get(self, player_id) -> Player:
        player = Player.query.filter_by(id=player_id).first()
        if player is None:
            raise NotFound(f'Player {player_id} not found')
        return player

    def create(self, name, pin, is_admin=False, initial_rating=None) -> Player:
        name = _clean_name(name)
        pin = _clean_pin(pin)
        rating = validate_rating(self.default_rating if initial_rating is None else initial_rating, 'initial_rating')
        if self._name_taken(name):
            raise Conflict(f"Player name '{name}' is already taken")

        conflict = f"Player name '{name}' is already taken"
        with atomic('player create', conflict_message=conflict):
            player = Player(name=name, is_admin=bool(is_admin), initial_rating=rating, current_rating=rating)
            player.set_pin(pin)
            db.session.add(player)
            db.session.flush()

        current_app.logger.info(f"[player-create] player={player.id} name={name!r} rating={rating} admin={player.is_admin}")
        self.notifier.player_event('create', player)
        return player

    def authenticate(self, name, pin) -> Player:
        if not isinstance(name, str) or pin is None:
            raise Unauthorized(INVALID_CREDENTIALS)
        player = Player.query.filter_by(name=name.strip()).first()
        if player is None or not player.check_pin(str(pin)):
            raise Unauthorized(INVALID_CREDENTIALS)
        return player

    def verify_pin(self, player_id, pin) -> bool:
        player = self.get(player_id)
        return pin is not None and player.check_pin(str(pin))

    def update(self, player_id, patch: PlayerPatch) -> Player:
        name = _clean_name(patch.name) if patch.name is not None else None
        pin = _clean_pin(patch.pin) if patch.pin is not None else None
        if patch.is_empty():
            return self.get(player_id)

        conflict = f"Player name '{name}' is already taken"
        with atomic('player update', conflict_message=conflict):
            player = Player.query.filter_by(id=player_id).with_for_update().first()
            if player is None:
                raise NotFound(f'Player {player_id} not found')
            if name is not None and name != player.name:
                if self._name_taken(name, exclude_id=player.id):
                    raise Conflict(conflict)
                player.name = name
            if pin is not None:
                player.set_pin(pin)
            if patch.is_admin is not None:
                player.is_admin = bool(patch.is_admin)

        current_app.logger.info(f"[player-update] player={player.id}")
        self.notifier.player_event('update', player)
        return player

    def admin_set_rating(self, player_id, rating) -> Player:
        """Overwrite a rating directly, bypassing the game ledger.

        The rating no longer matches its verified games until
        ``GameLedger.reconcile_ratings`` runs.
        """
        rating = validate_rating(rating)
        with atomic('admin rating override'):
            player = Player.query.filter_by(id=player_id).with_for_update().first()
            if player is None:
                raise NotFound(f'Player {player_id} not found')
            previous = player.current_rating
            player.current_rating = rating

        current_app.logger.warning(f"[rating-override] player={player.id} {previous} -> {rating}")
        self.notifier.player_event('update', player)
        return player

    def delete(self, player_id) -> dict:
        """Delete a player after reverting every verified game they played."""
        self.get(player_id)
        with atomic('player delete'):
            removed_games, opponent_ids = self.ledger.purge_player_games(player_id)
            player = Player.query.filter_by(id=player_id).with_for_update().first()
            if player is None:
                raise NotFound(f'Player {player_id} not found')
            payload = player.to_dict()
            db.session.delete(player)

        current_app.logger.info(
            f"[player-delete] player={player_id} games_removed={len(removed_games)} opponents_reverted={opponent_ids}"
        )
        for game in removed_games:
            self.notifier.game_event('delete', game)
        if opponent_ids:
            for opponent in Player.query.filter(Player.id.in_(opponent_ids)).all():
                self.notifier.player_event('update', opponent)
        self.notifier.player_event('delete', payload)
        return payload

    # ---- derived statistics ----

    def _verified_games(self, player_ids=None, time_filter='all', now=None):
        start = stats_window_start(time_filter, now=now)
        query = Game.query.options(joinedload(Game.white_player), joinedload(Game.black_player)).filter(
            Game.verified.is_(True)
        )
        if start is not None:
            query = query.filter(Game.date >= start)
        if player_ids is not None:
            query = query.filter(or_(Game.white_player_id.in_(player_ids), Game.black_player_id.in_(player_ids)))
        return query.all()

    @staticmethod
    def _tally(games, player_ids):
        stats = {pid: PlayerStats() for pid in player_ids}
        for game in games:
            if game.white_player_id in stats:
                stats[game.white_player_id].record(game.result.white_score, game.black_player.current_rating)
            if game.black_player_id in stats:
                stats[game.black_player_id].record(game.result.black_score, game.white_player.current_rating)
        return stats

    def stats(self, player_id, time_filter='all', now=None) -> PlayerStats:
        player = self.get(player_id)
        games = self._verified_games([player.id], time_filter=time_filter, now=now)
        return self._tally(games, [player.id])[player.id]

    def list(self, sort_by='current_rating', order='desc', time_filter='all', now=None):
        """All players with statistics over the chosen window, sorted.

        The window only limits which games feed the statistics; every player
        is listed. Players without a performance rating sort last.
        """
        sort_by = sort_by or 'current_rating'
        if sort_by not in SORT_FIELDS:
            raise InvalidArgument(f"Invalid sort field {sort_by!r}, expected one of {', '.join(SORT_FIELDS)}")
        descending = (order or 'desc').lower() != 'asc'

        players = Player.query.order_by(Player.id).all()
        games = self._verified_games(time_filter=time_filter, now=now)
        stats = self._tally(games, [p.id for p in players])
        rows = [(p, stats[p.id]) for p in players]

        if sort_by == 'performance':
            rated = [r for r in rows if r[1].performance_rating is not None]
            unrated = [r for r in rows if r[1].performance_rating is None]
            rated.sort(key=lambda r: (r[1].performance_rating, r[0].id), reverse=descending)
            return rated + unrated
        if sort_by == 'name':
            rows.sort(key=lambda r: (r[0].name.lower(), r[0].id), reverse=descending)
        elif sort_by == 'id':
            rows.sort(key=lambda r: r[0].id, reverse=descending)
        else:
            rows.sort(key=lambda r: (r[0].current_rating, -r[0].id if descending else r[0].id), reverse=descending)
        return rows
