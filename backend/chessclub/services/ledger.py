"""Game ledger: the only code path that moves ratings in response to games.

A game's recorded deltas count towards both players' ``current_rating``
exactly while the game is verified. Every operation here reads the rows it
needs with ``SELECT ... FOR UPDATE`` (game first, then players in id order)
and finishes inside a single ``atomic`` block, so a failure rolls back the
game row and both player rows together. Notifications go out only after the
commit.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm import joinedload

from chessclub import db
from chessclub.errors import InvalidArgument, NotFound
from chessclub.models import Game, Player
from chessclub.services.rating import K_FACTOR, GameResult, compute_ratings
from chessclub.services.timeframes import date_range_start, day_bounds, parse_game_date
from chessclub.services.transaction import atomic


@dataclass
class GamePatch:
    """Partial update for a game; ``None`` slots are left untouched."""
    result: Optional[GameResult] = None
    verified: Optional[bool] = None
    date: Optional[datetime] = None

    def __post_init__(self):
        if self.result is not None:
            self.result = GameResult.parse(self.result)
        if self.verified is not None and not isinstance(self.verified, bool):
            raise InvalidArgument('verified must be a boolean')

    def is_empty(self):
        return self.result is None and self.verified is None and self.date is None


@dataclass
class GameFilter:
    verified: Optional[bool] = None
    player_id: Optional[int] = None
    date_range: Optional[str] = None
    day: Optional[object] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    order: str = 'desc'


def _apply(game, white, black, sign=1):
    white.current_rating += sign * game.white_elo_change
    black.current_rating += sign * game.black_elo_change


def _lock_players(*player_ids):
    ids = sorted(set(player_ids))
    rows = Player.query.filter(Player.id.in_(ids)).order_by(Player.id).with_for_update().all()
    return {p.id: p for p in rows}


def _lock_game(game_id):
    game = Game.query.filter_by(id=game_id).with_for_update().first()
    if game is None:
        raise NotFound(f'Game {game_id} not found')
    return game


class GameLedger:

    def __init__(self, notifier, k_factor=K_FACTOR):
        self.notifier = notifier
        self.k_factor = k_factor

    # ---- reads ----

    def get(self, game_id) -> Game:
        game = (
            Game.query.options(joinedload(Game.white_player), joinedload(Game.black_player))
            .filter_by(id=game_id)
            .first()
        )
        if game is None:
            raise NotFound(f'Game {game_id} not found')
        return game

    def list(self, filters=None, now=None):
        """Games matching every given filter, newest first unless ``order='asc'``."""
        filters = filters or GameFilter()
        now = now or datetime.now()
        query = Game.query.options(joinedload(Game.white_player), joinedload(Game.black_player))

        if filters.verified is not None:
            query = query.filter(Game.verified.is_(bool(filters.verified)))
        if filters.player_id is not None:
            query = query.filter(or_(Game.white_player_id == filters.player_id,
                                     Game.black_player_id == filters.player_id))
        if filters.date_range:
            query = query.filter(Game.date >= date_range_start(filters.date_range, now=now))
        if filters.day is not None:
            start, end = day_bounds(filters.day)
            query = query.filter(Game.date >= start, Game.date <= end)
        if filters.date_from is not None:
            query = query.filter(Game.date >= filters.date_from)
        if filters.date_to is not None:
            query = query.filter(Game.date <= filters.date_to)

        if (filters.order or 'desc').lower() == 'asc':
            query = query.order_by(Game.date.asc(), Game.id.asc())
        else:
            query = query.order_by(Game.date.desc(), Game.id.desc())
        return query.all()

    # ---- lifecycle ----

    def create(self, white_player_id, black_player_id, result, date=None, auto_verify=False) -> Game:
        result = GameResult.parse(result)
        if white_player_id == black_player_id:
            raise InvalidArgument('White and black must be different players')
        played_at = parse_game_date(date)

        with atomic('game create'):
            players = _lock_players(white_player_id, black_player_id)
            white = players.get(white_player_id)
            black = players.get(black_player_id)
            if white is None or black is None:
                raise NotFound('One or both players not found')

            change = compute_ratings(white.current_rating, black.current_rating, result, self.k_factor)
            game = Game(
                white_player_id=white.id,
                black_player_id=black.id,
                result=result,
                date=played_at,
                white_elo_change=change.white_change,
                black_elo_change=change.black_change,
                verified=bool(auto_verify),
            )
            db.session.add(game)
            if game.verified:
                _apply(game, white, black)
            db.session.flush()

        current_app.logger.info(
            f"[game-create] game={game.id} white={white_player_id} black={black_player_id} "
            f"result={result.value} deltas={game.white_elo_change:+d}/{game.black_elo_change:+d} verified={game.verified}"
        )
        self.notifier.game_event('create', game)
        return game

    def verify(self, game_id) -> Game:
        with atomic('game verify'):
            game = _lock_game(game_id)
            if game.verified:
                return game
            players = _lock_players(game.white_player_id, game.black_player_id)
            _apply(game, players[game.white_player_id], players[game.black_player_id])
            game.verified = True

        current_app.logger.info(
            f"[game-verify] game={game.id} deltas={game.white_elo_change:+d}/{game.black_elo_change:+d}"
        )
        self.notifier.game_event('update', game)
        return game

    def update(self, game_id, patch: GamePatch) -> Game:
        """Edit result / verified / date while keeping ratings consistent.

        A verified game is reverted first. A changed result is re-rated
        against the post-revert ratings. Whatever the game ends up as, its
        recorded deltas are live again if and only if it is verified.
        """
        if patch.is_empty():
            return self.get(game_id)

        with atomic('game update'):
            game = _lock_game(game_id)
            players = _lock_players(game.white_player_id, game.black_player_id)
            white = players[game.white_player_id]
            black = players[game.black_player_id]

            was_verified = game.verified
            now_verified = was_verified if patch.verified is None else patch.verified
            result_changed = patch.result is not None and patch.result != game.result

            if was_verified:
                _apply(game, white, black, sign=-1)
            if result_changed:
                change = compute_ratings(white.current_rating, black.current_rating, patch.result, self.k_factor)
                game.result = patch.result
                game.white_elo_change = change.white_change
                game.black_elo_change = change.black_change
            if patch.date is not None:
                game.date = patch.date
            game.verified = now_verified
            if now_verified:
                _apply(game, white, black)

        current_app.logger.info(
            f"[game-update] game={game.id} result={game.result.value} verified={was_verified}->{game.verified} "
            f"deltas={game.white_elo_change:+d}/{game.black_elo_change:+d}"
        )
        self.notifier.game_event('update', game)
        return game

    def delete(self, game_id) -> dict:
        with atomic('game delete'):
            game = _lock_game(game_id)
            players = _lock_players(game.white_player_id, game.black_player_id)
            was_verified = game.verified
            if was_verified:
                _apply(game, players[game.white_player_id], players[game.black_player_id], sign=-1)
            payload = game.to_dict()
            db.session.delete(game)

        current_app.logger.info(f"[game-delete] game={payload['id']} reverted={was_verified}")
        self.notifier.game_event('delete', payload)
        return payload

    # ---- used by PlayerStore.delete, inside its transaction ----

    def purge_player_games(self, player_id):
        """Revert and delete every game involving ``player_id``.

        Must run inside an open ``atomic`` block; nothing is committed here.
        Returns the removed game payloads and the ids of opponents whose
        rating moved.
        """
        games = (
            Game.query.filter(or_(Game.white_player_id == player_id, Game.black_player_id == player_id))
            .order_by(Game.id)
            .with_for_update()
            .all()
        )
        involved = {player_id}
        for game in games:
            involved.update((game.white_player_id, game.black_player_id))
        players = _lock_players(*involved)

        touched = set()
        removed = []
        for game in games:
            if game.verified:
                _apply(game, players[game.white_player_id], players[game.black_player_id], sign=-1)
                touched.update((game.white_player_id, game.black_player_id))
            removed.append(game.to_dict())
            db.session.delete(game)
        db.session.flush()
        touched.discard(player_id)
        return removed, sorted(touched)

    # ---- repair ----

    def reconcile_ratings(self, dry_run=False):
        """Reset every rating to initial rating plus its verified deltas.

        Returns one entry per player whose stored rating had drifted.
        """
        with atomic('rating reconciliation'):
            players = Player.query.order_by(Player.id).with_for_update().all()
            totals = defaultdict(int)
            white_sums = (
                db.session.query(Game.white_player_id, func.sum(Game.white_elo_change))
                .filter(Game.verified.is_(True))
                .group_by(Game.white_player_id)
            )
            black_sums = (
                db.session.query(Game.black_player_id, func.sum(Game.black_elo_change))
                .filter(Game.verified.is_(True))
                .group_by(Game.black_player_id)
            )
            for pid, total in list(white_sums) + list(black_sums):
                totals[pid] += int(total or 0)

            drifted = []
            for player in players:
                expected = player.initial_rating + totals[player.id]
                if player.current_rating != expected:
                    drifted.append({
                        'player_id': player.id,
                        'name': player.name,
                        'current_rating': player.current_rating,
                        'expected_rating': expected,
                    })
                    if not dry_run:
                        player.current_rating = expected

        current_app.logger.info(f"[reconcile] drifted={len(drifted)} dry_run={dry_run}")
        if not dry_run:
            fixed = {d['player_id'] for d in drifted}
            for player in players:
                if player.id in fixed:
                    self.notifier.player_event('update', player)
        return drifted
