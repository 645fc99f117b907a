from datetime import datetime

from flask_login import UserMixin

from chessclub import db, bcrypt
from chessclub.services.rating import GameResult


def _isoformat(value):
    return value.isoformat() if value else None


class Player(UserMixin, db.Model):
    __tablename__ = 'players'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False, index=True)
    pin_hash = db.Column(db.String(128), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    initial_rating = db.Column(db.Integer, default=1200, nullable=False)
    # Only GameLedger apply/revert or PlayerStore.admin_set_rating write this
    current_rating = db.Column(db.Integer, default=1200, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

    def set_pin(self, pin):
        self.pin_hash = bcrypt.generate_password_hash(pin).decode('utf-8')

    def check_pin(self, pin):
        if not self.pin_hash or pin is None:
            return False
        return bcrypt.check_password_hash(self.pin_hash, pin)

    def to_dict(self, include_admin=False):
        data = {
            'id': self.id,
            'name': self.name,
            'initial_rating': self.initial_rating,
            'current_rating': self.current_rating,
            'created_at': _isoformat(self.created_at),
        }
        if include_admin:
            data['is_admin'] = self.is_admin
        return data

    def snapshot(self):
        """Compact view embedded in game records."""
        return {'id': self.id, 'name': self.name, 'current_rating': self.current_rating}

    def __repr__(self):
        return f'<Player {self.id} {self.name!r} {self.current_rating}>'


class Game(db.Model):
    __tablename__ = 'games'
    __table_args__ = (
        db.CheckConstraint('white_player_id <> black_player_id', name='ck_games_distinct_players'),
    )
    id = db.Column(db.Integer, primary_key=True)
    white_player_id = db.Column(db.Integer, db.ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    black_player_id = db.Column(db.Integer, db.ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    result = db.Column(
        db.Enum(GameResult, name='game_result', values_callable=lambda members: [m.value for m in members]),
        nullable=False,
    )
    date = db.Column(db.DateTime, default=datetime.now, nullable=False, index=True)
    # Deltas from the last rating computation; live only while verified
    white_elo_change = db.Column(db.Integer, default=0, nullable=False)
    black_elo_change = db.Column(db.Integer, default=0, nullable=False)
    verified = db.Column(db.Boolean, default=False, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

    white_player = db.relationship('Player', foreign_keys=[white_player_id])
    black_player = db.relationship('Player', foreign_keys=[black_player_id])

    def to_dict(self, include_verified=False):
        data = {
            'id': self.id,
            'white_player_id': self.white_player_id,
            'black_player_id': self.black_player_id,
            'result': self.result.value if self.result else None,
            'date': _isoformat(self.date),
            'white_elo_change': self.white_elo_change,
            'black_elo_change': self.black_elo_change,
            'created_at': _isoformat(self.created_at),
            'white_player': self.white_player.snapshot() if self.white_player else None,
            'black_player': self.black_player.snapshot() if self.black_player else None,
        }
        if include_verified:
            data['verified'] = self.verified
        return data

    def __repr__(self):
        return f'<Game {self.id} {self.white_player_id} vs {self.black_player_id} {self.result}>'
