"""ELO rating arithmetic.

Pure functions only: no database, no Flask. Ratings are plain ints and every
function is deterministic, so the ledger can call them inside a transaction
and tests can call them directly.
"""
import enum
import math
from collections import namedtuple

from chessclub.errors import InvalidArgument


K_FACTOR = 20
RATING_DIVISOR = 400
PERFORMANCE_CAP = 800
MIN_RATING = 0
MAX_RATING = 4000


class GameResult(enum.Enum):
    WHITE_WIN = '1-0'
    BLACK_WIN = '0-1'
    DRAW = '1/2-1/2'

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidArgument(f"Invalid result {value!r}, expected one of '1-0', '0-1', '1/2-1/2'")

    @property
    def white_score(self):
        return {GameResult.WHITE_WIN: 1.0, GameResult.BLACK_WIN: 0.0, GameResult.DRAW: 0.5}[self]

    @property
    def black_score(self):
        return 1.0 - self.white_score


RatingChange = namedtuple('RatingChange', ['white_new_rating', 'black_new_rating', 'white_change', 'black_change'])


def _round(value):
    # Half-up, so K * 0.5 style ties break the same way on both sides of zero.
    return int(math.floor(value + 0.5))


def expected_score(rating: int, opponent_rating: int) -> float:
    """Expected score of a player against an opponent (0..1)."""
    return 1 / (1 + 10 ** ((opponent_rating - rating) / RATING_DIVISOR))


def compute_ratings(white_rating: int, black_rating: int, result, k_factor: int = K_FACTOR) -> RatingChange:
    """Return new ratings and deltas for both sides of a finished game.

    Each side's change is ``round(K * (actual - expected))`` computed on its
    own, so the two deltas may differ in magnitude by one point.
    """
    result = GameResult.parse(result)
    expected_white = expected_score(white_rating, black_rating)
    expected_black = expected_score(black_rating, white_rating)

    white_change = _round(k_factor * (result.white_score - expected_white))
    black_change = _round(k_factor * (result.black_score - expected_black))

    return RatingChange(
        white_new_rating=white_rating + white_change,
        black_new_rating=black_rating + black_change,
        white_change=white_change,
        black_change=black_change,
    )


def performance_rating(opponent_ratings, scores):
    """Performance rating over a run of games, or None without games.

    ``R_avg + D`` where ``D = -400 * log10((1 - P) / P)`` and ``P`` is the
    fraction of points scored. D is clamped to +/-800, which is also its
    value for a perfect or a zero score.
    """
    opponent_ratings = list(opponent_ratings)
    scores = list(scores)
    if len(opponent_ratings) != len(scores):
        raise ValueError('opponent_ratings and scores must have the same length')
    if not opponent_ratings:
        return None

    average = sum(opponent_ratings) / len(opponent_ratings)
    fraction = sum(scores) / len(scores)

    if fraction >= 1:
        diff = PERFORMANCE_CAP
    elif fraction <= 0:
        diff = -PERFORMANCE_CAP
    else:
        diff = -RATING_DIVISOR * math.log10((1 - fraction) / fraction)
        diff = max(-PERFORMANCE_CAP, min(PERFORMANCE_CAP, diff))

    return _round(average + diff)


def validate_rating(value, field='rating'):
    """Coerce a client-supplied rating to int within the supported range."""
    if isinstance(value, bool):
        raise InvalidArgument(f'{field} must be an integer')
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f'{field} must be an integer')
    if rating != value and not isinstance(value, str):
        raise InvalidArgument(f'{field} must be an integer')
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidArgument(f'{field} must be between {MIN_RATING} and {MAX_RATING}')
    return rating
