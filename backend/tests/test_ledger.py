from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from chessclub import db
from chessclub.errors import Internal, InvalidArgument, NotFound
from chessclub.models import Game, Player
from chessclub.services.ledger import GameFilter, GamePatch


NOW = datetime(2026, 10, 19, 12, 0, 0)


def rating(player_id):
    return db.session.get(Player, player_id).current_rating


def ratings(*players):
    return tuple(rating(p.id) for p in players)


@pytest.fixture()
def pair(make_player):
    return make_player('Alice'), make_player('Bob')


def test_auto_verified_create_applies_deltas(ledger, pair, notifier):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', auto_verify=True)
    assert (game.white_elo_change, game.black_elo_change) == (10, -10)
    assert game.verified is True
    assert ratings(a, b) == (1210, 1190)

    created = notifier.of_type('game_update', 'create')
    assert len(created) == 1
    assert created[0]['data']['game_id'] == game.id
    assert 'verified' not in created[0]['data']['game']


def test_unverified_create_records_deltas_without_applying(ledger, pair):
    a, b = pair
    game = ledger.create(a.id, b.id, '0-1')
    assert game.verified is False
    assert (game.white_elo_change, game.black_elo_change) == (-10, 10)
    assert ratings(a, b) == (1200, 1200)


def test_flip_result_of_verified_game(ledger, pair):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', auto_verify=True)
    updated = ledger.update(game.id, GamePatch(result='0-1'))
    assert (updated.white_elo_change, updated.black_elo_change) == (-10, 10)
    assert ratings(a, b) == (1190, 1210)


def test_delete_verified_game_reverts_recorded_deltas(ledger, make_player):
    white = make_player('White', rating=1392)
    black = make_player('Black', rating=1308)
    game = ledger.create(white.id, black.id, '1-0', auto_verify=True)
    assert (game.white_elo_change, game.black_elo_change) == (8, -8)
    assert ratings(white, black) == (1400, 1300)

    ledger.delete(game.id)
    assert ratings(white, black) == (1392, 1308)
    assert db.session.get(Game, game.id) is None


def test_create_verify_delete_round_trip(ledger, make_player):
    a = make_player('Carla', rating=1534)
    b = make_player('Dmitri', rating=1287)
    before = ratings(a, b)
    game = ledger.create(a.id, b.id, '1/2-1/2')
    ledger.verify(game.id)
    assert ratings(a, b) != before
    ledger.delete(game.id)
    assert ratings(a, b) == before


def test_result_change_and_back_does_not_drift(ledger, pair, make_player):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', auto_verify=True)
    single = ratings(a, b)
    ledger.update(game.id, GamePatch(result='0-1'))
    ledger.update(game.id, GamePatch(result='1-0'))
    assert ratings(a, b) == single == (1210, 1190)


def test_verify_is_idempotent(ledger, pair, notifier):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0')
    ledger.verify(game.id)
    after_first = ratings(a, b)
    notifier.clear()

    again = ledger.verify(game.id)
    assert again.verified is True
    assert ratings(a, b) == after_first == (1210, 1190)
    assert notifier.events == []


def test_verify_applies_recorded_deltas_not_recomputed(ledger, make_player):
    a = make_player('Eve')
    b = make_player('Finn')
    c = make_player('Gus')
    pending = ledger.create(a.id, b.id, '1-0')
    # Another verified game moves A's rating before the first is verified
    ledger.create(a.id, c.id, '1-0', auto_verify=True)
    assert rating(a.id) == 1210
    ledger.verify(pending.id)
    assert rating(a.id) == 1220
    assert rating(b.id) == 1190


def test_verify_missing_game(ledger):
    with pytest.raises(NotFound):
        ledger.verify(999)


def test_create_rejects_same_player(ledger, pair):
    a, _ = pair
    with pytest.raises(InvalidArgument):
        ledger.create(a.id, a.id, '1-0')
    assert Game.query.count() == 0


def test_create_rejects_unknown_player(ledger, pair):
    a, _ = pair
    with pytest.raises(NotFound):
        ledger.create(a.id, 12345, '1-0', auto_verify=True)
    assert Game.query.count() == 0
    assert rating(a.id) == 1200


def test_create_rejects_bad_result(ledger, pair):
    a, b = pair
    with pytest.raises(InvalidArgument):
        ledger.create(a.id, b.id, 'white')
    assert Game.query.count() == 0


def test_invalid_date_falls_back_to_now(ledger, pair):
    a, b = pair
    before = datetime.now() - timedelta(seconds=1)
    game = ledger.create(a.id, b.id, '1-0', date='not a date')
    assert game.date >= before


def test_explicit_date_is_kept(ledger, pair):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', date='2026-03-04T18:30:00')
    assert game.date == datetime(2026, 3, 4, 18, 30)


def test_unverify_through_update_reverts(ledger, pair):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', auto_verify=True)
    updated = ledger.update(game.id, GamePatch(verified=False))
    assert updated.verified is False
    assert ratings(a, b) == (1200, 1200)
    # Deltas stay recorded for a later verification
    assert (updated.white_elo_change, updated.black_elo_change) == (10, -10)


def test_result_change_on_unverified_game_rerates_without_applying(ledger, pair):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0')
    updated = ledger.update(game.id, GamePatch(result='1/2-1/2'))
    assert (updated.white_elo_change, updated.black_elo_change) == (0, 0)
    assert ratings(a, b) == (1200, 1200)
    ledger.verify(game.id)
    assert ratings(a, b) == (1200, 1200)


def test_update_can_verify_and_change_result_together(ledger, pair):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0')
    ledger.update(game.id, GamePatch(result='0-1', verified=True))
    assert ratings(a, b) == (1190, 1210)


def test_update_date_only_keeps_ratings(ledger, pair, notifier):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', auto_verify=True)
    new_date = datetime(2026, 1, 2, 10, 0)
    updated = ledger.update(game.id, GamePatch(date=new_date))
    assert updated.date == new_date
    assert ratings(a, b) == (1210, 1190)
    assert len(notifier.of_type('game_update', 'update')) == 1


def test_update_missing_game(ledger):
    with pytest.raises(NotFound):
        ledger.update(42, GamePatch(result='1-0'))


def test_patch_rejects_bad_result():
    with pytest.raises(InvalidArgument):
        GamePatch(result='1-1')


def test_delete_unverified_game_leaves_ratings(ledger, pair, notifier):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0')
    payload = ledger.delete(game.id)
    assert payload['id'] == game.id
    assert ratings(a, b) == (1200, 1200)
    deleted = notifier.of_type('game_update', 'delete')
    assert deleted[0]['data']['game_id'] == game.id


def test_delete_missing_game(ledger):
    with pytest.raises(NotFound):
        ledger.delete(7)


def _fail_commit(monkeypatch):
    def boom():
        raise OperationalError('COMMIT', {}, Exception('connection lost'))
    monkeypatch.setattr(db.session, 'commit', boom)


def test_failed_verify_rolls_back_everything(ledger, pair, monkeypatch, notifier):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0')
    notifier.clear()
    _fail_commit(monkeypatch)
    with pytest.raises(Internal):
        ledger.verify(game.id)
    monkeypatch.undo()

    assert ratings(a, b) == (1200, 1200)
    assert db.session.get(Game, game.id).verified is False
    assert notifier.events == []


def test_failed_update_rolls_back_everything(ledger, pair, monkeypatch):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', auto_verify=True)
    _fail_commit(monkeypatch)
    with pytest.raises(Internal):
        ledger.update(game.id, GamePatch(result='0-1'))
    monkeypatch.undo()

    stored = db.session.get(Game, game.id)
    assert stored.result.value == '1-0'
    assert (stored.white_elo_change, stored.black_elo_change) == (10, -10)
    assert ratings(a, b) == (1210, 1190)


def test_failed_delete_keeps_game_and_ratings(ledger, pair, monkeypatch):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', auto_verify=True)
    _fail_commit(monkeypatch)
    with pytest.raises(Internal):
        ledger.delete(game.id)
    monkeypatch.undo()

    assert db.session.get(Game, game.id) is not None
    assert ratings(a, b) == (1210, 1190)


# ---- listing ----

@pytest.fixture()
def dated_games(ledger, make_player):
    a = make_player('Hana')
    b = make_player('Ivan')
    c = make_player('Jo')
    games = {
        'today': ledger.create(a.id, b.id, '1-0', date=NOW - timedelta(hours=1), auto_verify=True),
        'boundary': ledger.create(b.id, c.id, '0-1', date=NOW - timedelta(days=7)),
        'stale': ledger.create(a.id, c.id, '1/2-1/2', date=NOW - timedelta(days=7, seconds=1), auto_verify=True),
        'old': ledger.create(c.id, a.id, '1-0', date=NOW - timedelta(days=200)),
    }
    return (a, b, c), games


def ids(found):
    return [g.id for g in found]


def test_list_last_week_is_inclusive_and_newest_first(ledger, dated_games):
    _, games = dated_games
    found = ledger.list(GameFilter(date_range='last-week'), now=NOW)
    assert ids(found) == [games['today'].id, games['boundary'].id]


def test_list_accepts_short_range_alias(ledger, dated_games):
    _, games = dated_games
    found = ledger.list(GameFilter(date_range='month'), now=NOW)
    assert ids(found) == [games['today'].id, games['boundary'].id, games['stale'].id]


def test_list_default_sort_and_ascending(ledger, dated_games):
    _, games = dated_games
    order = [games['today'].id, games['boundary'].id, games['stale'].id, games['old'].id]
    assert ids(ledger.list()) == order
    assert ids(ledger.list(GameFilter(order='asc'))) == list(reversed(order))


def test_list_by_player_and_verification(ledger, dated_games):
    (a, b, c), games = dated_games
    assert set(ids(ledger.list(GameFilter(player_id=b.id)))) == {games['today'].id, games['boundary'].id}
    assert set(ids(ledger.list(GameFilter(verified=True)))) == {games['today'].id, games['stale'].id}
    combined = ledger.list(GameFilter(player_id=a.id, verified=False))
    assert ids(combined) == [games['old'].id]


def test_list_single_day_and_explicit_range(ledger, dated_games):
    _, games = dated_games
    day = (NOW - timedelta(days=7)).date()
    assert ids(ledger.list(GameFilter(day=day))) == [games['boundary'].id, games['stale'].id]
    found = ledger.list(GameFilter(date_from=NOW - timedelta(days=300), date_to=NOW - timedelta(days=7, seconds=1)))
    assert ids(found) == [games['stale'].id, games['old'].id]


def test_list_unknown_range_rejected(ledger):
    with pytest.raises(InvalidArgument):
        ledger.list(GameFilter(date_range='fortnight'))


def test_listed_games_carry_current_player_snapshots(ledger, pair):
    a, b = pair
    game = ledger.create(a.id, b.id, '1-0', auto_verify=True)
    ledger.create(a.id, b.id, '1-0', auto_verify=True)
    record = next(g for g in ledger.list() if g.id == game.id).to_dict()
    # Snapshot is the current rating, not the rating at game time
    assert record['white_player'] == {'id': a.id, 'name': 'Alice', 'current_rating': rating(a.id)}
    assert record['black_player']['current_rating'] == rating(b.id)
    assert 'verified' not in record


# ---- reconciliation ----

def test_reconcile_repairs_admin_override(ledger, store, pair, notifier):
    a, b = pair
    ledger.create(a.id, b.id, '1-0', auto_verify=True)
    store.admin_set_rating(a.id, 1500)

    report = ledger.reconcile_ratings(dry_run=True)
    assert report == [{'player_id': a.id, 'name': 'Alice', 'current_rating': 1500, 'expected_rating': 1210}]
    assert rating(a.id) == 1500

    notifier.clear()
    ledger.reconcile_ratings()
    assert rating(a.id) == 1210
    assert ledger.reconcile_ratings() == []
    assert notifier.of_type('player_update', 'update')[0]['data']['player_id'] == a.id
