"""Season deletion, roster cleanup and stats cache invalidation."""

import logging

import pytest

from clubsite.extensions import db
from clubsite.models import Document
from clubsite.services.docstore import WriteBatch
from clubsite.services.lifecycle import (
    chunked,
    cleanup_roster,
    delete_season,
    find_orphaned_roster_entries,
    invalidate_player_stats_cache,
)

OWNER = 'u1'


@pytest.fixture
def club(store):
    """Two teams, two seasons, a roster with one orphaned entry and stats caches."""
    root = store.document(f'clubs/{OWNER}')
    root.set({'ownerUid': OWNER})
    root.collection('teams').document('t1').set({'name': 'First'})
    root.collection('teams').document('t2').set({'name': 'Reserves'})
    root.collection('seasons').document('2024-25').set({'label': '2024/25'})
    root.collection('seasons').document('2023-24').set({'label': '2023/24'})

    root.collection('teams').document('t1').collection('players').document('p1').set({
        'name': 'Only This Season',
        'seasons': ['2024-25', '2024/25'],
        'seasonData': {'2024-25': {'number': 9}, '2024/25': {'number': 9}},
    })
    root.collection('teams').document('t2').collection('players').document('p2').set({
        'name': 'Veteran',
        'seasons': ['2023-24', '2024-25'],
        'seasonData': {'2023-24': {'number': 4}, '2024-25': {'number': 4}},
    })

    roster = root.collection('seasons').document('2024-25').collection('roster')
    for player_id, team_id in (('p1', 't1'), ('p2', 't2'), ('ghost', 't1')):
        roster.document(player_id).set({'teamId': team_id})
    root.collection('seasons').document('2023-24').collection('roster').document('p2').set({'teamId': 't2'})

    caches = root.collection('public_player_stats_cache')
    for player_id in ('p1', 'p2', 'ghost', 'p3'):
        caches.document(player_id).set({'cacheVersion': 1, 'cachedAtMs': 0, 'payload': {}})
    return root


def all_documents():
    rows = db.session.query(Document).populate_existing().all()
    return {row.path: row.data for row in rows}


def test_chunked():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 450) == []
    with pytest.raises(ValueError):
        chunked([1], 0)


# ==== DELETE SEASON ====

class TestDeleteSeason:

    def test_postconditions(self, store, club):
        result = delete_season(OWNER, '2024-25')

        p1 = club.collection('teams').document('t1').collection('players').document('p1').get()
        assert p1.exists
        assert p1.get('seasonData') == {}
        assert p1.get('seasons') == []

        season = club.collection('seasons').document('2024-25')
        assert not season.get().exists
        assert season.collection('roster').get() == []

        caches = club.collection('public_player_stats_cache')
        assert not caches.document('p1').get().exists
        assert not caches.document('p2').get().exists
        assert not caches.document('ghost').get().exists
        assert caches.document('p3').get().exists

        assert result.season_id == '2024-25'
        assert result.roster_entries_deleted == 3
        assert result.players_updated == 2
        assert result.caches_invalidated == 3
        assert result.batches_committed == 1

    def test_other_seasons_untouched(self, store, club):
        delete_season(OWNER, '2024-25')
        p2 = club.collection('teams').document('t2').collection('players').document('p2').get()
        assert p2.get('seasons') == ['2023-24']
        assert p2.get('seasonData') == {'2023-24': {'number': 4}}
        other = club.collection('seasons').document('2023-24')
        assert other.get().exists
        assert [e.id for e in other.collection('roster').get()] == ['p2']

    @pytest.mark.parametrize('spelling', ['2024/25', '2024-2025', '2024/2025'])
    def test_any_spelling_targets_dash_key(self, store, club, spelling):
        result = delete_season(OWNER, spelling)
        assert result.season_id == '2024-25'
        assert not club.collection('seasons').document('2024-25').get().exists

    def test_second_delete_is_a_noop(self, store, club):
        delete_season(OWNER, '2024-25')
        before = all_documents()
        result = delete_season(OWNER, '2024/25')
        assert all_documents() == before
        assert result.roster_entries_deleted == 0
        assert result.players_updated == 0

    def test_operations_are_chunked(self, store, club, caplog):
        caplog.set_level(logging.INFO, logger='clubsite.services.lifecycle')
        # 2 player updates + 3 roster deletes + 3 cache deletes + 1 season delete
        result = delete_season(OWNER, '2024-25', chunk_size=2)
        assert result.batches_committed == 5
        chunk_lines = [r for r in caplog.records if 'committed chunk' in r.getMessage()]
        assert len(chunk_lines) == 5

    def test_chunk_size_from_config(self, app, store, club):
        app.config['BATCH_CHUNK_SIZE'] = 4
        assert delete_season(OWNER, '2024-25').batches_committed == 3

    @pytest.mark.parametrize('chunk_size,failing_commit', [(1, 2), (2, 2), (3, 2), (2, 3), (4, 2)])
    def test_retry_after_partial_failure(self, store, club, monkeypatch, chunk_size, failing_commit):
        original_commit = WriteBatch.commit
        calls = {'n': 0}

        def flaky_commit(self):
            calls['n'] += 1
            if calls['n'] == failing_commit:
                raise RuntimeError('connection reset')
            return original_commit(self)

        monkeypatch.setattr(WriteBatch, 'commit', flaky_commit)
        with pytest.raises(RuntimeError):
            delete_season(OWNER, '2024-25', chunk_size=chunk_size)

        # earlier chunks stay applied
        assert club.collection('seasons').document('2024-25').get().exists

        monkeypatch.setattr(WriteBatch, 'commit', original_commit)
        delete_season(OWNER, '2024-25', chunk_size=chunk_size)

        assert not club.collection('seasons').document('2024-25').get().exists
        assert club.collection('seasons').document('2024-25').collection('roster').get() == []
        caches = club.collection('public_player_stats_cache')
        for player_id in ('p1', 'p2', 'ghost'):
            assert not caches.document(player_id).get().exists
        assert caches.document('p3').get().exists
        p1 = club.collection('teams').document('t1').collection('players').document('p1').get()
        assert p1.get('seasonData') == {}

    def test_missing_season_is_fine(self, store, club):
        result = delete_season(OWNER, '2010-11')
        assert result.roster_entries_deleted == 0


# ==== CLEANUP ROSTER ====

class TestCleanupRoster:

    def test_only_orphans_are_removed(self, store, club):
        result = cleanup_roster(OWNER, '2024/25')
        assert result.removed_player_ids == ['ghost']
        assert result.deleted_roster_count == 1

        roster = club.collection('seasons').document('2024-25').collection('roster')
        assert sorted(e.id for e in roster.get()) == ['p1', 'p2']

        caches = club.collection('public_player_stats_cache')
        assert not caches.document('ghost').get().exists
        assert caches.document('p1').get().exists

    def test_player_in_any_team_is_kept(self, store, club):
        # p1 moves from t1 to t2; its roster entry still points at t1
        club.collection('teams').document('t1').collection('players').document('p1').delete()
        club.collection('teams').document('t2').collection('players').document('p1').set({'name': 'Moved'})
        orphaned = find_orphaned_roster_entries(OWNER, '2024-25')
        assert [ref.id for ref in orphaned] == ['ghost']

    def test_deleted_player_becomes_orphan(self, store, club):
        club.collection('teams').document('t2').collection('players').document('p2').delete()
        result = cleanup_roster(OWNER, '2024-25')
        assert sorted(result.removed_player_ids) == ['ghost', 'p2']
        # the 2023-24 roster is a different season and is left alone
        assert club.collection('seasons').document('2023-24').collection('roster').document('p2').get().exists

    def test_retry_after_partial_failure(self, store, club, monkeypatch):
        club.collection('teams').document('t2').collection('players').document('p2').delete()
        original_commit = WriteBatch.commit
        calls = {'n': 0}

        def flaky_commit(self):
            calls['n'] += 1
            if calls['n'] == 2:
                raise RuntimeError('connection reset')
            return original_commit(self)

        monkeypatch.setattr(WriteBatch, 'commit', flaky_commit)
        with pytest.raises(RuntimeError):
            cleanup_roster(OWNER, '2024-25', chunk_size=1)

        monkeypatch.setattr(WriteBatch, 'commit', original_commit)
        cleanup_roster(OWNER, '2024-25', chunk_size=1)

        roster = club.collection('seasons').document('2024-25').collection('roster')
        assert [e.id for e in roster.get()] == ['p1']
        caches = club.collection('public_player_stats_cache')
        assert not caches.document('ghost').get().exists
        assert not caches.document('p2').get().exists
        assert caches.document('p1').get().exists

    def test_cleanup_twice(self, store, club):
        cleanup_roster(OWNER, '2024-25')
        again = cleanup_roster(OWNER, '2024-25')
        assert again.deleted_roster_count == 0
        assert again.batches_committed == 0


def test_invalidate_player_stats_cache(store, club):
    invalidate_player_stats_cache(OWNER, 'p1')
    invalidate_player_stats_cache(OWNER, 'never-cached')
    assert not club.collection('public_player_stats_cache').document('p1').get().exists
