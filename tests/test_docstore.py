"""Document store semantics on top of the SQL ``document`` table."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import event

from clubsite.extensions import db
from clubsite.models import Document
from clubsite.services.docstore import (
    DELETE_FIELD,
    DESCENDING,
    SERVER_TIMESTAMP,
    AlreadyExists,
    ArrayRemove,
    ArrayUnion,
    BatchTooLarge,
    DocumentNotFound,
    DocumentStore,
    DocumentStoreError,
    FieldPath,
    Increment,
)


# ==== REFERENCES ====

class TestReferences:

    def test_paths_and_parents(self, store):
        ref = store.collection('clubs').document('u1').collection('teams').document('t1')
        assert ref.path == 'clubs/u1/teams/t1'
        assert ref.id == 't1'
        assert ref.parent.path == 'clubs/u1/teams'
        assert ref.parent.parent.id == 'u1'

    def test_auto_ids_are_unique(self, store):
        teams = store.collection('clubs/u1/teams')
        ids = {teams.document().id for _ in range(50)}
        assert len(ids) == 50

    def test_invalid_paths_rejected(self, store):
        with pytest.raises(ValueError):
            store.document('clubs')
        with pytest.raises(ValueError):
            store.collection('clubs/u1')
        with pytest.raises(ValueError):
            store.collection('clubs').document('a/b')


# ==== WRITES ====

class TestWrites:

    def test_set_and_get(self, store):
        ref = store.document('clubs/u1')
        ref.set({'name': 'FC One', 'nested': {'a': 1}})
        snapshot = ref.get()
        assert snapshot.exists
        assert snapshot.to_dict() == {'name': 'FC One', 'nested': {'a': 1}}
        assert snapshot.get('nested.a') == 1

    def test_missing_document_snapshot(self, store):
        snapshot = store.document('clubs/nobody').get()
        assert not snapshot.exists
        assert snapshot.to_dict() is None
        assert snapshot.get('name', 'fallback') == 'fallback'

    def test_set_replaces_and_merge_combines(self, store):
        ref = store.document('clubs/u1')
        ref.set({'a': 1, 'b': {'x': 1}})
        ref.set({'b': {'y': 2}}, merge=True)
        assert ref.get().to_dict() == {'a': 1, 'b': {'x': 1, 'y': 2}}
        ref.set({'c': 3})
        assert ref.get().to_dict() == {'c': 3}

    def test_create_refuses_existing(self, store):
        ref = store.document('stripe_webhook_events/evt_1')
        ref.create({'type': 'x'})
        with pytest.raises(AlreadyExists):
            ref.create({'type': 'y'})
        assert ref.get().get('type') == 'x'

    def test_update_missing_document_raises(self, store):
        with pytest.raises(DocumentNotFound):
            store.document('clubs/nobody').update({'a': 1})

    def test_delete_missing_document_is_noop(self, store):
        store.document('clubs/nobody').delete()
        assert not store.document('clubs/nobody').get().exists

    def test_field_path_with_slash_and_delete_field(self, store):
        ref = store.document('clubs/u1/teams/t1/players/p1')
        ref.set({'seasonData': {'2024/25': {'goals': 1}, '2024-25': {'goals': 2}, '2023-24': {}}})
        ref.update({
            FieldPath('seasonData', '2024/25'): DELETE_FIELD,
            FieldPath('seasonData', '2024-25'): DELETE_FIELD,
        })
        assert ref.get().to_dict() == {'seasonData': {'2023-24': {}}}

    def test_deleting_absent_field_is_noop(self, store):
        ref = store.document('clubs/u1')
        ref.set({'a': 1})
        ref.update({FieldPath('seasonData', '2024-25'): DELETE_FIELD})
        assert ref.get().to_dict() == {'a': 1}

    def test_array_transforms(self, store):
        ref = store.document('clubs/u1/teams/t1/players/p1')
        ref.set({'seasons': ['2023-24']})
        ref.update({'seasons': ArrayUnion('2024-25', '2023-24')})
        assert ref.get().get('seasons') == ['2023-24', '2024-25']
        ref.update({'seasons': ArrayRemove('2024-25', '2024/25')})
        assert ref.get().get('seasons') == ['2023-24']

    def test_increment(self, store):
        ref = store.document('clubs/u1/news/n1')
        ref.set({'title': 'x'})
        ref.update({'likeCount': Increment(1)})
        ref.update({'likeCount': Increment(2)})
        assert ref.get().get('likeCount') == 3

    def test_datetimes_stored_as_utc_iso(self, store):
        ref = store.document('clubs/u1/news/n1')
        ref.set({'publishedAt': datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc), 'createdAt': SERVER_TIMESTAMP})
        data = ref.get().to_dict()
        assert data['publishedAt'] == '2024-05-01T12:30:00+00:00'
        assert isinstance(data['createdAt'], str)
        assert datetime.fromisoformat(data['createdAt']).tzinfo is not None

    def test_deleting_document_keeps_subcollections(self, store):
        season = store.document('clubs/u1/seasons/2024-25')
        season.set({'label': '2024/25'})
        season.collection('roster').document('p1').set({'teamId': 't1'})
        season.delete()
        assert not season.get().exists
        assert season.collection('roster').document('p1').get().exists


# ==== QUERIES ====

class TestQueries:

    @pytest.fixture
    def profiles(self, store):
        profiles = store.collection('club_profiles')
        profiles.document('u1').set({'clubId': 'alpha', 'ownerUid': 'u1', 'admins': ['a1'], 'rank': 2})
        profiles.document('u2').set({'clubId': 'beta', 'ownerUid': 'u2', 'admins': [], 'rank': 1})
        profiles.document('u3').set({'clubId': 'gamma', 'ownerUid': 'u3', 'admins': ['a1', 'a2']})
        return profiles

    def test_equality_and_limit(self, profiles):
        assert [s.id for s in profiles.where('clubId', '==', 'beta').get()] == ['u2']
        assert len(profiles.limit(2).get()) == 2

    def test_not_equal_and_in(self, profiles):
        assert [s.id for s in profiles.where('clubId', '!=', 'beta').get()] == ['u1', 'u3']
        assert [s.id for s in profiles.where('clubId', 'in', ['gamma', 'alpha']).get()] == ['u1', 'u3']

    def test_array_contains(self, profiles):
        assert [s.id for s in profiles.where('admins', 'array-contains', 'a1').get()] == ['u1', 'u3']
        assert profiles.where('admins', 'array-contains', 'zz').get() == []

    def test_order_by_skips_documents_without_field(self, profiles):
        ordered = profiles.order_by('rank', DESCENDING).get()
        assert [s.id for s in ordered] == ['u1', 'u2']

    def test_range_filters(self, profiles):
        assert [s.id for s in profiles.where('rank', '>=', 2).get()] == ['u1']
        assert [s.id for s in profiles.where('rank', '<', 2).get()] == ['u2']

    def test_collection_scan_is_not_recursive(self, store, profiles):
        store.document('club_profiles/u1/history/h1').set({'clubId': 'alpha'})
        assert len(profiles.where('clubId', '==', 'alpha').get()) == 1

    def test_get_all_preserves_order(self, store, profiles):
        refs = [profiles.document('u3'), profiles.document('missing'), profiles.document('u1')]
        snapshots = store.get_all(refs)
        assert [s.id for s in snapshots] == ['u3', 'missing', 'u1']
        assert [s.exists for s in snapshots] == [True, False, True]

    def test_equality_on_strings_is_type_exact(self, profiles):
        profiles.document('u4').set({'clubId': 5})
        profiles.document('u5').set({'clubId': '5'})
        assert [s.id for s in profiles.where('clubId', '==', '5').get()] == ['u5']
        assert [s.id for s in profiles.where('clubId', '==', 5).get()] == ['u4']

    def test_equality_on_booleans_and_nested_fields(self, profiles):
        profiles.document('u4').set({'isPublished': True, 'meta': {'slug': 'alpha'}})
        profiles.document('u5').set({'isPublished': 'true', 'meta': {'slug': 'beta'}})
        assert [s.id for s in profiles.where('isPublished', '==', True).get()] == ['u4']
        assert [s.id for s in profiles.where('meta.slug', '==', 'beta').get()] == ['u5']
        assert [s.id for s in profiles.where(FieldPath('meta', 'slug'), '==', 'alpha').get()] == ['u4']

    def test_string_equality_is_filtered_in_sql(self, store, profiles):
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append((statement, parameters))

        event.listen(db.engine, 'before_cursor_execute', record)
        try:
            result = profiles.where('ownerUid', '==', 'u2').where('rank', '==', 1).get()
        finally:
            event.remove(db.engine, 'before_cursor_execute', record)
        assert [s.id for s in result] == ['u2']
        scans = [(sql, params) for sql, params in statements if 'FROM document' in sql]
        assert len(scans) == 1
        sql, params = scans[0]
        assert 'json_extract' in sql.lower() or '->>' in sql
        assert 'u2' in tuple(params)


# ==== BATCHES AND TRANSACTIONS ====

class TestBatches:

    def test_batch_commits_all_operations(self, store):
        batch = store.batch()
        batch.set(store.document('clubs/u1/teams/t1'), {'name': 'A'})
        batch.set(store.document('clubs/u1/teams/t2'), {'name': 'B'})
        batch.delete(store.document('clubs/u1/teams/t3'))
        batch.commit()
        assert len(store.collection('clubs/u1/teams').get()) == 2

    def test_failed_batch_applies_nothing(self, store):
        batch = store.batch()
        batch.set(store.document('clubs/u1/teams/t1'), {'name': 'A'})
        batch.update(store.document('clubs/u1/teams/missing'), {'name': 'B'})
        with pytest.raises(DocumentNotFound):
            batch.commit()
        assert not store.document('clubs/u1/teams/t1').get().exists

    def test_batch_operation_cap(self, store):
        batch = store.batch()
        for i in range(500):
            batch.delete(store.document(f'clubs/u1/teams/t{i}'))
        with pytest.raises(BatchTooLarge):
            batch.delete(store.document('clubs/u1/teams/one-too-many'))

    def test_store_rejects_oversized_batch_limit(self, ctx):
        with pytest.raises(ValueError):
            DocumentStore(db, max_batch_size=501)

    def test_transaction_reads_then_writes(self, store):
        ref = store.document('clubs/u1/news/n1')
        ref.set({'likeCount': 1})
        with store.transaction() as txn:
            count = txn.get(ref).get('likeCount')
            txn.update(ref, {'likeCount': count + 1})
        assert ref.get().get('likeCount') == 2

    def test_transaction_read_after_write_is_rejected(self, store):
        ref = store.document('clubs/u1/news/n1')
        ref.set({'likeCount': 1})
        with pytest.raises(DocumentStoreError):
            with store.transaction() as txn:
                txn.update(ref, {'likeCount': 5})
                txn.get(ref)
        assert ref.get().get('likeCount') == 1

    def test_one_row_per_document(self, store):
        store.document('clubs/u1').set({'a': 1})
        store.document('clubs/u1').set({'a': 2})
        rows = db.session.query(Document).filter_by(collection_path='clubs').all()
        assert [(row.path, row.doc_id, row.data) for row in rows] == [('clubs/u1', 'u1', {'a': 2})]
