"""Tests for SelfTracker.core.merge.

Run:
    python -m unittest tests.test_merge
"""
import copy
import unittest

from SelfTracker.core.merge import merge_collection, merge_settings, merge_snapshot


def daily(record_id, days=None, **kwargs):
    record = {'id': record_id, 'name': f'Item {record_id}', 'days': days or {}}
    record.update(kwargs)
    return record


def finance(record_id, date, outcome=0, **kwargs):
    record = {'id': record_id, 'date': date, 'category': 1, 'description': 'x', 'income': 0, 'outcome': outcome}
    record.update(kwargs)
    return record


class ChecklistMergeTest(unittest.TestCase):

    def test_disjoint_period_keys_are_unioned(self):
        local = [{'id': 1, 'days': {'2024-01-01': True}}]
        remote = [{'id': 1, 'days': {'2024-01-02': True}}]
        self.assertEqual(
            merge_collection(local, remote, 'daily'),
            [{'id': 1, 'days': {'2024-01-01': True, '2024-01-02': True}}],
        )

    def test_remote_wins_on_period_key_collision(self):
        local = [daily(1, {'2024-01-01': True})]
        remote = [daily(1, {'2024-01-01': False})]
        merged = merge_collection(local, remote, 'daily')
        self.assertIs(merged[0]['days']['2024-01-01'], False)

    def test_remote_wins_for_scalar_fields(self):
        local = [daily(1, name='Local name')]
        remote = [daily(1, name='Remote name')]
        self.assertEqual(merge_collection(local, remote, 'daily')[0]['name'], 'Remote name')

    def test_local_only_records_are_appended_after_remote(self):
        local = [daily(3), daily(1)]
        remote = [daily(1), daily(2)]
        merged = merge_collection(local, remote, 'daily')
        self.assertEqual([r['id'] for r in merged], [1, 2, 3])

    def test_weekly_and_monthly_use_their_own_period_field(self):
        weekly = merge_collection(
            [{'id': 1, 'weeks': {'2024-01-W1': True}}],
            [{'id': 1, 'weeks': {'2024-01-W2': True}}],
            'weekly',
        )
        self.assertEqual(weekly[0]['weeks'], {'2024-01-W1': True, '2024-01-W2': True})
        self.assertNotIn('days', weekly[0])

        monthly = merge_collection(
            [{'id': 1, 'months': {'2024-01': True}}],
            [{'id': 1, 'months': {'2024-02': True}}],
            'monthly',
        )
        self.assertEqual(monthly[0]['months'], {'2024-01': True, '2024-02': True})

    def test_period_map_missing_on_one_side(self):
        merged = merge_collection([daily(1, {'2024-01-01': True})], [{'id': 1, 'name': 'x'}], 'daily')
        self.assertEqual(merged[0]['days'], {'2024-01-01': True})

    def test_idempotent(self):
        records = [daily(1, {'2024-01-01': True}), daily(2), daily(3, {'2024-01-05': True})]
        self.assertEqual(merge_collection(records, records, 'daily'), records)


class TransactionMergeTest(unittest.TestCase):

    def test_remote_wins_without_duplicates(self):
        local = [{'id': 5, 'date': '2024-01-01', 'income': 0, 'outcome': 100}]
        remote = [{'id': 5, 'date': '2024-01-01', 'income': 0, 'outcome': 200}]
        self.assertEqual(
            merge_collection(local, remote, 'finance'),
            [{'id': 5, 'date': '2024-01-01', 'income': 0, 'outcome': 200}],
        )

    def test_sorted_by_date_descending(self):
        local = [finance(1, '2024-01-03'), finance(2, '2024-01-10')]
        remote = [finance(3, '2024-01-01'), finance(4, '2024-02-01')]
        merged = merge_collection(local, remote, 'finance')
        self.assertEqual([r['date'] for r in merged], ['2024-02-01', '2024-01-10', '2024-01-03', '2024-01-01'])

    def test_sort_is_stable_for_equal_dates(self):
        local = [finance(10, '2024-01-01'), finance(11, '2024-01-01')]
        remote = [finance(20, '2024-01-01'), finance(21, '2024-01-01')]
        merged = merge_collection(local, remote, 'business')
        self.assertEqual([r['id'] for r in merged], [20, 21, 10, 11])

    def test_each_id_appears_once(self):
        local = [finance(i, f'2024-01-{i:02d}') for i in range(1, 8)]
        remote = [finance(i, f'2024-02-{i:02d}') for i in range(4, 12)]
        merged = merge_collection(local, remote, 'finance')
        ids = [r['id'] for r in merged]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(set(ids), set(range(1, 12)))

    def test_duplicate_ids_within_one_side_keep_the_first(self):
        local = [finance(1, '2024-01-01', outcome=1), finance(1, '2024-01-02', outcome=2)]
        remote = [finance(2, '2024-01-03')]
        merged = merge_collection(local, remote, 'finance')
        self.assertEqual([(r['id'], r['outcome']) for r in merged], [(2, 0), (1, 1)])

    def test_idempotent_after_canonical_sort(self):
        records = [finance(1, '2024-01-03'), finance(2, '2024-01-01'), finance(3, '2024-01-02')]
        merged = merge_collection(records, records, 'finance')
        self.assertEqual(
            sorted(merged, key=lambda r: r['id']),
            sorted(records, key=lambda r: r['id']),
        )

    def test_unparsable_dates_sort_last(self):
        merged = merge_collection(
            [finance(1, 'not a date'), finance(2, '2024-01-01')],
            [finance(3, '2023-12-31')],
            'finance',
        )
        self.assertEqual([r['id'] for r in merged], [2, 3, 1])

    def test_stale_remote_is_logged_but_still_wins(self):
        local = [finance(1, '2024-01-01', outcome=100, updated_at='2024-03-01T00:00:00+00:00')]
        remote = [finance(1, '2024-01-01', outcome=200, updated_at='2024-02-01T00:00:00+00:00')]
        with self.assertLogs(level='WARNING') as logs:
            merged = merge_collection(local, remote, 'finance')
        self.assertEqual(merged[0]['outcome'], 200)
        self.assertTrue(any('older than the local copy' in line for line in logs.output))


class EmptySideTest(unittest.TestCase):

    def test_empty_local_returns_remote(self):
        remote = [finance(1, '2024-01-01'), finance(2, '2024-02-01')]
        self.assertEqual(merge_collection([], remote, 'finance'), remote)

    def test_empty_remote_returns_local(self):
        local = [daily(1)]
        self.assertEqual(merge_collection(local, None, 'daily'), local)

    def test_both_empty(self):
        self.assertEqual(merge_collection(None, [], 'weekly'), [])

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            merge_collection([], [], 'settings')
        with self.assertRaises(ValueError):
            merge_collection([], [], 'nope')


class PurityTest(unittest.TestCase):

    def test_inputs_are_not_mutated(self):
        local = [daily(1, {'2024-01-01': True})]
        remote = [daily(1, {'2024-01-02': True})]
        local_before, remote_before = copy.deepcopy(local), copy.deepcopy(remote)

        merged = merge_collection(local, remote, 'daily')
        merged[0]['days']['2024-01-09'] = True

        self.assertEqual(local, local_before)
        self.assertEqual(remote, remote_before)

    def test_result_does_not_alias_inputs(self):
        remote = [finance(1, '2024-01-01')]
        merged = merge_collection([], remote, 'finance')
        merged[0]['outcome'] = 999
        self.assertEqual(remote[0]['outcome'], 0)


class SettingsMergeTest(unittest.TestCase):

    def test_remote_overrides_local(self):
        merged = merge_settings({'activeMonth': '2024-01', 'monthlyBudget': 1}, {'monthlyBudget': 2})
        self.assertEqual(merged, {'activeMonth': '2024-01', 'monthlyBudget': 2})

    def test_local_connection_fields_are_kept(self):
        merged = merge_settings(
            {'apiToken': 'secret', 'apiBase': 'https://local'},
            {'apiToken': '', 'activeMonth': '2024-05'},
        )
        self.assertEqual(merged['apiToken'], 'secret')
        self.assertEqual(merged['apiBase'], 'https://local')
        self.assertEqual(merged['activeMonth'], '2024-05')

    def test_remote_connection_fields_win_when_set(self):
        merged = merge_settings({'apiBase': 'https://local'}, {'apiBase': 'https://remote'})
        self.assertEqual(merged['apiBase'], 'https://remote')

    def test_connection_fields_are_not_invented(self):
        self.assertNotIn('apiToken', merge_settings({'a': 1}, {'b': 2}))


class SnapshotMergeTest(unittest.TestCase):

    def test_merges_every_collection_and_settings(self):
        local = {
            'daily': [daily(1, {'2024-01-01': True})],
            'finance': [finance(1, '2024-01-01')],
            'settings': {'apiToken': 't', 'monthlyBudget': 1},
        }
        remote = {
            'daily': [daily(1, {'2024-01-02': True})],
            'business': [{'id': 1, 'date': '2024-01-01', 'type': 'Consulting', 'income': 5, 'outcome': 0}],
            'settings': {'monthlyBudget': 2},
        }
        merged = merge_snapshot(local, remote)

        self.assertEqual(set(merged), {'daily', 'finance', 'business', 'settings'})
        self.assertEqual(merged['daily'][0]['days'], {'2024-01-01': True, '2024-01-02': True})
        self.assertEqual(merged['finance'], local['finance'])
        self.assertEqual(merged['business'], remote['business'])
        self.assertEqual(merged['settings'], {'apiToken': 't', 'monthlyBudget': 2})

    def test_missing_remote(self):
        local = {'weekly': [{'id': 1, 'weeks': {}}]}
        self.assertEqual(merge_snapshot(local, None), local)


if __name__ == '__main__':
    unittest.main()
