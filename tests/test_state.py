"""Tests for SelfTracker.core.state.

Run:
    python -m unittest tests.test_state
"""
import copy
import unittest

from SelfTracker.core.state import (
    Action,
    AppState,
    Change,
    Collection,
    PendingOperation,
    RemoteAction,
    apply_change,
    next_id,
    parse_amount,
)
from SelfTracker.status import status
from tests.base import mute_signals


class AppStateTest(unittest.TestCase):

    def test_defaults(self):
        state = AppState()
        self.assertEqual(state.daily, [])
        self.assertRegex(state.settings['activeMonth'], r'^\d{4}-\d{2}$')
        self.assertEqual(state.settings['monthlyBudget'], 5_000_000)
        self.assertTrue(all(isinstance(c, dict) for c in state.settings['categories']))

    def test_round_trip_through_snapshot_layout(self):
        state = AppState()
        state.finance.append({'id': 1, 'date': '2024-01-01'})
        restored = AppState.from_dict(state.to_dict())
        self.assertEqual(restored, state)

    def test_from_dict_ignores_malformed_collections(self):
        with self.assertLogs(level='WARNING'):
            state = AppState.from_dict({'daily': {'not': 'a list'}, 'unknown': [1]})
        self.assertEqual(state.daily, [])

    def test_from_dict_keeps_default_settings_keys(self):
        state = AppState.from_dict({'settings': {'monthlyBudget': 1}})
        self.assertEqual(state.settings['monthlyBudget'], 1)
        self.assertIn('categories', state.settings)

    def test_to_dict_is_a_copy(self):
        state = AppState()
        snapshot = state.to_dict()
        snapshot['settings']['categories'].clear()
        self.assertTrue(state.settings['categories'])


class HelpersTest(unittest.TestCase):

    def test_next_id(self):
        self.assertEqual(next_id([]), 1)
        self.assertEqual(next_id([{'id': 3}, {'id': 'cat_1'}, {'id': 7}, {'id': True}]), 8)

    def test_parse_amount(self):
        self.assertEqual(parse_amount('1500', 'income'), 1500)
        self.assertEqual(parse_amount('12.9', 'income'), 12)
        self.assertEqual(parse_amount('', 'income'), 0)
        self.assertEqual(parse_amount('abc', 'income'), 0)

    def test_parse_amount_out_of_range(self):
        self.assertEqual(parse_amount('1e400', 'income'), 0)
        self.assertEqual(parse_amount(float('inf'), 'outcome'), 0)

        state = AppState()
        apply_change(state, Change(Action.Add, Collection.Finance, fields={
            'date': '2024-01-05', 'category': 1, 'description': 'Typo', 'income': '1e400',
        }))
        self.assertEqual(state.finance[0]['income'], 0)

    def test_parse_amount_rejects_negative(self):
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            parse_amount(-1, 'outcome')


class ChecklistChangeTest(unittest.TestCase):

    def setUp(self) -> None:
        self.state = AppState()

    def test_add_mints_id_and_empty_period_map(self):
        self.state.weekly.append({'id': 4, 'name': 'Existing', 'weeks': {}})
        ops = apply_change(self.state, Change(Action.Add, Collection.Weekly, fields={'name': '  Clean  '}))

        record = self.state.weekly[-1]
        self.assertEqual(record['id'], 5)
        self.assertEqual(record['name'], 'Clean')
        self.assertEqual(record['weeks'], {})
        self.assertEqual(record['created_at'], record['updated_at'])
        self.assertEqual(len(ops), 1)
        self.assertEqual(ops[0].action, RemoteAction.Create)
        self.assertEqual(ops[0].payload, record)
        self.assertIsNot(ops[0].payload, record)

    def test_add_requires_name(self):
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.Add, Collection.Daily, fields={'name': '   '}))
        self.assertEqual(self.state.daily, [])

    def test_set_period_checks_and_unchecks(self):
        self.state.daily.append({'id': 1, 'name': 'Run', 'days': {}, 'updated_at': ''})

        ops = apply_change(self.state, Change(
            Action.SetPeriod, Collection.Daily, 1, {'key': '2024-01-02', 'checked': True}))
        self.assertEqual(self.state.daily[0]['days'], {'2024-01-02': True})
        self.assertEqual(ops, [PendingOperation(RemoteAction.Update, Collection.Daily, 1, {'days': {'2024-01-02': True}})])
        self.assertTrue(self.state.daily[0]['updated_at'])

        apply_change(self.state, Change(Action.SetPeriod, Collection.Daily, 1, {'key': '2024-01-02', 'checked': False}))
        self.assertEqual(self.state.daily[0]['days'], {})

    def test_set_period_validates_key_format(self):
        self.state.weekly.append({'id': 1, 'name': 'Shop', 'weeks': {}})
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.SetPeriod, Collection.Weekly, 1, {'key': '2024-01-02', 'checked': True}))

        apply_change(self.state, Change(Action.SetPeriod, Collection.Weekly, 1, {'key': '2024-01-W3', 'checked': True}))
        self.assertEqual(self.state.weekly[0]['weeks'], {'2024-01-W3': True})

    def test_set_period_on_transactions_is_rejected(self):
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.SetPeriod, Collection.Finance, 1, {'key': '2024-01'}))

    def test_update_unknown_id_is_ignored(self):
        with self.assertLogs(level='WARNING'):
            ops = apply_change(self.state, Change(Action.Update, Collection.Monthly, 99, {'name': 'x'}))
        self.assertEqual(ops, [])

    def test_delete(self):
        self.state.monthly = [{'id': 1, 'name': 'a', 'months': {}}, {'id': 2, 'name': 'b', 'months': {}}]
        ops = apply_change(self.state, Change(Action.Delete, Collection.Monthly, 1))
        self.assertEqual([r['id'] for r in self.state.monthly], [2])
        self.assertEqual(ops, [PendingOperation(RemoteAction.Delete, Collection.Monthly, 1)])


class TransactionChangeTest(unittest.TestCase):

    def setUp(self) -> None:
        self.state = AppState()

    def test_add_finance_coerces_amounts(self):
        apply_change(self.state, Change(Action.Add, Collection.Finance, fields={
            'date': '2024-01-05', 'category': 1, 'description': 'Lunch', 'income': '', 'outcome': '25000',
        }))
        record = self.state.finance[0]
        self.assertEqual(record['id'], 1)
        self.assertEqual(record['income'], 0)
        self.assertEqual(record['outcome'], 25000)
        self.assertEqual(record['category'], 1)

    def test_add_finance_requires_fields(self):
        for missing in ('date', 'category', 'description'):
            fields = {'date': '2024-01-05', 'category': 1, 'description': 'Lunch'}
            fields[missing] = ''
            with mute_signals(), self.assertRaises(status.ValidationFailedException):
                apply_change(self.state, Change(Action.Add, Collection.Finance, fields=fields))
        self.assertEqual(self.state.finance, [])

    def test_negative_amount_leaves_state_untouched(self):
        self.state.business.append({'id': 1, 'date': '2024-01-01', 'type': 'Design', 'income': 1, 'outcome': 0, 'note': ''})
        before = copy.deepcopy(self.state.business)
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.Update, Collection.Business, 1, {
                'date': '2024-01-01', 'type': 'Design', 'income': -5,
            }))
        self.assertEqual(self.state.business, before)

    def test_update_business(self):
        self.state.business.append({
            'id': 3, 'date': '2024-01-01', 'type': 'Design', 'income': 1, 'outcome': 0, 'note': '',
            'created_at': 'c', 'updated_at': 'u',
        })
        ops = apply_change(self.state, Change(Action.Update, Collection.Business, 3, {
            'date': '2024-01-02', 'type': 'Consulting', 'income': '100', 'note': 'done',
        }))
        record = self.state.business[0]
        self.assertEqual(record['type'], 'Consulting')
        self.assertEqual(record['income'], 100)
        self.assertEqual(record['created_at'], 'c')
        self.assertNotEqual(record['updated_at'], 'u')
        self.assertEqual(ops[0].payload, {
            'date': '2024-01-02', 'type': 'Consulting', 'income': 100, 'outcome': 0, 'note': 'done',
        })


class SettingsChangeTest(unittest.TestCase):

    def setUp(self) -> None:
        self.state = AppState()
        self.state.settings['categories'] = [{'id': 1, 'name': 'Food', 'type': 'spending', 'limit': 10}]

    def test_add_category(self):
        ops = apply_change(self.state, Change(Action.AddCategory, Collection.Settings, fields={
            'name': 'Salary', 'type': 'income', 'limit': '500',
        }))
        self.assertEqual(self.state.settings['categories'][-1], {'id': 2, 'name': 'Salary', 'type': 'income', 'limit': 500})
        self.assertEqual(ops, [PendingOperation(RemoteAction.Push, Collection.Settings)])

    def test_duplicate_category_name_and_type(self):
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.AddCategory, Collection.Settings, fields={
                'name': 'FOOD', 'type': 'spending',
            }))
        # same name with another type is allowed
        apply_change(self.state, Change(Action.AddCategory, Collection.Settings, fields={
            'name': 'Food', 'type': 'income',
        }))
        self.assertEqual(len(self.state.settings['categories']), 2)

    def test_invalid_category_type(self):
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.AddCategory, Collection.Settings, fields={
                'name': 'Gifts', 'type': 'other',
            }))

    def test_update_category_may_keep_its_own_name(self):
        apply_change(self.state, Change(Action.UpdateCategory, Collection.Settings, 1, {
            'name': 'Food', 'type': 'spending', 'limit': 20,
        }))
        self.assertEqual(self.state.settings['categories'][0]['limit'], 20)

    def test_remove_category(self):
        apply_change(self.state, Change(Action.RemoveCategory, Collection.Settings, 1))
        self.assertEqual(self.state.settings['categories'], [])

    def test_save_settings(self):
        apply_change(self.state, Change(Action.SaveSettings, Collection.Settings, fields={
            'activeMonth': '2024-03', 'monthlyBudget': '1000',
        }))
        self.assertEqual(self.state.settings['activeMonth'], '2024-03')
        self.assertEqual(self.state.settings['monthlyBudget'], 1000)
        self.assertEqual(self.state.settings['storageMode'], 'online')

        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.SaveSettings, Collection.Settings, fields={'activeMonth': 'March'}))

    def test_settings_actions_require_settings_collection(self):
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.AddCategory, Collection.Finance, fields={'name': 'x', 'type': 'income'}))
        with mute_signals(), self.assertRaises(status.ValidationFailedException):
            apply_change(self.state, Change(Action.Add, Collection.Settings, fields={'name': 'x'}))


if __name__ == '__main__':
    unittest.main()
