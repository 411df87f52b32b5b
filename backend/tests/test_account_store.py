"""
Unit tests for database/account_store.py
"""
import threading
import unittest

from vault_test_case import BaseTestCase


class TestAccountLocks(BaseTestCase):
    """Tests for AccountStore.locked"""

    def test_lock_map_is_empty_after_release(self):
        for index in range(1000):
            with self.store.locked(f'account-{index}'):
                self.assertEqual(len(self.store._locks), 1)

        self.assertEqual(self.store._locks, {})

    def test_nested_hold_keeps_lock_until_outermost_release(self):
        with self.store.locked('account-1'):
            outer = self.store._locks['account-1'][0]
            with self.store.locked('account-1'):
                self.assertIs(self.store._locks['account-1'][0], outer)
            self.assertIn('account-1', self.store._locks)

        self.assertNotIn('account-1', self.store._locks)

    def test_lock_released_after_exception(self):
        with self.assertRaises(RuntimeError):
            with self.store.locked('account-1'):
                raise RuntimeError('boom')

        self.assertEqual(self.store._locks, {})

    def test_waiting_thread_shares_the_held_lock(self):
        entered = threading.Event()
        release = threading.Event()
        order = []

        def holder():
            with self.store.locked('account-1'):
                entered.set()
                release.wait(5)
                order.append('holder')

        def waiter():
            entered.wait(5)
            with self.store.locked('account-1'):
                order.append('waiter')

        threads = [threading.Thread(target=holder), threading.Thread(target=waiter)]
        for thread in threads:
            thread.start()

        entered.wait(5)
        # Give the waiter time to block on the held lock
        threads[1].join(0.2)
        self.assertEqual(order, [])
        release.set()
        for thread in threads:
            thread.join(5)

        self.assertEqual(order, ['holder', 'waiter'])
        self.assertEqual(self.store._locks, {})


if __name__ == '__main__':
    unittest.main(verbosity=2)
