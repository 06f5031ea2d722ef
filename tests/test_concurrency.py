import threading
import time
import unittest

from modelkombat.utils.concurrency import KeyedLock


class TestKeyedLock(unittest.TestCase):
    def test_reentrant(self):
        """The same thread can take a key's lock twice."""
        locks = KeyedLock()
        with locks.hold("user-1"):
            with locks.hold("user-1"):
                pass
        self.assertEqual(len(locks), 1)

    def test_same_key_serializes(self):
        """Read-modify-write sections for one key never interleave."""
        locks = KeyedLock()
        state = {"value": 0}

        def increment():
            for _ in range(50):
                with locks.hold("user-1"):
                    current = state["value"]
                    time.sleep(0)
                    state["value"] = current + 1

        threads = [threading.Thread(target=increment) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(state["value"], 200)

    def test_different_keys_independent(self):
        """Holding one user's lock does not block another user."""
        locks = KeyedLock()
        acquired = threading.Event()

        def other_user():
            with locks.hold("user-2"):
                acquired.set()

        with locks.hold("user-1"):
            t = threading.Thread(target=other_user)
            t.start()
            self.assertTrue(acquired.wait(timeout=2))
            t.join()
        self.assertEqual(len(locks), 2)


if __name__ == '__main__':
    unittest.main()
