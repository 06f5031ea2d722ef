"""
Unit Tests - HybridConfigBackend
================================

Tests for modelkombat/integrations/hybrid_store.py. Firestore is a MagicMock
client behind a real FirestoreConfigBackend; the local side writes to a temp dir.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from google.api_core.exceptions import ServiceUnavailable

from modelkombat.core import config
from modelkombat.core.errors import PersistenceError
from modelkombat.core.session import ConfigSession
from modelkombat.integrations.firestore_store import FirestoreConfigBackend
from modelkombat.integrations.hybrid_store import HybridConfigBackend
from modelkombat.utils.config_manager import LocalConfigBackend
from modelkombat.utils.notifications import RecordingNotifier


class HybridTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.tmp_dir) / "llm_config.json"

        self.client = MagicMock()
        self.doc = self.client.collection.return_value.document.return_value
        self.remote = FirestoreConfigBackend(user_provider=lambda: "uid-123", client=self.client)
        self.local = LocalConfigBackend(path=self.config_path)
        self.backend = HybridConfigBackend(self.remote, self.local)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def local_file(self):
        with open(self.config_path, "r", encoding="utf-8") as f:
            return json.load(f)[config.LOCAL_STORAGE_NAMESPACE]["config"]


class TestFirestoreAvailable(HybridTestCase):

    def test_reports_firestore_mode(self):
        self.assertEqual(self.backend.storage_mode, "firestore")
        self.assertTrue(self.backend.remote_available)
        self.assertEqual(self.backend.current_user_id(), "uid-123")

    def test_load_reads_firestore(self):
        snapshot = MagicMock(exists=True)
        snapshot.to_dict.return_value = {"defaultRefinementRounds": 6}
        self.doc.get.return_value = snapshot

        self.assertEqual(self.backend.load("uid-123"), {"defaultRefinementRounds": 6})

    def test_save_writes_both(self):
        self.backend.save("uid-123", {"enabledModelIds": ["m1"]})

        self.doc.set.assert_called_once_with({"enabledModelIds": ["m1"]}, merge=True)
        self.assertEqual(self.local_file(), {"enabledModelIds": ["m1"]})


class TestFirestoreUnavailable(HybridTestCase):

    def test_load_failure_switches_to_local(self):
        self.local.save("uid-123", {"defaultRefinementRounds": 4})
        self.doc.get.side_effect = ServiceUnavailable("firestore down")

        self.assertEqual(self.backend.load("uid-123"), {"defaultRefinementRounds": 4})
        self.assertEqual(self.backend.storage_mode, "local")
        self.assertFalse(self.backend.remote_available)

        # Firestore is not retried for the rest of the session
        self.backend.load("uid-123")
        self.assertEqual(self.doc.get.call_count, 1)

    def test_save_failure_keeps_local_copy(self):
        self.doc.set.side_effect = ServiceUnavailable("firestore down")

        self.backend.save("uid-123", {"defaultJudgeId": "openai/gpt-4o"})

        self.assertEqual(self.local_file(), {"defaultJudgeId": "openai/gpt-4o"})
        self.assertEqual(self.backend.storage_mode, "local")

        self.backend.save("uid-123", {"defaultRefinementRounds": 2})
        self.assertEqual(self.doc.set.call_count, 1)
        self.assertEqual(self.local_file()["defaultRefinementRounds"], 2)

    def test_local_failure_is_raised(self):
        self.local.save = MagicMock(side_effect=PersistenceError("disk full"))
        with self.assertRaises(PersistenceError):
            self.backend.save("uid-123", {"defaultRefinementRounds": 2})
        self.doc.set.assert_not_called()

    def test_reconnect(self):
        self.doc.get.side_effect = ServiceUnavailable("firestore down")
        self.backend.load("uid-123")
        self.assertEqual(self.backend.storage_mode, "local")

        self.doc.get.side_effect = None
        self.doc.get.return_value = MagicMock(exists=False)
        self.backend.reconnect()

        self.assertIsNone(self.backend.load("uid-123"))
        self.assertEqual(self.backend.storage_mode, "firestore")

    def test_clear_only_touches_local_copy(self):
        self.backend.save("uid-123", {"defaultRefinementRounds": 2})
        self.backend.clear("uid-123")
        with open(self.config_path, "r", encoding="utf-8") as f:
            self.assertNotIn(config.LOCAL_STORAGE_NAMESPACE, json.load(f))
        self.doc.delete.assert_not_called()


class TestSessionOnHybridBackend(HybridTestCase):

    def test_session_keeps_working_when_firestore_drops(self):
        self.doc.get.return_value = MagicMock(exists=False)
        notifier = RecordingNotifier()
        session = ConfigSession(self.backend, notifier=notifier)

        session.load_config()
        self.assertEqual(session.storage_mode, "firestore")

        self.doc.set.side_effect = ServiceUnavailable("firestore down")
        self.assertTrue(session.toggle_model("m1", True))

        self.assertEqual(session.config.enabled_model_ids, ["m1"])
        self.assertEqual(session.storage_mode, "local")
        self.assertIsNone(session.last_error)
        self.assertEqual(self.local_file()["enabledModelIds"], ["m1"])


if __name__ == '__main__':
    unittest.main()
