import io
import json
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

from google.auth.exceptions import DefaultCredentialsError

from modelkombat import cli
from modelkombat.core import config


@patch('modelkombat.cli.shutdown_logging')
@patch('modelkombat.cli.setup_logging')
class TestCli(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.tmp_dir) / "llm_config.json"

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def run_cli(self, *args):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = cli.main(["--config-path", str(self.config_path), *args])
        return code, out.getvalue(), err.getvalue()

    def stored_config(self):
        with open(self.config_path, "r", encoding="utf-8") as f:
            return json.load(f)[config.LOCAL_STORAGE_NAMESPACE]["config"]

    def test_rounds_and_show(self, *_):
        code, _, _ = self.run_cli("rounds", "5")
        self.assertEqual(code, 0)

        code, out, _ = self.run_cli("show")
        self.assertEqual(code, 0)
        self.assertIn("Refinement rounds: 5", out)
        self.assertIn("Storage:           local", out)
        self.assertIn("not configured", out)

    def test_invalid_rounds(self, *_):
        code, out, err = self.run_cli("rounds", "11")
        self.assertEqual(code, 1)
        self.assertIn("Invalid Value", out)
        self.assertIn("Error:", err)

    def test_enable_and_plan(self, *_):
        self.run_cli("enable", "a/one")
        self.run_cli("enable", "b/two")
        self.run_cli("enable", "c/three")
        self.run_cli("disable", "c/three")

        code, out, _ = self.run_cli("plan", "--rounds", "3")
        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), ["Round 1: a/one", "Round 2: b/two", "Round 3: a/one"])
        self.assertEqual(self.stored_config()["enabledModelIds"], ["a/one", "b/two"])

    def test_plan_rejects_zero_rounds(self, *_):
        self.run_cli("enable", "a/one")
        code, out, err = self.run_cli("plan", "--rounds", "0")
        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("between 1 and 10", err)

    def test_plan_uses_configured_rounds(self, *_):
        self.run_cli("enable", "a/one")
        self.run_cli("rounds", "2")
        code, out, _ = self.run_cli("plan")
        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), ["Round 1: a/one", "Round 2: a/one"])

    def test_refine_rejects_zero_rounds(self, *_):
        with patch('modelkombat.integrations.openrouter_client.OpenRouterClient.is_initialized', return_value=True):
            code, _, err = self.run_cli("refine", "Explain recursion", "--rounds", "0")
        self.assertEqual(code, 1)
        self.assertIn("between 1 and 10", err)

    @patch('modelkombat.integrations.firestore_store.firestore.Client')
    def test_hybrid_storage_falls_back_to_local_file(self, mock_client_cls, *_):
        mock_client_cls.side_effect = DefaultCredentialsError("no application default credentials")

        code, _, _ = self.run_cli("--account", "uid-123", "--storage", "hybrid", "rounds", "4")
        self.assertEqual(code, 0)
        self.assertEqual(self.stored_config()["defaultRefinementRounds"], 4)

        code, out, _ = self.run_cli("--account", "uid-123", "--storage", "hybrid", "show")
        self.assertEqual(code, 0)
        self.assertIn("Storage:           local", out)
        self.assertIn("Refinement rounds: 4", out)

    def test_roles(self, *_):
        self.run_cli("refiner", "anthropic/claude-3.5-sonnet")
        self.run_cli("judge", "openai/gpt-4o")
        stored = self.stored_config()
        self.assertEqual(stored["defaultRefinerId"], "anthropic/claude-3.5-sonnet")
        self.assertEqual(stored["defaultJudgeId"], "openai/gpt-4o")

    @patch('modelkombat.integrations.openrouter_client.OpenRouterClient.fetch_model_catalog')
    @patch('modelkombat.integrations.openrouter_client.OpenRouterClient.test_connection')
    def test_set_key_and_list_models(self, mock_test, mock_fetch, *_):
        mock_test.return_value = True
        mock_fetch.return_value = [{"id": "openai/gpt-4o", "name": "GPT-4o"}, {"id": "acme/tiny"}]

        code, out, _ = self.run_cli("set-key", "sk-or-v1-abc")
        self.assertEqual(code, 0)
        self.assertIn("API Key Saved", out)
        self.assertNotEqual(self.stored_config()["openRouterApiKey"], "sk-or-v1-abc")

        code, out, _ = self.run_cli("models", "--group")
        self.assertEqual(code, 0)
        self.assertIn("openai (1)", out)
        self.assertIn("acme (1)", out)

        code, out, _ = self.run_cli("models", "--flagship")
        self.assertIn("openai/gpt-4o *  GPT-4o", out)
        self.assertNotIn("acme/tiny", out)

    @patch('modelkombat.integrations.openrouter_client.OpenRouterClient.fetch_model_catalog')
    @patch('modelkombat.integrations.openrouter_client.OpenRouterClient.test_connection')
    def test_set_key_from_environment(self, mock_test, mock_fetch, *_):
        mock_test.return_value = True
        mock_fetch.return_value = []
        with patch.dict(os.environ, {"OPENROUTER_API_KEY": "sk-or-v1-env"}):
            code, _, _ = self.run_cli("set-key")
        self.assertEqual(code, 0)
        self.assertIn("openRouterApiKey", self.stored_config())

    def test_set_key_missing(self, *_):
        with patch.dict(os.environ):
            os.environ.pop("OPENROUTER_API_KEY", None)
            code, _, err = self.run_cli("set-key")
        self.assertEqual(code, 1)
        self.assertIn("API key must not be empty", err)

    def test_connection_without_key(self, *_):
        code, out, _ = self.run_cli("test")
        self.assertEqual(code, 1)
        self.assertIn("Connection Failed", out)

    def test_refine_without_key(self, *_):
        code, _, err = self.run_cli("refine", "Explain recursion")
        self.assertEqual(code, 1)
        self.assertIn("No API key configured", err)

    def test_clear(self, *_):
        self.run_cli("rounds", "7")
        code, _, _ = self.run_cli("clear")
        self.assertEqual(code, 0)
        with open(self.config_path, "r", encoding="utf-8") as f:
            self.assertNotIn(config.LOCAL_STORAGE_NAMESPACE, json.load(f))


if __name__ == '__main__':
    unittest.main()
