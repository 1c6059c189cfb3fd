import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from lumen.config.loader import ENV_KEYS, get_config, merge_env
from lumen.config.settings import Settings
from lumen.config.validator import ConfigValidationError, validate_config


class TestValidateConfig(unittest.TestCase):
    def test_empty_config_is_valid_with_warnings(self):
        with self.assertLogs("lumen.config.validator", level="WARNING") as logs:
            validate_config({})
        joined = "\n".join(logs.output)
        self.assertIn("OPENAI_API_KEY not set", joined)
        self.assertIn("QDRANT_URL not set", joined)

    def test_missing_token_only_fails_when_required(self):
        with self.assertLogs("lumen.config.validator", level="ERROR"):
            with self.assertRaises(ConfigValidationError):
                validate_config({}, require_token=True)

    def test_bad_numbers_are_reported(self):
        cfg = {"kb_chunk_size": "big", "user_per_day": 0, "kb_chunk_overlap": -1, "kb_min_score": "x"}
        with self.assertLogs("lumen.config.validator", level="ERROR") as logs:
            with self.assertRaises(ConfigValidationError) as cm:
                validate_config(cfg)
        self.assertIn("4 error(s)", str(cm.exception))
        self.assertTrue(any("'kb_chunk_size' must be an integer" in line for line in logs.output))

    def test_unknown_distance_rejected(self):
        with self.assertLogs("lumen.config.validator", level="ERROR"):
            with self.assertRaises(ConfigValidationError):
                validate_config({"kb_distance": "Hamming"})

    def test_timeout_must_beat_interaction_expiry(self):
        with self.assertLogs("lumen.config.validator", level="ERROR"):
            with self.assertRaises(ConfigValidationError):
                validate_config({"llm_timeout_ms": 16 * 60 * 1000})

    def test_overlap_not_smaller_than_chunk_is_only_a_warning(self):
        with self.assertLogs("lumen.config.validator", level="WARNING") as logs:
            validate_config({"kb_chunk_size": 100, "kb_chunk_overlap": 100})
        self.assertTrue(any("clamped to 99" in line for line in logs.output))

    def test_admin_ids_must_be_numeric(self):
        with self.assertLogs("lumen.config.validator", level="ERROR"):
            with self.assertRaises(ConfigValidationError):
                validate_config({"admin_ids": ["123", "abc"]})


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        s = Settings()
        self.assertEqual((s.global_per_day, s.user_per_day, s.elevated_per_day), (50, 5, 20))
        self.assertEqual(s.kb_min_score, 0.18)
        self.assertEqual(s.kb_timeout, 25.0)
        self.assertEqual(s.llm_timeout, 35.0)

    def test_from_config_coerces_env_strings(self):
        s = Settings.from_config({
            "kb_min_score": "0.25",
            "user_per_day": "7",
            "owner_id": "1234",
            "admin_ids": "1, 2",
            "allowed_pro_roles": "Admin, Helper",
            "openai_api_key": "sk-test",
            "something_else": True,
        })
        self.assertEqual(s.kb_min_score, 0.25)
        self.assertEqual(s.user_per_day, 7)
        self.assertEqual(s.owner_id, 1234)
        self.assertEqual(s.admin_ids, (1, 2))
        self.assertEqual(s.allowed_pro_roles, ("Admin", "Helper"))
        self.assertEqual(s.effective_embedding_key, "sk-test")
        self.assertEqual(s.extra, {"something_else": True})

    def test_embedding_key_override(self):
        s = Settings(openai_api_key="chat", embedding_api_key="embed")
        self.assertEqual(s.effective_embedding_key, "embed")


class TestLoader(unittest.TestCase):
    def test_environment_overrides_file(self):
        merged = merge_env({"kb_collection": "file_kb", "chat_model": "m1"}, {"KB_COLLECTION": "env_kb", "CHAT_MODEL": ""})
        self.assertEqual(merged["kb_collection"], "env_kb")
        self.assertEqual(merged["chat_model"], "m1")

    def test_get_config_reads_yaml_and_env(self):
        clean_env = {k: v for k, v in os.environ.items() if k not in ENV_KEYS}
        clean_env["QDRANT_URL"] = ":memory:"
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text("kb_collection: docs\nuser_per_day: 9\nallowed_pro_roles: [Pro]\n", encoding="utf-8")
            with patch.dict(os.environ, clean_env, clear=True), patch("lumen.config.loader.load_dotenv"):
                s = get_config(str(path))

        self.assertEqual(s.kb_collection, "docs")
        self.assertEqual(s.user_per_day, 9)
        self.assertEqual(s.allowed_pro_roles, ("Pro",))
        self.assertEqual(s.qdrant_url, ":memory:")

    def test_missing_file_means_environment_only(self):
        clean_env = {k: v for k, v in os.environ.items() if k not in ENV_KEYS}
        with patch.dict(os.environ, clean_env, clear=True), patch("lumen.config.loader.load_dotenv"):
            s = get_config("/nonexistent/config.yaml")
        self.assertEqual(s, Settings())

    def test_invalid_config_exits(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text("kb_distance: Hamming\n", encoding="utf-8")
            with patch("lumen.config.loader.load_dotenv"), self.assertLogs(level="ERROR"):
                with self.assertRaises(SystemExit) as cm:
                    get_config(str(path))
        self.assertEqual(cm.exception.code, 1)


if __name__ == "__main__":
    unittest.main()
