import json
import logging
import os
import tempfile
import unittest

from learnflow.common.config import AppConfig, ConfigLoader
from learnflow.common.exceptions import ConfigurationError
from learnflow.common.logger import JsonFormatter, redact


class TestConfigLoader(unittest.TestCase):
    """Test configuration loading from files and environment."""

    def test_defaults(self):
        config = ConfigLoader(environ={}).load()
        self.assertIsInstance(config, AppConfig)
        self.assertEqual(config.telemetry.file_path, "data/telemetry.jsonl")
        self.assertEqual(config.cache.teacher_ttl, 60)
        self.assertEqual(config.cache.institution_ttl, 120)
        self.assertEqual(config.cache.system_health_ttl, 10)
        self.assertEqual(config.api.prefix, "/api")
        self.assertFalse(config.is_production)

    def test_environment_overrides(self):
        config = ConfigLoader(environ={
            "TELEMETRY_FILE": "/tmp/events.jsonl",
            "TELEMETRY_RETENTION_DAYS": "30",
            "CACHE_ENABLED": "false",
            "ALLOW_ORIGINS": "http://a.test, http://b.test",
            "LOG_LEVEL": "debug",
            "ENV": "Production",
        }).load()

        self.assertEqual(config.telemetry.file_path, "/tmp/events.jsonl")
        self.assertEqual(config.telemetry.retention_days, 30)
        self.assertFalse(config.cache.enabled)
        self.assertEqual(config.api.allow_origins, ["http://a.test", "http://b.test"])
        self.assertEqual(config.logging.level, "DEBUG")
        self.assertTrue(config.is_production)

    def test_yaml_file_with_env_priority(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "config.yaml")
            with open(path, "w") as f:
                f.write("cache:\n  teacher_ttl: 5\n  topic_ttl: 7\nmetrics:\n  prefix: custom\n")

            config = ConfigLoader(config_path=path, environ={"CACHE_TOPIC_TTL": "9"}).load()

        self.assertEqual(config.cache.teacher_ttl, 5)
        self.assertEqual(config.cache.topic_ttl, 9)
        self.assertEqual(config.metrics.prefix, "custom")

    def test_missing_file_uses_defaults(self):
        config = ConfigLoader(config_path="/nonexistent/config.yaml", environ={}).load()
        self.assertEqual(config.cache.teacher_ttl, 60)

    def test_invalid_values_raise(self):
        with self.assertRaises(ConfigurationError):
            ConfigLoader(environ={"TELEMETRY_RETENTION_DAYS": "0"}).load()
        with self.assertRaises(ConfigurationError):
            ConfigLoader(environ={"LOG_LEVEL": "LOUD"}).load()


class TestLogging(unittest.TestCase):

    def test_redact_nested(self):
        data = {"student_id": "s1", "path": "/x", "nested": {"Authorization": "Bearer t", "ok": 1}}
        self.assertEqual(redact(data), {"path": "/x", "nested": {"ok": 1}})

    def test_json_formatter_merges_redacted_data(self):
        record = logging.LogRecord("learnflow.test", logging.INFO, __file__, 10, "hello", None, None)
        record.data = {"endpoint": "/api/chat", "student_id": "raw"}

        output = json.loads(JsonFormatter().format(record))
        self.assertEqual(output["message"], "hello")
        self.assertEqual(output["endpoint"], "/api/chat")
        self.assertNotIn("student_id", output)
