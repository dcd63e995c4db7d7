"""
Tests for structured logging.

  - every record is one parseable JSON line
  - run_id is shared by the run, span_id is stable per experiment
  - level filtering hides DEBUG command lines by default
  - text format for terminals
  - repeated configuration never duplicates output
"""

import io
import json
import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from wex.logging import (
    JSONFormatter, RunLogger, configure_logging, generate_run_id, generate_span_id, get_logger,
)


def _capture(level="DEBUG", fmt="json"):
    buf = io.StringIO()
    configure_logging(level=level, stream=buf, fmt=fmt)
    return buf


def _parse_log_lines(buf):
    return [json.loads(line) for line in buf.getvalue().splitlines() if line.strip()]


class TestIds(unittest.TestCase):

    def test_run_id_format(self):
        run_id = generate_run_id()
        self.assertEqual(len(run_id), 32)
        int(run_id, 16)

    def test_ids_unique(self):
        self.assertEqual(len({generate_run_id() for _ in range(100)}), 100)
        self.assertEqual(len(generate_span_id()), 16)

    def test_run_logger_has_run_id(self):
        self.assertNotEqual(RunLogger().run_id, RunLogger().run_id)
        self.assertEqual(RunLogger(run_id="abc").run_id, "abc")


class TestJsonOutput(unittest.TestCase):

    def tearDown(self):
        configure_logging()

    def test_entry_schema(self):
        buf = _capture()
        run_log = RunLogger(workflow="ci.yml", suite="wex.yaml")
        run_log.on_suite_start(total=2)
        entry = _parse_log_lines(buf)[0]
        for key in ("timestamp", "level", "logger", "message", "service.name", "run_id"):
            self.assertIn(key, entry)
        self.assertEqual(entry["action"], "suite_start")
        self.assertEqual(entry["workflow"], "ci.yml")
        self.assertEqual(entry["suite"], "wex.yaml")
        self.assertEqual(entry["total"], 2)
        self.assertEqual(entry["service.name"], "wex")

    def test_span_stable_per_experiment(self):
        buf = _capture()
        run_log = RunLogger()
        run_log.on_experiment_start(0, "a", "push")
        run_log.on_steps_mutated(0, ["build"])
        run_log.on_experiment_start(1, "b", "push")
        entries = _parse_log_lines(buf)
        self.assertEqual(entries[0]["span_id"], entries[1]["span_id"])
        self.assertNotEqual(entries[0]["span_id"], entries[2]["span_id"])
        self.assertEqual({e["run_id"] for e in entries}, {run_log.run_id})

    def test_every_lifecycle_event_parses(self):
        buf = _capture()
        run_log = RunLogger()
        run_log.on_suite_start(1)
        run_log.on_experiment_start(0, "a", "pull_request")
        run_log.on_trigger_normalized(0, "pull_request")
        run_log.on_steps_mutated(0, ["build"])
        run_log.on_runner_invoked(0, ["act", "push"], "/tmp/x")
        run_log.on_runner_finished(0, 0, False, 1.234, 100)
        run_log.on_assertion_result(0, False, [{"passed": False, "detail": "'deploy' did not run"}])
        run_log.on_experiment_error(0, "boom")
        run_log.on_suite_end(1, 1, 2.0)
        entries = _parse_log_lines(buf)
        self.assertEqual([e["action"] for e in entries], [
            "suite_start", "experiment_start", "trigger_normalized", "steps_mutated",
            "runner_invoked", "runner_finished", "assertion_result", "experiment_error", "suite_end",
        ])
        self.assertEqual(entries[5]["elapsed_s"], 1.23)
        self.assertEqual(entries[6]["failed_checks"], ["'deploy' did not run"])

    def test_timeout_logged_as_warning(self):
        buf = _capture(level="WARNING")
        RunLogger().on_runner_finished(0, None, True, 900.0, 0)
        entry = _parse_log_lines(buf)[0]
        self.assertEqual(entry["level"], "WARNING")
        self.assertTrue(entry["timed_out"])

    def test_exception_fields(self):
        buf = _capture()
        log = get_logger("test")
        try:
            raise ValueError("bad value")
        except ValueError:
            log.exception("failed")
        entry = _parse_log_lines(buf)[0]
        self.assertEqual(entry["exception.type"], "ValueError")
        self.assertEqual(entry["exception.message"], "bad value")

    def test_formatter_service_name(self):
        buf = io.StringIO()
        logger = configure_logging(level="INFO", stream=buf)
        logger.handlers[0].setFormatter(JSONFormatter(service_name="ci"))
        get_logger("x").info("hello")
        self.assertEqual(_parse_log_lines(buf)[0]["service.name"], "ci")


class TestLevels(unittest.TestCase):

    def tearDown(self):
        configure_logging()

    def test_default_level_hides_lifecycle(self):
        buf = _capture(level="WARNING")
        run_log = RunLogger()
        run_log.on_suite_start(1)
        run_log.on_runner_invoked(0, ["act"], "/tmp")
        self.assertEqual(buf.getvalue(), "")

    def test_info_hides_command_lines(self):
        buf = _capture(level="INFO")
        run_log = RunLogger()
        run_log.on_runner_invoked(0, ["act"], "/tmp")
        run_log.on_suite_start(1)
        self.assertEqual([e["action"] for e in _parse_log_lines(buf)], ["suite_start"])

    def test_debug_shows_command_lines(self):
        buf = _capture(level="DEBUG")
        RunLogger().on_runner_invoked(0, ["act", "push"], "/tmp")
        self.assertEqual(_parse_log_lines(buf)[0]["command"], ["act", "push"])

    def test_unknown_level_falls_back_to_warning(self):
        buf = _capture(level="LOUD")
        get_logger("x").info("hidden")
        get_logger("x").warning("shown")
        self.assertEqual([e["message"] for e in _parse_log_lines(buf)], ["shown"])


class TestConfigure(unittest.TestCase):

    def tearDown(self):
        configure_logging()

    def test_text_format(self):
        buf = _capture(fmt="text")
        RunLogger(workflow="ci.yml").on_suite_start(3)
        line = buf.getvalue().strip()
        self.assertTrue(line.startswith("[INFO] suite_start"))
        self.assertIn("total=3", line)
        self.assertNotIn("action=", line)

    def test_reconfigure_does_not_duplicate(self):
        configure_logging(level="INFO", stream=io.StringIO())
        buf = _capture(level="INFO")
        get_logger("x").info("once")
        self.assertEqual(len(_parse_log_lines(buf)), 1)

    def test_child_loggers_share_root(self):
        self.assertEqual(get_logger("driver").name, "wex.driver")
        self.assertEqual(get_logger().name, "wex")


if __name__ == "__main__":
    unittest.main()
