"""Tests for the document accessor: YAML loading, dumping and path addressing."""

import os
import sys
import tempfile
import unittest
from pathlib import Path

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from wex.document import (
    delete_path, dump_document, find_step, get_path, has_path, iter_steps,
    load_document, parse_document, save_document, set_path,
)
from wex.errors import ConfigError


WORKFLOW = """\
name: CI
on:
  push:
    branches: [main]
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - id: compile
        run: make
  deploy:
    needs: build
    runs-on: ubuntu-latest
    steps:
      - id: publish
        uses: some/deploy-action@v1
        with:
          token: abc
"""


class TestYamlQuirks(unittest.TestCase):
    """`on`, `yes` and `no` must survive as strings."""

    def test_on_key_stays_string(self):
        doc = parse_document(WORKFLOW)
        self.assertIn("on", doc)
        self.assertNotIn(True, doc)

    def test_yes_no_values_stay_strings(self):
        doc = parse_document("a: yes\nb: no\nc: off\n")
        self.assertEqual(doc, {"a": "yes", "b": "no", "c": "off"})

    def test_true_false_still_booleans(self):
        doc = parse_document("a: true\nb: False\n")
        self.assertIs(doc["a"], True)
        self.assertIs(doc["b"], False)

    def test_dump_writes_unquoted_on(self):
        out = dump_document({"on": "push"})
        self.assertEqual(out, "on: push\n")

    def test_dump_preserves_key_order(self):
        out = dump_document({"name": "CI", "on": "push", "jobs": {}})
        self.assertLess(out.index("name"), out.index("on:"))
        self.assertLess(out.index("on:"), out.index("jobs"))

    def test_multiline_string_uses_block_style(self):
        out = dump_document({"run": "echo a\necho b"})
        self.assertIn("|", out)
        self.assertEqual(parse_document(out), {"run": "echo a\necho b"})

    def test_json_is_accepted(self):
        doc = parse_document('{"experiments": [{"it": "x", "push": {}}]}')
        self.assertEqual(doc["experiments"][0]["it"], "x")


class TestLoadSave(unittest.TestCase):

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmpdir.name)

    def tearDown(self):
        self._tmpdir.cleanup()

    def test_missing_file(self):
        with self.assertRaises(ConfigError) as ctx:
            load_document(self.tmp / "nope.yml")
        self.assertIn("does not exist", str(ctx.exception))

    def test_invalid_yaml(self):
        p = self.tmp / "bad.yml"
        p.write_text("jobs: [unclosed\n")
        with self.assertRaises(ConfigError) as ctx:
            load_document(p)
        self.assertIn("invalid YAML", str(ctx.exception))

    def test_save_then_load(self):
        p = self.tmp / "wf.yml"
        doc = parse_document(WORKFLOW)
        save_document(doc, p)
        self.assertEqual(load_document(p), doc)

    def test_empty_file_is_none(self):
        p = self.tmp / "empty.yml"
        p.write_text("")
        self.assertIsNone(load_document(p))


class TestPaths(unittest.TestCase):

    def setUp(self):
        self.doc = parse_document(WORKFLOW)

    def test_get_nested(self):
        self.assertEqual(get_path(self.doc, ("jobs", "build", "steps", 1, "run")), "make")

    def test_get_missing_returns_default(self):
        self.assertIsNone(get_path(self.doc, ("jobs", "nope", "steps")))
        self.assertEqual(get_path(self.doc, ("jobs", "build", "steps", 9), "x"), "x")

    def test_get_through_scalar_is_missing(self):
        self.assertIsNone(get_path(self.doc, ("name", "child")))

    def test_has_path(self):
        self.assertTrue(has_path(self.doc, ("on", "push")))
        self.assertFalse(has_path(self.doc, ("on", "pull_request")))

    def test_set_existing(self):
        set_path(self.doc, ("jobs", "build", "steps", 1, "run"), "make test")
        self.assertEqual(self.doc["jobs"]["build"]["steps"][1]["run"], "make test")

    def test_set_creates_mappings(self):
        set_path(self.doc, ("env", "CI", "flag"), "1")
        self.assertEqual(self.doc["env"], {"CI": {"flag": "1"}})

    def test_set_root_rejected(self):
        with self.assertRaises(ValueError):
            set_path(self.doc, (), {})

    def test_set_on_scalar_rejected(self):
        with self.assertRaises(KeyError):
            set_path(self.doc, ("name", "x"), 1)

    def test_delete(self):
        self.assertTrue(delete_path(self.doc, ("jobs", "deploy", "steps", 0, "with")))
        self.assertNotIn("with", self.doc["jobs"]["deploy"]["steps"][0])

    def test_delete_missing(self):
        self.assertFalse(delete_path(self.doc, ("jobs", "deploy", "steps", 0, "shell")))

    def test_delete_list_item(self):
        self.assertTrue(delete_path(self.doc, ("jobs", "build", "steps", 0)))
        self.assertEqual(len(self.doc["jobs"]["build"]["steps"]), 1)


class TestStepQueries(unittest.TestCase):

    def setUp(self):
        self.doc = parse_document(WORKFLOW)

    def test_iter_steps_in_order(self):
        paths = [p for p, _ in iter_steps(self.doc)]
        self.assertEqual(paths, [
            ("jobs", "build", "steps", 0),
            ("jobs", "build", "steps", 1),
            ("jobs", "deploy", "steps", 0),
        ])

    def test_find_step_in_other_job(self):
        self.assertEqual(find_step(self.doc, "publish"), ("jobs", "deploy", "steps", 0))

    def test_find_step_missing(self):
        self.assertIsNone(find_step(self.doc, "nope"))

    def test_iter_steps_tolerates_jobs_without_steps(self):
        doc = {"jobs": {"call": {"uses": "org/repo/.github/workflows/x.yml@main"}}}
        self.assertEqual(list(iter_steps(doc)), [])

    def test_iter_steps_without_jobs(self):
        self.assertEqual(list(iter_steps({"on": "push"})), [])


if __name__ == "__main__":
    unittest.main()
