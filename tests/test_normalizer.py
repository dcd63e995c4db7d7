"""Tests for reusable-workflow detection and trigger normalization."""

import copy
import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from wex.document import dump_document, parse_document
from wex.normalizer import get_trigger, is_reusable, normalize


REUSABLE = """\
name: Reusable build
on:
  workflow_call:
    inputs:
      environment:
        type: string
        required: true
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - id: build
        run: make
"""


class TestIsReusable(unittest.TestCase):

    def test_callable_only_trigger(self):
        self.assertTrue(is_reusable(parse_document(REUSABLE)))

    def test_callable_trigger_without_body(self):
        self.assertTrue(is_reusable({"on": {"workflow_call": None}}))

    def test_first_key_decides(self):
        self.assertFalse(is_reusable({"on": {"push": None, "workflow_call": None}}))
        self.assertTrue(is_reusable({"on": {"workflow_call": None, "push": None}}))

    def test_string_trigger_is_not_reusable(self):
        self.assertFalse(is_reusable({"on": "workflow_call"}))
        self.assertFalse(is_reusable({"on": "push"}))

    def test_list_trigger_is_not_reusable(self):
        self.assertFalse(is_reusable({"on": ["workflow_call", "push"]}))

    def test_no_trigger(self):
        self.assertFalse(is_reusable({"jobs": {}}))
        self.assertFalse(is_reusable({"on": {}}))
        self.assertFalse(is_reusable(None))

    def test_boolean_on_key(self):
        """Documents parsed with plain YAML 1.1 carry `on` as True."""
        self.assertTrue(is_reusable({True: {"workflow_call": None}, "jobs": {}}))


class TestNormalize(unittest.TestCase):

    def test_rewrites_to_literal_event(self):
        doc = parse_document(REUSABLE)
        normalize(doc, "pull_request")
        self.assertEqual(doc["on"], "pull_request")
        self.assertFalse(is_reusable(doc))
        self.assertIn("on: pull_request\n", dump_document(doc))

    def test_staged_round_trip(self):
        doc = parse_document(REUSABLE)
        normalize(doc, "pull_request")
        self.assertEqual(get_trigger(parse_document(dump_document(doc))), "pull_request")

    def test_idempotent_same_event(self):
        doc = parse_document(REUSABLE)
        normalize(doc, "push")
        once = dump_document(doc)
        normalize(doc, "push")
        self.assertEqual(dump_document(doc), once)

    def test_renormalize_other_event_keeps_one_key(self):
        doc = parse_document(REUSABLE)
        normalize(doc, "push")
        normalize(doc, "pull_request")
        self.assertEqual(doc["on"], "pull_request")
        self.assertEqual(list(doc).count("on"), 1)

    def test_key_position_preserved(self):
        doc = parse_document(REUSABLE)
        normalize(doc, "push")
        self.assertEqual(list(doc), ["name", "on", "jobs"])

    def test_boolean_on_key_replaced_in_place(self):
        doc = {"name": "x", True: {"workflow_call": None}, "jobs": {}}
        normalize(doc, "push")
        self.assertEqual(list(doc), ["name", "on", "jobs"])
        self.assertEqual(doc["on"], "push")
        self.assertNotIn(True, doc)

    def test_missing_trigger_is_added(self):
        doc = {"jobs": {}}
        normalize(doc, "push")
        self.assertEqual(doc["on"], "push")

    def test_other_keys_untouched(self):
        doc = parse_document(REUSABLE)
        jobs = copy.deepcopy(doc["jobs"])
        normalize(doc, "push")
        self.assertEqual(doc["jobs"], jobs)

    def test_rejects_non_mapping(self):
        with self.assertRaises(TypeError):
            normalize(["on"], "push")


if __name__ == "__main__":
    unittest.main()
