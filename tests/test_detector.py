import os
import sys
import unittest


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))


from tagwatch.detector import ChangeDetector, decide  # noqa: E402
from tagwatch.models import Decision  # noqa: E402


class TestDecide(unittest.TestCase):
    def test_all_cases(self) -> None:
        cases = [
            (None, None, Decision.UNCHANGED),
            ("v1", None, Decision.UNCHANGED),
            ("v1", "v1", Decision.UNCHANGED),
            (None, "v1", Decision.FIRST_SEEN),
            ("v1", "v2", Decision.ADVANCED),
        ]
        for last_seen, observed, expected in cases:
            with self.subTest(last_seen=last_seen, observed=observed):
                self.assertIs(decide(last_seen, observed), expected)

    def test_older_looking_tag_is_still_advanced(self) -> None:
        self.assertIs(decide("v2.0.0", "v1.9.9"), Decision.ADVANCED)

    def test_comparison_is_plain_string_equality(self) -> None:
        self.assertIs(decide("v1.0", "V1.0"), Decision.ADVANCED)
        self.assertIs(decide("1.0", "1.0.0"), Decision.ADVANCED)


class TestChangeDetector(unittest.TestCase):
    def test_unchanged_has_no_event_and_no_commit(self) -> None:
        d = ChangeDetector().evaluate("o/r", "v1", "v1")
        self.assertIs(d.decision, Decision.UNCHANGED)
        self.assertIsNone(d.event)
        self.assertIsNone(d.commit)

    def test_missing_observation_never_clears_state(self) -> None:
        d = ChangeDetector().evaluate("o/r", "v1", None)
        self.assertIs(d.decision, Decision.UNCHANGED)
        self.assertIsNone(d.commit)

    def test_first_seen_records_baseline_silently_by_default(self) -> None:
        d = ChangeDetector().evaluate("o/r", None, "v1")
        self.assertIs(d.decision, Decision.FIRST_SEEN)
        self.assertIsNone(d.event)
        self.assertEqual(d.commit, "v1")

    def test_first_seen_notifies_when_enabled(self) -> None:
        d = ChangeDetector(notify_on_first_seen=True).evaluate("o/r", None, "v1")
        self.assertIs(d.decision, Decision.FIRST_SEEN)
        assert d.event is not None
        self.assertEqual(d.event.tag, "v1")
        self.assertIsNone(d.event.previous_tag)
        self.assertEqual(d.commit, "v1")

    def test_advanced_builds_event_with_deep_link(self) -> None:
        d = ChangeDetector().evaluate("o/r", "v1", "v2")
        self.assertIs(d.decision, Decision.ADVANCED)
        assert d.event is not None
        self.assertEqual(d.event.repo, "o/r")
        self.assertEqual(d.event.tag, "v2")
        self.assertEqual(d.event.previous_tag, "v1")
        self.assertEqual(d.event.url, "https://github.com/o/r/releases/tag/v2")
        self.assertIn("*o/r*", d.event.text)
        self.assertIn("`v2`", d.event.text)
        self.assertEqual(d.commit, "v2")

    def test_custom_web_base(self) -> None:
        d = ChangeDetector(web_base="https://ghe.example.com/").evaluate("o/r", "v1", "v2")
        assert d.event is not None
        self.assertEqual(d.event.url, "https://ghe.example.com/o/r/releases/tag/v2")
