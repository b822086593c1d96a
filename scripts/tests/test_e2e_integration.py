#!/usr/bin/env python3
"""
End-to-end integration tests for the typing analytics system.

Tests the complete pipeline from event capture through session lifecycle,
analytics computation, export and reporting.

Run with: python3 -m pytest scripts/tests/test_e2e_integration.py -v
Or: python3 scripts/tests/test_e2e_integration.py
"""

import unittest
import io
import json
import tempfile
from contextlib import redirect_stdout, redirect_stderr
from pathlib import Path
from datetime import datetime, timezone, timedelta
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tracking import EventQueryFilters, SessionAlreadySubmitted
from tracking.recorder import SessionRecorder, InvalidBatch
from metrics import MetricsEngine, get_default_registry
from metrics.cli import main as cli_main
from metrics.formatters import MarkdownFormatter
from metrics.jsonl_utils import JSONLReader, JSONLWriter


BASE = datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


def wire(event_type, offset_ms, **fields):
    """Build a capture-layer event dictionary."""
    data = {
        "eventType": event_type,
        "timestamp": (BASE + timedelta(milliseconds=offset_ms)).isoformat().replace("+00:00", "Z"),
    }
    data.update(fields)
    return data


def typed_text(text, start_ms, step_ms=120, prefix=""):
    """Keydown events for each character, with the growing text attached."""
    events = []
    for i, char in enumerate(text):
        events.append(wire(
            "keydown", start_ms + i * step_ms,
            keyChar=char, keyCode=ord(char),
            textBefore=prefix + text[:i], textAfter=prefix + text[:i + 1],
        ))
    return events


class TestFullPipeline(unittest.TestCase):
    """Test complete capture -> session -> analytics -> report pipeline."""

    def setUp(self):
        """Set up a recorder with one session of sample activity."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.recorder = SessionRecorder()
        self.session = self.recorder.start_session(
            "proj-1", "student-42", ip_address="127.0.0.1", user_agent="pytest"
        )

        self.first_batch = [wire("focus", 0)] + typed_text("hello", 500)
        self.second_batch = (
            [wire("delete", 1400, textBefore="hello", textAfter="hell")]
            + typed_text("o world", 4500, prefix="hell")
            + [wire("paste", 5500, metadata={"pastedText": "!!!"}, textAfter="hello world!!!")]
            + [wire("blur", 6000, textAfter="hello world!!!")]
        )

    def tearDown(self):
        self.temp_dir.cleanup()

    def _ingest_all(self):
        self.recorder.ingest({"sessionId": self.session.id, "events": self.first_batch}, "proj-1")
        self.recorder.ingest({"sessionId": self.session.id, "events": self.second_batch}, "proj-1")

    def test_ingest_and_analyze(self):
        """Test analytics over a realistic session."""
        self._ingest_all()
        analytics = self.recorder.analytics(self.session.id)

        self.assertEqual(tuple(analytics), get_default_registry().ids())
        self.assertEqual(analytics["totalKeystrokes"], 12)
        self.assertEqual(analytics["deletionCount"], 1)
        self.assertEqual(analytics["errorCorrectionSequences"], 1)
        self.assertEqual(analytics["pasteCount"], 1)
        self.assertEqual(analytics["focusChangeCount"], 2)
        self.assertEqual(analytics["pauseCount"], 1)
        self.assertAlmostEqual(analytics["longestPause"], 3520.0)
        self.assertEqual(analytics["characterCount"], 14)
        self.assertEqual(analytics["wordCount"], 3)
        self.assertAlmostEqual(analytics["sessionDuration"], 6000.0)
        self.assertAlmostEqual(analytics["pasteRatio"], 3 / 14 * 100)

    def test_analytics_memoized_until_events_change(self):
        """Test unchanged sessions reuse their analytics."""
        self.recorder.ingest({"sessionId": self.session.id, "events": self.first_batch})

        first = self.recorder.analytics(self.session.id)
        self.assertIs(self.recorder.analytics(self.session.id), first)

        self.recorder.ingest({"sessionId": self.session.id, "events": self.second_batch})
        second = self.recorder.analytics(self.session.id)
        self.assertIsNot(second, first)
        self.assertEqual(first["totalKeystrokes"], 5)
        self.assertEqual(second["totalKeystrokes"], 12)

        self.recorder.reset_analytics(self.session.id)
        third = self.recorder.analytics(self.session.id)
        self.assertIsNot(third, second)
        self.assertEqual(third, second)

    def test_submission_lifecycle(self):
        """Test submit, repeated submit and late events."""
        self._ingest_all()
        session = self.recorder.submit(self.session.id, "proj-1")

        self.assertTrue(session.submitted)
        self.assertEqual(session.session_end, session.submission_time)

        with self.assertRaises(SessionAlreadySubmitted):
            self.recorder.submit(self.session.id)

        with redirect_stderr(io.StringIO()) as stderr:
            late = self.recorder.ingest({
                "sessionId": self.session.id,
                "events": [wire("keydown", 7000, keyChar="?")],
            })
        self.assertEqual(len(late), 1)
        self.assertIn("Accepted 1 late events", stderr.getvalue())
        self.assertEqual(self.recorder.session_stats(self.session.id).event_count, 17)

    def test_batch_validation(self):
        """Test rejected batches leave the session untouched."""
        self._ingest_all()

        with self.assertRaises(InvalidBatch):
            self.recorder.ingest({"sessionId": self.session.id, "events": []})

        self.assertEqual(self.recorder.session_stats(self.session.id).event_count, 16)

    def test_late_delivered_batch_merged(self):
        """Test a batch captured earlier but delivered last is merged in order."""
        self.recorder.ingest({"sessionId": self.session.id, "events": self.second_batch})
        self.recorder.submit(self.session.id)

        with redirect_stderr(io.StringIO()):
            self.recorder.ingest({"sessionId": self.session.id, "events": self.first_batch})

        events = self.recorder.get_session(self.session.id).events
        self.assertEqual(len(events), 16)
        self.assertEqual(events[0].event_type.value, "focus")
        self.assertEqual(events[-1].event_type.value, "blur")
        self.assertEqual([e.timestamp for e in events], sorted(e.timestamp for e in events))

        reference = SessionRecorder()
        ordered = reference.start_session("proj-1", "student-42")
        reference.ingest({"sessionId": ordered.id, "events": self.first_batch})
        reference.ingest({"sessionId": ordered.id, "events": self.second_batch})
        self.assertEqual(self.recorder.analytics(self.session.id), reference.analytics(ordered.id))

    def test_query_by_user_and_type(self):
        """Test historical queries across sessions."""
        self._ingest_all()
        other = self.recorder.start_session("proj-1", "student-7")
        self.recorder.ingest({"sessionId": other.id, "events": typed_text("hi", 0)})

        filters = EventQueryFilters(project_id="proj-1", external_user_id="student-42",
                                    event_types=["paste", "delete"])
        events = self.recorder.query_events(filters)

        self.assertEqual([e.event_type.value for e in events], ["delete", "paste"])
        self.assertTrue(all(e.session_id == self.session.id for e in events))

    def test_export_and_cli_agree_with_recorder(self):
        """Test exported events reproduce the same analytics via the CLI."""
        self._ingest_all()
        export = Path(self.temp_dir.name) / "export" / "events.jsonl"

        query = EventQueryFilters(session_id=self.session.id)
        JSONLWriter(export).append_batch([e.to_dict() for e in self.recorder.query_events(query)])

        loaded = JSONLReader.read_events(export)
        self.assertEqual(len(loaded), 16)
        self.assertEqual(MetricsEngine().run(loaded), self.recorder.analytics(self.session.id))

        stdout = io.StringIO()
        with redirect_stdout(stdout):
            code = cli_main([str(export), "--session-id", self.session.id, "--format", "json"])

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(stdout.getvalue()), self.recorder.analytics(self.session.id))

    def test_markdown_report(self):
        """Test report generation from session analytics."""
        self._ingest_all()
        analytics = self.recorder.analytics(self.session.id)

        report = MarkdownFormatter.format(analytics, get_default_registry(), title="Session Report")

        self.assertIn("# Session Report", report)
        for heading in ("## Speed", "## Timing", "## Behavior", "## Quality", "## Session"):
            self.assertIn(heading, report)
        self.assertIn("| Session Duration | 6s |", report)
        self.assertIn("| Total Keystrokes | 12 |", report)
        self.assertNotIn("not computed", report)


if __name__ == "__main__":
    unittest.main()
