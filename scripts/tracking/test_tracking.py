#!/usr/bin/env python3
"""
Tests for the tracking event model, session lifecycle and recorder.

Run with: python3 -m pytest scripts/tracking/test_tracking.py -v
Or: python3 scripts/tracking/test_tracking.py
"""

import unittest
import io
import sys
from pathlib import Path
from contextlib import redirect_stderr
from datetime import datetime, timezone, timedelta
from unittest.mock import patch

if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent.parent))

from tracking.schema import (
    EventType,
    TrackerEvent,
    Event,
    EventBatchInput,
    EventQueryFilters,
    MalformedEvent,
    FORMATTING_EVENTS,
    FIND_REPLACE_EVENTS,
    parse_timestamp,
)
from tracking.session import Session, SessionState, SessionAlreadySubmitted
from tracking.recorder import (
    SessionRecorder,
    InvalidBatch,
    SessionNotFound,
    SessionProjectMismatch,
)

BASE = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_event(event_type, offset_ms=0, **fields):
    return TrackerEvent(
        event_type=EventType(event_type),
        timestamp=BASE + timedelta(milliseconds=offset_ms),
        **fields
    )


class TestEventType(unittest.TestCase):
    """Test the event type enumeration."""

    def test_wire_values(self):
        """Test that wire strings map to members."""
        self.assertEqual(EventType("keydown"), EventType.KEYDOWN)
        self.assertEqual(EventType("replace-all"), EventType.REPLACE_ALL)
        self.assertEqual(EventType("clear-formatting"), EventType.CLEAR_FORMATTING)
        self.assertEqual(str(EventType.LIST_CREATE), "list-create")

    def test_enumeration_size(self):
        self.assertEqual(len(EventType), 38)

    def test_groups(self):
        """Test category groupings are disjoint where expected."""
        self.assertIn(EventType.BOLD, FORMATTING_EVENTS)
        self.assertIn(EventType.FIND_NEXT, FIND_REPLACE_EVENTS)
        self.assertFalse(FORMATTING_EVENTS & FIND_REPLACE_EVENTS)


class TestTrackerEventParsing(unittest.TestCase):
    """Test parsing of wire events."""

    def test_parse_full_event(self):
        """Test parsing every optional field."""
        event = TrackerEvent.from_dict({
            "eventType": "keydown",
            "timestamp": "2024-03-01T12:00:00.250Z",
            "targetElement": "textarea#answer",
            "keyCode": 65,
            "keyChar": "a",
            "textBefore": "",
            "textAfter": "a",
            "cursorPosition": 1,
            "selectionStart": 1,
            "selectionEnd": 1,
            "metadata": {"field": "q1"},
        })

        self.assertEqual(event.event_type, EventType.KEYDOWN)
        self.assertEqual(event.timestamp, BASE + timedelta(milliseconds=250))
        self.assertEqual(event.key_code, "65")
        self.assertEqual(event.key_char, "a")
        self.assertEqual(event.cursor_position, 1)
        self.assertEqual(event.metadata, {"field": "q1"})

    def test_partial_event(self):
        """Test that irrelevant fields may be absent."""
        event = TrackerEvent.from_dict({"eventType": "blur", "timestamp": 1709294400000})

        self.assertEqual(event.event_type, EventType.BLUR)
        self.assertEqual(event.timestamp, BASE)
        self.assertIsNone(event.key_char)
        self.assertEqual(event.metadata, {})

    def test_unknown_event_type(self):
        with self.assertRaises(MalformedEvent):
            TrackerEvent.from_dict({"eventType": "mousemove", "timestamp": 0})

    def test_missing_timestamp(self):
        with self.assertRaises(MalformedEvent):
            TrackerEvent.from_dict({"eventType": "keydown"})

    def test_bad_timestamp(self):
        with self.assertRaises(MalformedEvent):
            TrackerEvent.from_dict({"eventType": "keydown", "timestamp": "yesterday"})

    def test_negative_cursor(self):
        with self.assertRaises(MalformedEvent):
            TrackerEvent.from_dict({"eventType": "select", "timestamp": 0, "cursorPosition": -1})

    def test_naive_timestamp_is_utc(self):
        self.assertEqual(parse_timestamp("2024-03-01T12:00:00"), BASE)

    def test_to_dict_omits_absent_fields(self):
        """Test wire serialization."""
        event = make_event("paste", 0, metadata={"pastedText": "hi"})
        data = event.to_dict()

        self.assertEqual(data["eventType"], "paste")
        self.assertEqual(data["metadata"], {"pastedText": "hi"})
        self.assertNotIn("keyChar", data)
        self.assertEqual(TrackerEvent.from_dict(data), event)

    def test_events_are_immutable(self):
        event = make_event("keydown")
        with self.assertRaises(AttributeError):
            event.key_char = "x"


class TestEventIdentity(unittest.TestCase):
    """Test persisted events."""

    def test_from_tracker_event(self):
        """Test identity fields are attached."""
        event = Event.from_tracker_event(make_event("keydown", key_char="a"), "s1", "p1")

        self.assertTrue(event.id)
        self.assertEqual(event.session_id, "s1")
        self.assertEqual(event.project_id, "p1")
        self.assertIsNotNone(event.created_at)
        self.assertEqual(event.key_char, "a")

        data = event.to_dict()
        self.assertEqual(data["sessionId"], "s1")
        self.assertEqual(data["projectId"], "p1")

    def test_unique_ids(self):
        tracker_event = make_event("keydown")
        first = Event.from_tracker_event(tracker_event, "s1", "p1")
        second = Event.from_tracker_event(tracker_event, "s1", "p1")
        self.assertNotEqual(first.id, second.id)


class TestEventQueryFilters(unittest.TestCase):
    """Test query filters."""

    def setUp(self):
        self.events = [
            Event.from_tracker_event(make_event("keydown", 0), "s1", "p1"),
            Event.from_tracker_event(make_event("paste", 1000), "s1", "p1"),
            Event.from_tracker_event(make_event("keydown", 2000), "s2", "p1"),
            Event.from_tracker_event(make_event("keydown", 3000), "s3", "p2"),
        ]

    def test_filter_by_type_and_project(self):
        filters = EventQueryFilters(project_id="p1", event_types=["keydown"])
        selected = filters.apply(self.events)
        self.assertEqual([e.session_id for e in selected], ["s1", "s2"])

    def test_date_range(self):
        filters = EventQueryFilters(
            start_date=BASE + timedelta(milliseconds=500),
            end_date=BASE + timedelta(milliseconds=2000),
        )
        self.assertEqual(len(filters.apply(self.events)), 2)

    def test_limit_offset(self):
        filters = EventQueryFilters(limit=2, offset=1)
        selected = filters.apply(self.events)
        self.assertEqual([e.session_id for e in selected], ["s1", "s2"])
        self.assertEqual(selected[0].event_type, EventType.PASTE)

    def test_external_user_needs_owner(self):
        filters = EventQueryFilters(external_user_id="u1")
        self.assertEqual(filters.apply(self.events), [])
        owners = {"s1": "u1", "s2": "u2", "s3": "u1"}
        selected = filters.apply(self.events, owner_of=lambda e: owners[e.session_id])
        self.assertEqual(len(selected), 3)

    def test_invalid_range(self):
        with self.assertRaises(ValueError):
            EventQueryFilters(start_date=BASE, end_date=BASE - timedelta(days=1))

    def test_negative_limit(self):
        with self.assertRaises(ValueError):
            EventQueryFilters(limit=-1)


class TestSessionLifecycle(unittest.TestCase):
    """Test session append and submission."""

    def setUp(self):
        self.session = Session(project_id="p1", external_user_id="u1", session_start=BASE)

    def test_initial_state(self):
        self.assertEqual(self.session.state, SessionState.OPEN)
        self.assertFalse(self.session.submitted)
        self.assertEqual(self.session.events, ())

    def test_append_resequences_batch(self):
        """Test that a batch is sorted by timestamp on ingestion."""
        created = self.session.append([make_event("keyup", 200), make_event("keydown", 100)])

        self.assertEqual([e.event_type for e in created], [EventType.KEYDOWN, EventType.KEYUP])
        self.assertEqual(len(self.session.events), 2)
        self.assertTrue(all(e.session_id == self.session.id for e in self.session.events))

    def test_append_changes_sequence_identity(self):
        self.session.append([make_event("keydown", 0)])
        before = self.session.events
        self.session.append([make_event("keydown", 10)])
        self.assertIsNot(before, self.session.events)
        self.assertEqual(len(before), 1)

    def test_earlier_batch_merged_in_timestamp_order(self):
        """Test a late-delivered batch lands at its timestamp position."""
        self.session.append([make_event("keydown", 500, key_char="a"), make_event("keydown", 900, key_char="d")])
        stored = self.session.events

        created = self.session.append([make_event("keydown", 700, key_char="c"), make_event("keydown", 100, key_char="b")])

        self.assertEqual([e.key_char for e in created], ["b", "c"])
        self.assertEqual([e.key_char for e in self.session.events], ["b", "a", "c", "d"])
        timestamps = [e.timestamp for e in self.session.events]
        self.assertEqual(timestamps, sorted(timestamps))
        stored_ids = {e.id for e in stored}
        self.assertEqual([e.id for e in self.session.events if e.id in stored_ids], [e.id for e in stored])

    def test_equal_timestamps_keep_stored_first(self):
        self.session.append([make_event("keydown", 500)])
        self.session.append([make_event("keyup", 500)])
        self.assertEqual(
            [e.event_type for e in self.session.events],
            [EventType.KEYDOWN, EventType.KEYUP],
        )

    def test_submit_once(self):
        """Test OPEN -> SUBMITTED happens at most once."""
        at = BASE + timedelta(minutes=5)
        self.session.submit(at)

        self.assertEqual(self.session.state, SessionState.SUBMITTED)
        self.assertEqual(self.session.submission_time, at)
        self.assertEqual(self.session.session_end, at)

        with self.assertRaises(SessionAlreadySubmitted):
            self.session.submit()
        self.assertEqual(self.session.submission_time, at)

    def test_late_events_after_submission(self):
        """Test late events are appended without reopening."""
        self.session.append([make_event("keydown", 0)])
        at = BASE + timedelta(seconds=1)
        self.session.submit(at)

        self.session.append([make_event("keydown", 2000)])

        self.assertEqual(len(self.session.events), 2)
        self.assertEqual(self.session.state, SessionState.SUBMITTED)
        self.assertEqual(self.session.submission_time, at)

    def test_with_stats(self):
        self.session.append([make_event("keydown", 0), make_event("keydown", 1500)])
        stats = self.session.with_stats()

        self.assertEqual(stats.event_count, 2)
        self.assertAlmostEqual(stats.duration, 1500.0)
        self.assertEqual(stats.to_dict()["eventCount"], 2)


class TestSessionRecorder(unittest.TestCase):
    """Test the in-memory recorder."""

    def setUp(self):
        self.recorder = SessionRecorder()
        self.session = self.recorder.start_session("p1", "u1", user_agent="pytest")

    def _batch(self, *events):
        return {"sessionId": self.session.id, "events": [e.to_dict() for e in events]}

    def test_ingest_wire_batch(self):
        created = self.recorder.ingest(self._batch(
            make_event("keydown", 0, key_char="a"),
            make_event("keydown", 100, key_char="b"),
        ))
        self.assertEqual(len(created), 2)
        self.assertEqual(len(self.recorder.get_session(self.session.id).events), 2)

    def test_ingest_batch_input(self):
        batch = EventBatchInput(self.session.id, [make_event("focus", 0)])
        self.assertEqual(len(self.recorder.ingest(batch)), 1)

    def test_empty_batch(self):
        with self.assertRaises(InvalidBatch):
            self.recorder.ingest({"sessionId": self.session.id, "events": []})

    def test_oversized_batch(self):
        self.recorder.max_batch_size = 2
        with self.assertRaises(InvalidBatch):
            self.recorder.ingest(self._batch(*[make_event("keydown", i) for i in range(3)]))

    def test_unknown_session(self):
        with self.assertRaises(SessionNotFound):
            self.recorder.ingest({"sessionId": "missing", "events": [make_event("keydown").to_dict()]})

    def test_project_mismatch(self):
        with self.assertRaises(SessionProjectMismatch):
            self.recorder.ingest(self._batch(make_event("keydown")), project_id="other")

    def test_start_requires_user(self):
        with self.assertRaises(ValueError):
            self.recorder.start_session("p1", "")

    def test_query_events(self):
        other = self.recorder.start_session("p1", "u2")
        self.recorder.ingest(self._batch(make_event("keydown", 0), make_event("paste", 10)))
        self.recorder.ingest({"sessionId": other.id, "events": [make_event("keydown", 20).to_dict()]})

        by_user = self.recorder.query_events(EventQueryFilters(external_user_id="u2"))
        self.assertEqual(len(by_user), 1)
        self.assertEqual(by_user[0].session_id, other.id)

        pastes = self.recorder.query_events(EventQueryFilters(event_types=["paste"]))
        self.assertEqual(len(pastes), 1)

        by_session = self.recorder.query_events(EventQueryFilters(session_id=self.session.id))
        self.assertEqual(len(by_session), 2)

    def test_analytics_memoized_until_ingest(self):
        """Test analytics reuse and recomputation on new events."""
        self.recorder.ingest(self._batch(make_event("keydown", 0, key_char="a")))

        first = self.recorder.analytics(self.session.id)
        self.assertIs(self.recorder.analytics(self.session.id), first)
        self.assertEqual(first["totalKeystrokes"], 1)

        self.recorder.ingest(self._batch(make_event("keydown", 100, key_char="b")))
        second = self.recorder.analytics(self.session.id)
        self.assertIsNot(second, first)
        self.assertEqual(second["totalKeystrokes"], 2)

    def test_reset_analytics_forces_recompute(self):
        self.recorder.ingest(self._batch(make_event("keydown", 0)))
        first = self.recorder.analytics(self.session.id)
        self.recorder.reset_analytics(self.session.id)
        second = self.recorder.analytics(self.session.id)
        self.assertIsNot(second, first)
        self.assertEqual(second, first)

    def test_late_events_reach_analytics(self):
        """Test late-event tolerance after submission."""
        self.recorder.ingest(self._batch(make_event("keydown", 0)))
        self.recorder.submit(self.session.id)
        self.recorder.ingest(self._batch(make_event("keydown", 100)))

        self.assertEqual(self.recorder.analytics(self.session.id)["totalKeystrokes"], 2)
        self.assertEqual(self.recorder.session_stats(self.session.id).event_count, 2)

    def test_late_batch_captured_earlier_is_kept(self):
        """Test a batch delivered after submission but captured earlier."""
        self.recorder.ingest(self._batch(make_event("keydown", 1000), make_event("keydown", 2000)))
        self.recorder.submit(self.session.id)

        with redirect_stderr(io.StringIO()) as stderr:
            created = self.recorder.ingest(self._batch(make_event("keydown", 500)))

        self.assertEqual(len(created), 1)
        self.assertIn("Accepted 1 late events", stderr.getvalue())
        self.assertEqual(self.recorder.analytics(self.session.id)["totalKeystrokes"], 3)

        events = self.recorder.get_session(self.session.id).events
        self.assertEqual(events[0].id, created[0].id)
        self.assertEqual([e.timestamp for e in events], sorted(e.timestamp for e in events))

    def test_no_late_warning_when_append_fails(self):
        """Test the late-event warning only follows accepted events."""
        self.recorder.submit(self.session.id)
        session = self.recorder.get_session(self.session.id)

        with patch.object(session, "append", side_effect=TypeError("bad timestamp")):
            with redirect_stderr(io.StringIO()) as stderr:
                with self.assertRaises(TypeError):
                    self.recorder.ingest(self._batch(make_event("keydown", 100)))

        self.assertEqual(stderr.getvalue(), "")

    def test_double_submit(self):
        self.recorder.submit(self.session.id)
        with self.assertRaises(SessionAlreadySubmitted):
            self.recorder.submit(self.session.id)


if __name__ == "__main__":
    unittest.main()
