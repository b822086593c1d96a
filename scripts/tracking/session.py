"""
Session model and lifecycle for tracked writing activity.

A session groups a chronologically ordered, grow-only event sequence
under one subject and moves from OPEN to SUBMITTED exactly once.
"""

from dataclasses import dataclass, field
import heapq
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
import uuid

from .schema import Event, TrackerEvent


class SessionState(str, Enum):
    OPEN = "open"
    SUBMITTED = "submitted"


class SessionAlreadySubmitted(RuntimeError):
    """Raised when a submitted session receives another submission signal."""


@dataclass
class Session:
    """Aggregation unit for one subject's writing activity."""
    project_id: str
    external_user_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    session_start: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_end: Optional[datetime] = None
    submitted: bool = False
    submission_time: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    events: Tuple[Event, ...] = ()

    @property
    def state(self) -> SessionState:
        return SessionState.SUBMITTED if self.submitted else SessionState.OPEN

    def append(self, tracker_events: Iterable[TrackerEvent]) -> List[Event]:
        """
        Add a batch of captured events.

        The batch is stable-sorted by timestamp and merged into the stored
        sequence at its timestamp position, so late-delivered events that were
        captured earlier land where they belong. Stored events keep their
        relative order and precede batch events with an equal timestamp.
        Events are accepted in any state; late events after submission leave
        the state and submission time untouched.

        Args:
            tracker_events: Events in capture order

        Returns:
            Newly created Event records, sorted by timestamp
        """
        batch = sorted(tracker_events, key=lambda e: e.timestamp)
        if not batch:
            return []

        now = datetime.now(timezone.utc)
        created = [
            Event.from_tracker_event(e, self.id, self.project_id, created_at=now)
            for e in batch
        ]

        # New tuple so consumers see a new sequence identity
        self.events = tuple(heapq.merge(self.events, created, key=lambda e: e.timestamp))
        return created

    def submit(self, at: Optional[datetime] = None) -> None:
        """
        Mark the session as submitted and end it.

        Args:
            at: Submission time (defaults to now)

        Raises:
            SessionAlreadySubmitted: On a second submission
        """
        if self.submitted:
            raise SessionAlreadySubmitted(f"Session {self.id} already submitted")

        at = at or datetime.now(timezone.utc)
        self.submitted = True
        self.submission_time = at
        if self.session_end is None:
            self.session_end = at

    def duration_ms(self) -> float:
        """Milliseconds from session start to session end or last activity."""
        end = self.session_end
        if end is None:
            end = self.events[-1].timestamp if self.events else self.session_start
        return max(0.0, (end - self.session_start).total_seconds() * 1000)

    def with_stats(self) -> "SessionWithStats":
        return SessionWithStats(
            id=self.id,
            project_id=self.project_id,
            external_user_id=self.external_user_id,
            session_start=self.session_start,
            session_end=self.session_end,
            submitted=self.submitted,
            submission_time=self.submission_time,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            created_at=self.created_at,
            event_count=len(self.events),
            duration=self.duration_ms(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (events excluded)."""
        return {
            "id": self.id,
            "projectId": self.project_id,
            "externalUserId": self.external_user_id,
            "sessionStart": self.session_start.isoformat(),
            "sessionEnd": self.session_end.isoformat() if self.session_end else None,
            "submitted": self.submitted,
            "submissionTime": self.submission_time.isoformat() if self.submission_time else None,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class SessionWithStats:
    """Informational session summary."""
    id: str
    project_id: str
    external_user_id: str
    session_start: datetime
    session_end: Optional[datetime]
    submitted: bool
    submission_time: Optional[datetime]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime
    event_count: int = 0
    duration: float = 0.0  # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "externalUserId": self.external_user_id,
            "sessionStart": self.session_start.isoformat(),
            "sessionEnd": self.session_end.isoformat() if self.session_end else None,
            "submitted": self.submitted,
            "submissionTime": self.submission_time.isoformat() if self.submission_time else None,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "createdAt": self.created_at.isoformat(),
            "eventCount": self.event_count,
            "duration": self.duration,
        }
