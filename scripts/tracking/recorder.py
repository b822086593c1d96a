"""
Session recorder for tracked writing activity.

Provides an in-memory collector implementing the ingestion, submission and
query contracts, with per-session memoized analytics.
"""

import sys
from typing import Any, Dict, List, Optional, Union

from metrics.config import config
from metrics.engine import MetricsEngine
from metrics.recompute import AnalyticsMemo
from metrics.registry import MetricRegistry, Number

from .schema import Event, EventBatchInput, EventQueryFilters
from .session import Session, SessionWithStats


class InvalidBatch(ValueError):
    """Raised for empty or oversized event batches."""


class SessionNotFound(KeyError):
    """Raised when a session id is unknown."""


class SessionProjectMismatch(PermissionError):
    """Raised when a session is addressed through the wrong project."""


class SessionRecorder:
    """
    Collects sessions and their event sequences.

    Handles session lifecycle (start -> ingest -> submit), late events and
    analytics recomputation per session.
    """

    def __init__(
        self,
        registry: Optional[MetricRegistry] = None,
        engine: Optional[MetricsEngine] = None
    ):
        self.registry = registry
        self.engine = engine or MetricsEngine(registry)
        self.max_batch_size = config.get('ingestion.max_batch_size', 1000)
        self._sessions: Dict[str, Session] = {}
        self._memos: Dict[str, AnalyticsMemo] = {}

    def start_session(
        self,
        project_id: str,
        external_user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Session:
        """
        Open a new session.

        Args:
            project_id: Owning project
            external_user_id: Subject identifier supplied by the project
            ip_address: Request IP
            user_agent: Request user agent
            metadata: Free-form session metadata

        Returns:
            The new Session
        """
        if not external_user_id:
            raise ValueError("External user ID is required")

        session = Session(
            project_id=project_id,
            external_user_id=external_user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=dict(metadata or {}),
        )
        self._sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def _checked_session(self, session_id: str, project_id: Optional[str]) -> Session:
        session = self.get_session(session_id)
        if project_id is not None and session.project_id != project_id:
            raise SessionProjectMismatch(
                f"Session {session_id} does not belong to project {project_id}"
            )
        return session

    def sessions(self, project_id: Optional[str] = None) -> List[Session]:
        return [
            s for s in self._sessions.values()
            if project_id is None or s.project_id == project_id
        ]

    def ingest(
        self,
        batch: Union[EventBatchInput, Dict[str, Any]],
        project_id: Optional[str] = None
    ) -> List[Event]:
        """
        Add a batch of events to its session in timestamp order.

        Args:
            batch: EventBatchInput or its wire dictionary
            project_id: If given, the session must belong to this project

        Returns:
            Accepted Event records

        Raises:
            InvalidBatch: Empty or oversized batch
            SessionNotFound: Unknown session id
            SessionProjectMismatch: Session belongs to another project
        """
        if isinstance(batch, dict):
            batch = EventBatchInput.from_dict(batch)

        if not batch.events:
            raise InvalidBatch("No events provided")
        if len(batch.events) > self.max_batch_size:
            raise InvalidBatch(
                f"Too many events. Maximum {self.max_batch_size} events per batch."
            )

        session = self._checked_session(batch.session_id, project_id)
        created = session.append(batch.events)

        if session.submitted:
            print(
                f"Warning: Accepted {len(created)} late events for submitted "
                f"session {session.id}",
                file=sys.stderr
            )

        return created

    def submit(self, session_id: str, project_id: Optional[str] = None) -> Session:
        """
        Mark a session as submitted.

        Raises:
            SessionAlreadySubmitted: On a second submission
        """
        session = self._checked_session(session_id, project_id)
        session.submit()
        return session

    def query_events(self, filters: EventQueryFilters) -> List[Event]:
        """
        Retrieve events across sessions.

        Args:
            filters: Query filters

        Returns:
            Matching events, chronological within each session
        """
        if filters.session_id is not None:
            candidates = [self._sessions[filters.session_id]] if filters.session_id in self._sessions else []
        else:
            candidates = list(self._sessions.values())

        events = []
        owners = {}
        for session in candidates:
            owners[session.id] = session.external_user_id
            events.extend(session.events)

        return filters.apply(events, owner_of=lambda e: owners.get(e.session_id))

    def session_stats(self, session_id: str) -> SessionWithStats:
        return self.get_session(session_id).with_stats()

    def analytics(self, session_id: str, reset_token: Optional[int] = None) -> Dict[str, Number]:
        """
        Current analytics for a session, recomputed only when events or the
        reset token changed.

        Args:
            session_id: Session to analyze
            reset_token: External reset token (default: the session's own)

        Returns:
            Metric id -> value
        """
        session = self.get_session(session_id)
        memo = self._memos.get(session_id)
        if memo is None:
            memo = AnalyticsMemo(self.engine, self.registry)
            self._memos[session_id] = memo
        return memo.compute(session.events, reset_token)

    def reset_analytics(self, session_id: str) -> int:
        """Force the next analytics call for the session to recompute."""
        self.get_session(session_id)
        memo = self._memos.setdefault(session_id, AnalyticsMemo(self.engine, self.registry))
        return memo.reset()


_recorder = None


def get_recorder() -> SessionRecorder:
    """
    Get process-wide session recorder instance.

    Returns:
        SessionRecorder instance
    """
    global _recorder
    if _recorder is None:
        _recorder = SessionRecorder()
    return _recorder
