"""
Tracking package for writing-session analytics.

Provides the interaction event model, the session model and its lifecycle.
The in-memory SessionRecorder lives in tracking.recorder.
"""

from .schema import (
    EventType,
    TrackerEvent,
    Event,
    EventBatchInput,
    EventQueryFilters,
    MalformedEvent,
    INPUT_EVENTS,
    FORMATTING_EVENTS,
    STRUCTURAL_EVENTS,
    FIND_REPLACE_EVENTS,
    parse_timestamp,
)
from .session import (
    Session,
    SessionState,
    SessionWithStats,
    SessionAlreadySubmitted,
)

__all__ = [
    # Schemas
    'EventType',
    'TrackerEvent',
    'Event',
    'EventBatchInput',
    'EventQueryFilters',
    'MalformedEvent',
    'INPUT_EVENTS',
    'FORMATTING_EVENTS',
    'STRUCTURAL_EVENTS',
    'FIND_REPLACE_EVENTS',
    'parse_timestamp',
    # Sessions
    'Session',
    'SessionState',
    'SessionWithStats',
    'SessionAlreadySubmitted',
]

__version__ = '1.0.0'
