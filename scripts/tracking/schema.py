"""
Event schemas for writing-session tracking.

Defines dataclasses for interaction events, persisted events and the
ingestion/query shapes exchanged with capture and storage collaborators.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
import uuid


class MalformedEvent(ValueError):
    """Raised when a wire event cannot be parsed into a TrackerEvent."""


class EventType(str, Enum):
    """Closed set of interaction tags sent by the capture layer."""

    # Basic input events
    KEYDOWN = "keydown"
    KEYUP = "keyup"
    PASTE = "paste"
    COPY = "copy"
    CUT = "cut"
    FOCUS = "focus"
    BLUR = "blur"
    INPUT = "input"
    DELETE = "delete"
    SELECT = "select"
    # Text formatting
    FONT_FAMILY_CHANGE = "font-family-change"
    FONT_SIZE_CHANGE = "font-size-change"
    TEXT_COLOR_CHANGE = "text-color-change"
    HIGHLIGHT_COLOR_CHANGE = "highlight-color-change"
    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"
    STRIKETHROUGH = "strikethrough"
    CODE = "code"
    SUBSCRIPT = "subscript"
    SUPERSCRIPT = "superscript"
    # Headings
    HEADING_CHANGE = "heading-change"
    # Lists
    LIST_CREATE = "list-create"
    LIST_DELETE = "list-delete"
    LIST_INDENT = "list-indent"
    LIST_OUTDENT = "list-outdent"
    LIST_ITEM_CHECK = "list-item-check"
    # Alignment
    ALIGNMENT_CHANGE = "alignment-change"
    # Find/Replace
    FIND_OPEN = "find-open"
    FIND_SEARCH = "find-search"
    FIND_NEXT = "find-next"
    FIND_PREVIOUS = "find-previous"
    REPLACE = "replace"
    REPLACE_ALL = "replace-all"
    FIND_CLOSE = "find-close"
    # Other formatting
    LINE_SPACING_CHANGE = "line-spacing-change"
    INDENT_CHANGE = "indent-change"
    CLEAR_FORMATTING = "clear-formatting"

    def __str__(self) -> str:
        return self.value


INPUT_EVENTS = frozenset({
    EventType.KEYDOWN, EventType.KEYUP, EventType.PASTE, EventType.COPY,
    EventType.CUT, EventType.FOCUS, EventType.BLUR, EventType.INPUT,
    EventType.DELETE, EventType.SELECT,
})

FORMATTING_EVENTS = frozenset({
    EventType.FONT_FAMILY_CHANGE, EventType.FONT_SIZE_CHANGE,
    EventType.TEXT_COLOR_CHANGE, EventType.HIGHLIGHT_COLOR_CHANGE,
    EventType.BOLD, EventType.ITALIC, EventType.UNDERLINE,
    EventType.STRIKETHROUGH, EventType.CODE, EventType.SUBSCRIPT,
    EventType.SUPERSCRIPT, EventType.HEADING_CHANGE,
    EventType.ALIGNMENT_CHANGE, EventType.LINE_SPACING_CHANGE,
    EventType.INDENT_CHANGE, EventType.CLEAR_FORMATTING,
})

STRUCTURAL_EVENTS = frozenset({
    EventType.LIST_CREATE, EventType.LIST_DELETE, EventType.LIST_INDENT,
    EventType.LIST_OUTDENT, EventType.LIST_ITEM_CHECK,
})

FIND_REPLACE_EVENTS = frozenset({
    EventType.FIND_OPEN, EventType.FIND_SEARCH, EventType.FIND_NEXT,
    EventType.FIND_PREVIOUS, EventType.REPLACE, EventType.REPLACE_ALL,
    EventType.FIND_CLOSE,
})


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a wire timestamp into an aware UTC datetime.

    Args:
        value: Epoch milliseconds, ISO-8601 string or datetime

    Returns:
        Timezone-aware datetime

    Raises:
        MalformedEvent: If the value cannot be interpreted
    """
    if isinstance(value, datetime):
        timestamp = value
    elif isinstance(value, bool):
        raise MalformedEvent(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            timestamp = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise MalformedEvent(f"Invalid timestamp: {value!r}") from e
    elif isinstance(value, str) and value:
        try:
            timestamp = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError as e:
            raise MalformedEvent(f"Invalid timestamp: {value!r}") from e
    else:
        raise MalformedEvent(f"Invalid timestamp: {value!r}")

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def _optional_position(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedEvent(f"{key} must be a non-negative integer, got {value!r}")
    return value


@dataclass(frozen=True)
class TrackerEvent:
    """One observed interaction."""
    event_type: EventType
    timestamp: datetime
    target_element: Optional[str] = None
    key_code: Optional[str] = None
    key_char: Optional[str] = None
    text_before: Optional[str] = None
    text_after: Optional[str] = None
    cursor_position: Optional[int] = None
    selection_start: Optional[int] = None
    selection_end: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackerEvent":
        """
        Parse the camelCase wire shape sent by the capture layer.

        Args:
            data: Event dictionary (eventType, timestamp, ...)

        Returns:
            TrackerEvent

        Raises:
            MalformedEvent: On unknown eventType or bad timestamp/positions
        """
        if not isinstance(data, dict):
            raise MalformedEvent(f"Event must be an object, got {type(data).__name__}")

        try:
            event_type = EventType(data.get("eventType"))
        except ValueError as e:
            raise MalformedEvent(f"Unknown eventType: {data.get('eventType')!r}") from e

        if "timestamp" not in data:
            raise MalformedEvent("Missing timestamp")

        key_code = data.get("keyCode")
        if key_code is not None:
            key_code = str(key_code)

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise MalformedEvent("metadata must be an object")

        return cls(
            event_type=event_type,
            timestamp=parse_timestamp(data["timestamp"]),
            target_element=data.get("targetElement"),
            key_code=key_code,
            key_char=data.get("keyChar"),
            text_before=data.get("textBefore"),
            text_after=data.get("textAfter"),
            cursor_position=_optional_position(data, "cursorPosition"),
            selection_start=_optional_position(data, "selectionStart"),
            selection_end=_optional_position(data, "selectionEnd"),
            metadata=dict(metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire shape, omitting absent optional fields."""
        data = {
            "eventType": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
        }

        optional = (
            ("targetElement", self.target_element),
            ("keyCode", self.key_code),
            ("keyChar", self.key_char),
            ("textBefore", self.text_before),
            ("textAfter", self.text_after),
            ("cursorPosition", self.cursor_position),
            ("selectionStart", self.selection_start),
            ("selectionEnd", self.selection_end),
        )
        for key, value in optional:
            if value is not None:
                data[key] = value

        if self.metadata:
            data["metadata"] = dict(self.metadata)

        return data


@dataclass(frozen=True)
class Event(TrackerEvent):
    """A TrackerEvent accepted into a session."""
    id: str = ""
    session_id: str = ""
    project_id: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_tracker_event(
        cls,
        event: TrackerEvent,
        session_id: str,
        project_id: str,
        created_at: Optional[datetime] = None
    ) -> "Event":
        """Attach identity to a captured event."""
        return cls(
            event_type=event.event_type,
            timestamp=event.timestamp,
            target_element=event.target_element,
            key_code=event.key_code,
            key_char=event.key_char,
            text_before=event.text_before,
            text_after=event.text_after,
            cursor_position=event.cursor_position,
            selection_start=event.selection_start,
            selection_end=event.selection_end,
            metadata=dict(event.metadata),
            id=str(uuid.uuid4()),
            session_id=session_id,
            project_id=project_id,
            created_at=created_at or datetime.now(timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["id"] = self.id
        data["sessionId"] = self.session_id
        data["projectId"] = self.project_id
        if self.created_at:
            data["createdAt"] = self.created_at.isoformat()
        return data


@dataclass
class EventBatchInput:
    """Unit of append from the capture layer."""
    session_id: str
    events: List[TrackerEvent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventBatchInput":
        """Parse {sessionId, events: [...]}."""
        events = data.get("events") or []
        return cls(
            session_id=data.get("sessionId", ""),
            events=[
                e if isinstance(e, TrackerEvent) else TrackerEvent.from_dict(e)
                for e in events
            ],
        )


@dataclass
class EventQueryFilters:
    """Filters used to fetch a historical event sequence."""
    project_id: Optional[str] = None
    session_id: Optional[str] = None
    external_user_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    event_types: Optional[List[EventType]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    def __post_init__(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("Start date must be before end date")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative")
        if self.offset is not None and self.offset < 0:
            raise ValueError("offset must be non-negative")
        if self.event_types is not None:
            self.event_types = [EventType(t) for t in self.event_types]

    def matches(self, event: TrackerEvent, external_user_id: Optional[str] = None) -> bool:
        """
        Check whether a single event passes the filters.

        Args:
            event: Event to test (identity filters need an Event)
            external_user_id: Owner of the event's session, if known

        Returns:
            True if the event passes every set filter
        """
        if self.project_id is not None and getattr(event, "project_id", None) != self.project_id:
            return False
        if self.session_id is not None and getattr(event, "session_id", None) != self.session_id:
            return False
        if self.external_user_id is not None and external_user_id != self.external_user_id:
            return False
        if self.start_date is not None and event.timestamp < self.start_date:
            return False
        if self.end_date is not None and event.timestamp > self.end_date:
            return False
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        return True

    def apply(
        self,
        events: Iterable[TrackerEvent],
        owner_of: Optional[Callable[[TrackerEvent], Optional[str]]] = None
    ) -> List[TrackerEvent]:
        """
        Filter, then page with offset and limit.

        Args:
            events: Candidate events in order
            owner_of: Resolves an event's external user id, if known
        """
        selected = [
            e for e in events
            if self.matches(e, owner_of(e) if owner_of else None)
        ]
        start = self.offset or 0
        if self.limit is None:
            return selected[start:]
        return selected[start:start + self.limit]
