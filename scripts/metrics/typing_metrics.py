"""
Built-in typing behavior metrics.

Every calculator takes a chronologically ordered event sequence and returns a
number. Calculators never mutate their input and treat missing fields as "no
signal". Rate metrics that need a nonzero duration return 0 when it is
undefined.
"""

import math
from typing import Any, Dict, Sequence

from tracking.schema import EventType, FORMATTING_EVENTS, STRUCTURAL_EVENTS, FIND_REPLACE_EVENTS

from .calculator import MetricsCalculator
from .config import config
from .registry import MetricDefinition, MetricRegistry

Events = Sequence[Any]


def _pause_ms() -> float:
    return config.get('thresholds.pause_ms', 2000)


def _burst_ms() -> float:
    return config.get('thresholds.burst_ms', 300)


def _burst_min_length() -> int:
    return int(config.get('thresholds.burst_min_length', 5))


def _chars_per_word() -> float:
    return config.get('thresholds.chars_per_word', 5)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _of_type(events: Events, *types: EventType):
    return MetricsCalculator.select(events, lambda e: e.event_type in types)


def _character_keys(events: Events):
    """Keydown events that produced a character."""
    return MetricsCalculator.select(
        events,
        lambda e: e.event_type == EventType.KEYDOWN and bool(e.key_char)
    )


def _last_text_length(events: Events) -> int:
    if not events:
        return 0
    text = getattr(events[-1], 'text_after', None)
    return len(text) if isinstance(text, str) else 0


# Speed

def words_per_minute(events: Events) -> float:
    """(characters / chars_per_word) / minutes between first and last character key."""
    keys = _character_keys(events)
    if len(keys) < 2:
        return 0
    return MetricsCalculator.per_minute(len(keys) / _chars_per_word(), MetricsCalculator.span_ms(keys))


def characters_per_minute(events: Events) -> float:
    keys = _character_keys(events)
    if len(keys) < 2:
        return 0
    return MetricsCalculator.per_minute(len(keys), MetricsCalculator.span_ms(keys))


def detect_bursts(events: Events) -> Dict[str, float]:
    """
    Detect rapid typing sequences.

    A burst is a run of at least burst_min_length consecutive character-key
    intervals shorter than burst_ms. Burst speed is WPM over every short
    interval seen.

    Returns:
        Dictionary with burst_count and burst_speed
    """
    keys = _character_keys(events)
    min_length = _burst_min_length()
    if len(keys) < min_length:
        return {"burst_count": 0, "burst_speed": 0}

    threshold = _burst_ms()
    burst_count = 0
    current_burst = 0
    burst_chars = 0
    burst_time = 0.0

    for interval in MetricsCalculator.intervals_ms(keys):
        if interval < threshold:
            current_burst += 1
            burst_chars += 1
            burst_time += interval
        else:
            if current_burst >= min_length:
                burst_count += 1
            current_burst = 0

    if current_burst >= min_length:
        burst_count += 1

    burst_speed = MetricsCalculator.per_minute(burst_chars / _chars_per_word(), burst_time)
    return {"burst_count": burst_count, "burst_speed": burst_speed}


# Timing

def average_time_between_keys(events: Events) -> float:
    keys = _of_type(events, EventType.KEYDOWN)
    if len(keys) < 2:
        return 0
    return MetricsCalculator.interval_stats(MetricsCalculator.intervals_ms(keys))["avg_ms"]


def detect_pauses(events: Events) -> Dict[str, float]:
    """
    Find gaps longer than the pause threshold between keydown/input events.

    Returns:
        Dictionary with pause_count and longest_pause (ms)
    """
    keys = _of_type(events, EventType.KEYDOWN, EventType.INPUT)
    if len(keys) < 2:
        return {"pause_count": 0, "longest_pause": 0}

    threshold = _pause_ms()
    pauses = [i for i in MetricsCalculator.intervals_ms(keys) if i > threshold]
    return {"pause_count": len(pauses), "longest_pause": max(pauses) if pauses else 0}


def active_typing_time(events: Events) -> float:
    """Sum of keydown intervals that are not pauses (ms)."""
    keys = _of_type(events, EventType.KEYDOWN)
    if len(keys) < 2:
        return 0
    threshold = _pause_ms()
    return sum(i for i in MetricsCalculator.intervals_ms(keys) if i <= threshold)


# Behavior

def focus_change_count(events: Events) -> int:
    return len(_of_type(events, EventType.FOCUS, EventType.BLUR))


def typing_consistency(events: Events) -> float:
    """
    Consistency score from keystroke timing variance, 0-100 (higher is steadier).

    Pauses are excluded. Score is max(0, 100 - coefficient of variation %).
    """
    keys = _of_type(events, EventType.KEYDOWN)
    if len(keys) < 3:
        return 0

    threshold = _pause_ms()
    intervals = [i for i in MetricsCalculator.intervals_ms(keys) if i <= threshold]
    if len(intervals) < 2:
        return 0

    return max(0.0, 100.0 - MetricsCalculator.coefficient_of_variation(intervals))


def clipboard_statistics(events: Events) -> Dict[str, float]:
    """
    Count clipboard operations and estimate pasted share of the final text.

    Returns:
        Dictionary with paste/copy/cut counts, pasted_characters and
        paste_ratio (percent of final text length)
    """
    pastes = _of_type(events, EventType.PASTE)

    pasted_characters = 0
    for event in pastes:
        metadata = getattr(event, 'metadata', None) or {}
        pasted = metadata.get('pastedText') if isinstance(metadata, dict) else None
        if isinstance(pasted, str):
            pasted_characters += len(pasted)

    total_characters = _last_text_length(events)
    paste_ratio = (pasted_characters / total_characters) * 100 if total_characters > 0 else 0

    return {
        "paste_count": len(pastes),
        "copy_count": len(_of_type(events, EventType.COPY)),
        "cut_count": len(_of_type(events, EventType.CUT)),
        "pasted_characters": pasted_characters,
        "paste_ratio": paste_ratio,
    }


# Quality

def deletion_count(events: Events) -> int:
    return len(_of_type(events, EventType.DELETE))


def deletion_rate(events: Events) -> float:
    """Deletions per character typed."""
    typed = len(_character_keys(events))
    return deletion_count(events) / typed if typed > 0 else 0


def error_correction_sequences(events: Events) -> int:
    """Runs of consecutive deletions, each ended by the next keydown."""
    sequences = 0
    in_sequence = False

    for event in events:
        event_type = getattr(event, 'event_type', None)
        if event_type == EventType.DELETE:
            if not in_sequence:
                sequences += 1
                in_sequence = True
        elif event_type == EventType.KEYDOWN:
            in_sequence = False

    return sequences


# Session

def session_duration(events: Events) -> float:
    return MetricsCalculator.span_ms(events)


def character_count(events: Events) -> int:
    return _last_text_length(events)


def word_count(events: Events) -> int:
    return _round_half_up(character_count(events) / _chars_per_word())


def text_growth_rate(events: Events) -> float:
    """Net characters (typed minus deleted) per minute of session."""
    net = len(_character_keys(events)) - deletion_count(events)
    return MetricsCalculator.per_minute(net, session_duration(events))


def total_keystrokes(events: Events) -> int:
    return len(_of_type(events, EventType.KEYDOWN))


def formatting_action_count(events: Events) -> int:
    return len(MetricsCalculator.select(
        events,
        lambda e: e.event_type in FORMATTING_EVENTS or e.event_type in STRUCTURAL_EVENTS
    ))


def find_replace_count(events: Events) -> int:
    return len(MetricsCalculator.select(events, lambda e: e.event_type in FIND_REPLACE_EVENTS))


TYPING_METRICS = (
    # Speed
    MetricDefinition(
        id='wpm', calculator=words_per_minute, label='Words Per Minute', category='speed',
        description='Average typing speed calculated as (characters / 5) / minutes', unit='WPM'),
    MetricDefinition(
        id='cpm', calculator=characters_per_minute, label='Characters Per Minute',
        category='speed', description='Raw character input rate per minute', unit='CPM'),
    MetricDefinition(
        id='burstSpeed', calculator=lambda events: detect_bursts(events)["burst_speed"],
        label='Burst Speed', category='speed',
        description='Peak typing speed during rapid typing sequences', unit='WPM'),

    # Timing
    MetricDefinition(
        id='avgTimeBetweenKeys', calculator=average_time_between_keys,
        label='Avg Time Between Keys', category='timing',
        description='Average interval between consecutive keystrokes', unit='ms'),
    MetricDefinition(
        id='pauseCount', calculator=lambda events: detect_pauses(events)["pause_count"],
        label='Pause Count', category='timing',
        description='Number of pauses longer than 2 seconds'),
    MetricDefinition(
        id='longestPause', calculator=lambda events: detect_pauses(events)["longest_pause"],
        label='Longest Pause', category='timing',
        description='Duration of the longest pause in typing', unit='duration'),
    MetricDefinition(
        id='activeTypingTime', calculator=active_typing_time, label='Active Typing Time',
        category='timing', description='Total time actively typing (excluding pauses)',
        unit='duration'),

    # Behavior
    MetricDefinition(
        id='burstCount', calculator=lambda events: detect_bursts(events)["burst_count"],
        label='Burst Count', category='behavior',
        description='Number of rapid typing sequences detected'),
    MetricDefinition(
        id='focusChangeCount', calculator=focus_change_count, label='Focus Changes',
        category='behavior', description='Number of times focus entered or left the field'),
    MetricDefinition(
        id='typingConsistency', calculator=typing_consistency, label='Typing Consistency',
        category='behavior',
        description='Consistency score based on keystroke timing variance (higher is better)',
        unit='score'),

    # Quality
    MetricDefinition(
        id='deletionCount', calculator=deletion_count, label='Deletion Count',
        category='quality', description='Total number of backspace/delete operations'),
    MetricDefinition(
        id='deletionRate', calculator=deletion_rate, label='Deletion Rate', category='quality',
        description='Ratio of deletions to characters typed', unit='ratio'),
    MetricDefinition(
        id='errorCorrectionSequences', calculator=error_correction_sequences,
        label='Error Correction Sequences', category='quality',
        description='Number of consecutive deletion sequences (backspacing)'),

    # Copy-paste
    MetricDefinition(
        id='pasteCount', calculator=lambda events: clipboard_statistics(events)["paste_count"],
        label='Paste Count', category='behavior', description='Number of paste operations'),
    MetricDefinition(
        id='copyCount', calculator=lambda events: clipboard_statistics(events)["copy_count"],
        label='Copy Count', category='behavior', description='Number of copy operations'),
    MetricDefinition(
        id='cutCount', calculator=lambda events: clipboard_statistics(events)["cut_count"],
        label='Cut Count', category='behavior', description='Number of cut operations'),
    MetricDefinition(
        id='pasteRatio', calculator=lambda events: clipboard_statistics(events)["paste_ratio"],
        label='Paste Ratio', category='quality',
        description='Percentage of content that came from paste operations', unit='%'),

    # Session
    MetricDefinition(
        id='sessionDuration', calculator=session_duration, label='Session Duration',
        category='session', description='Total time from first to last event', unit='duration'),
    MetricDefinition(
        id='characterCount', calculator=character_count, label='Character Count',
        category='session', description='Total characters in the current text'),
    MetricDefinition(
        id='wordCount', calculator=word_count, label='Word Count', category='session',
        description='Estimated word count (characters / 5)'),
    MetricDefinition(
        id='textGrowthRate', calculator=text_growth_rate, label='Text Growth Rate',
        category='session', description='Net characters per minute (typing minus deletions)',
        unit='chars/min'),
    MetricDefinition(
        id='totalKeystrokes', calculator=total_keystrokes, label='Total Keystrokes',
        category='session', description='Number of keydown events'),
    MetricDefinition(
        id='formattingActionCount', calculator=formatting_action_count,
        label='Formatting Actions', category='behavior',
        description='Formatting, heading, alignment and list operations'),
    MetricDefinition(
        id='findReplaceCount', calculator=find_replace_count, label='Find/Replace Actions',
        category='behavior', description='Find and replace operations'),
)

# Default metrics shown initially
DEFAULT_METRICS = (
    'wpm',
    'avgTimeBetweenKeys',
    'pauseCount',
    'deletionCount',
    'pasteCount',
    'sessionDuration',
    'characterCount',
    'burstCount',
)

CATEGORY_LABELS = {
    'speed': 'Speed',
    'timing': 'Timing',
    'behavior': 'Behavior',
    'quality': 'Quality',
    'session': 'Session',
}

CATEGORY_ORDER = ('speed', 'timing', 'behavior', 'quality', 'session')


def build_typing_registry() -> MetricRegistry:
    """Fresh, unfrozen registry holding the built-in metrics."""
    return MetricRegistry(TYPING_METRICS)


_default_registry = None


def get_default_registry() -> MetricRegistry:
    """
    Get the process-wide frozen registry of built-in metrics.

    Returns:
        MetricRegistry (read-only)
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = build_typing_registry().freeze()
    return _default_registry
