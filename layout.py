"""Weekly time-grid layout.

Positions tasks and events inside day columns of 30-minute slots. A task
whose end time is earlier than its start runs past midnight and is split
into a same-day segment ending at 24:00 and a next-day segment starting at
00:00. Overlapping items are not reflowed; they are layered by z-index.
"""
from datetime import date
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from timeutils import (
    MINUTES_PER_DAY, add_days, format_date, generate_time_slots, is_valid_time, minutes_to_time,
    parse_date, parse_time_to_minutes, week_days,
)

SLOT_MINUTES = 30
SLOT_HEIGHT = 72
EVENT_TOP = 12
EVENT_STEP = 36
EVENT_Z_INDEX = 10
TASK_Z_INDEX = 20
SLOT_ID_SEPARATOR = '_'


class Segment(NamedTuple):
    task_id: Optional[int]
    date: str
    start_minutes: int
    end_minutes: int
    top: float
    height: float
    slot: str
    continuation: bool
    z_index: int = TASK_Z_INDEX


class EventPlacement(NamedTuple):
    event_id: Optional[int]
    date: str
    top: int
    z_index: int = EVENT_Z_INDEX


def default_time_slots() -> List[str]:
    return generate_time_slots(0, 24, SLOT_MINUTES)


def task_duration(start_time: str, end_time: str) -> int:
    start = parse_time_to_minutes(start_time)
    end = parse_time_to_minutes(end_time)
    if end < start:
        return MINUTES_PER_DAY - start + end
    return end - start


def minutes_to_pixels(minutes: float, slot_height: int = SLOT_HEIGHT) -> float:
    return minutes / SLOT_MINUTES * slot_height


def task_height(task, slot_height: int = SLOT_HEIGHT) -> float:
    # end == start yields zero height
    return minutes_to_pixels(task_duration(task['start_time'], task['end_time']), slot_height)


def task_top(task, time_slots: List[str], slot_height: int = SLOT_HEIGHT) -> float:
    offset = parse_time_to_minutes(task['start_time']) - parse_time_to_minutes(time_slots[0])
    return minutes_to_pixels(offset, slot_height)


def anchor_slot(minutes: int, time_slots: List[str]) -> str:
    """The one slot row an item starting at ``minutes`` is attached to."""
    chosen = time_slots[0]
    for label in time_slots:
        if parse_time_to_minutes(label) <= minutes:
            chosen = label
        else:
            break
    return chosen


def _segment(task, day: str, start: int, end: int, time_slots, slot_height, continuation):
    first = parse_time_to_minutes(time_slots[0])
    return Segment(
        task_id=task.get('id'),
        date=day,
        start_minutes=start,
        end_minutes=end,
        top=minutes_to_pixels(start - first, slot_height),
        height=minutes_to_pixels(end - start, slot_height),
        slot=anchor_slot(start, time_slots),
        continuation=continuation,
    )


def task_segments(task, time_slots: Optional[List[str]] = None,
                  next_day_slots: Optional[List[str]] = None,
                  slot_height: int = SLOT_HEIGHT) -> List[Segment]:
    """Split a task into the segments drawn in each day column."""
    time_slots = time_slots or default_time_slots()
    next_day_slots = next_day_slots or time_slots
    start = parse_time_to_minutes(task['start_time'])
    end = parse_time_to_minutes(task['end_time'])

    if end >= start:
        return [_segment(task, task['date'], start, end, time_slots, slot_height, False)]

    segments = [_segment(task, task['date'], start, MINUTES_PER_DAY, time_slots, slot_height, False)]
    # Ending exactly at midnight leaves nothing to draw on the next day
    if end > 0:
        following = format_date(add_days(parse_date(task['date']), 1))
        segments.append(_segment(task, following, 0, end, next_day_slots, slot_height, True))
    return segments


def event_placements(events: Iterable) -> List[EventPlacement]:
    """Stack events at the top of their day in insertion order, ignoring their times."""
    per_day: Dict[str, int] = {}
    placements = []
    for event in events:
        index = per_day.get(event['date'], 0)
        per_day[event['date']] = index + 1
        placements.append(EventPlacement(event.get('id'), event['date'], EVENT_TOP + index * EVENT_STEP))
    return placements


def layout_week(week_start, tasks: Iterable, events: Iterable,
                time_slots: Optional[List[str]] = None,
                slot_height: int = SLOT_HEIGHT) -> dict:
    time_slots = time_slots or default_time_slots()
    days = [format_date(day) for day in week_days(parse_date(week_start))]
    columns = {day: {'date': day, 'tasks': [], 'events': []} for day in days}

    for task in tasks:
        for segment in task_segments(task, time_slots, slot_height=slot_height):
            if segment.date in columns:
                columns[segment.date]['tasks'].append(segment._asdict())

    for placement in event_placements(events):
        if placement.date in columns:
            columns[placement.date]['events'].append(placement._asdict())

    return {
        'weekStart': days[0],
        'weekEnd': days[-1],
        'timeSlots': time_slots,
        'slotHeight': slot_height,
        'days': [columns[day] for day in days],
    }


# Drag and drop

def slot_id(day, time_label: str) -> str:
    if isinstance(day, date):
        day = format_date(day)
    return f"{day}{SLOT_ID_SEPARATOR}{time_label}"


def parse_slot_id(value: str) -> Tuple[str, str]:
    day, _, time_label = value.partition(SLOT_ID_SEPARATOR)
    if not time_label or not is_valid_time(time_label):
        raise ValueError(f"Invalid slot identifier: {value}")
    return format_date(parse_date(day)), time_label


def drop_task(task, target_slot: str) -> dict:
    """New date and times for a task dropped on ``target_slot``; duration is kept."""
    day, start_time = parse_slot_id(target_slot)
    duration = task_duration(task['start_time'], task['end_time'])
    end = (parse_time_to_minutes(start_time) + duration) % MINUTES_PER_DAY
    return {
        'date': day,
        'start_time': start_time,
        'end_time': minutes_to_time(end),
    }
