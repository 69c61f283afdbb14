import pytest

from layout import (
    EVENT_STEP, EVENT_TOP, SLOT_HEIGHT, anchor_slot, default_time_slots, drop_task,
    event_placements, layout_week, parse_slot_id, slot_id, task_duration, task_height,
    task_segments, task_top,
)
from timeutils import generate_time_slots

SLOTS = default_time_slots()


def task(start, end, day='2024-01-01', task_id=1):
    return {'id': task_id, 'date': day, 'start_time': start, 'end_time': end}


def test_half_hour_task_fills_one_slot():
    assert task_height(task('09:00', '09:30')) == SLOT_HEIGHT


def test_top_offset_from_first_slot():
    assert task_top(task('09:00', '10:00'), SLOTS) == 18 * SLOT_HEIGHT
    # Grid starting at 06:00
    assert task_top(task('09:00', '10:00'), generate_time_slots(6, 24, 30)) == 6 * SLOT_HEIGHT


def test_partial_slot_height_is_proportional():
    assert task_height(task('09:00', '09:45')) == 1.5 * SLOT_HEIGHT


def test_zero_duration_task_has_no_height():
    assert task_height(task('10:00', '10:00')) == 0
    [segment] = task_segments(task('10:00', '10:00'))
    assert segment.height == 0


def test_midnight_crossing_task_splits_into_two_segments():
    segments = task_segments(task('22:00', '02:00'))
    assert len(segments) == 2

    today, tomorrow = segments
    assert today.date == '2024-01-01'
    assert (today.start_minutes, today.end_minutes) == (1320, 1440)
    assert not today.continuation

    assert tomorrow.date == '2024-01-02'
    assert (tomorrow.start_minutes, tomorrow.end_minutes) == (0, 120)
    assert tomorrow.top == 0
    assert tomorrow.continuation

    combined = sum(s.end_minutes - s.start_minutes for s in segments)
    assert combined == (1440 - 1320) + 120
    assert combined == task_duration('22:00', '02:00')


def test_task_ending_at_midnight_stays_on_its_day():
    [segment] = task_segments(task('23:00', '00:00'))
    assert segment.date == '2024-01-01'
    assert (segment.start_minutes, segment.end_minutes) == (1380, 1440)
    assert segment.height == 2 * SLOT_HEIGHT
    assert not segment.continuation


def test_segment_heights_add_up_to_full_height():
    crossing = task('23:30', '01:00')
    assert sum(s.height for s in task_segments(crossing)) == task_height(crossing)


def test_anchor_slot_is_last_slot_not_after_start():
    assert anchor_slot(585, SLOTS) == '09:30'
    assert anchor_slot(540, SLOTS) == '09:00'
    # Before the first slot of a 06:00 grid
    assert anchor_slot(300, generate_time_slots(6, 24, 30)) == '06:00'


def test_each_segment_is_attached_to_one_slot():
    segments = task_segments(task('09:15', '11:00'))
    assert [s.slot for s in segments] == ['09:00']


def test_events_stack_per_day_in_insertion_order():
    events = [
        {'id': 1, 'date': '2024-01-01', 'start_time': '15:00'},
        {'id': 2, 'date': '2024-01-01', 'start_time': None},
        {'id': 3, 'date': '2024-01-02', 'start_time': '08:00'},
        {'id': 4, 'date': '2024-01-01', 'start_time': '07:00'},
    ]
    tops = {p.event_id: p.top for p in event_placements(events)}
    assert tops == {
        1: EVENT_TOP,
        2: EVENT_TOP + EVENT_STEP,
        3: EVENT_TOP,
        4: EVENT_TOP + 2 * EVENT_STEP,
    }


def test_layout_week_places_spillover_from_previous_day():
    tasks = [
        task('23:00', '01:00', day='2023-12-31', task_id=7),
        task('09:00', '10:00', day='2024-01-03', task_id=8),
    ]
    events = [{'id': 1, 'date': '2024-01-07', 'title': 'Deadline'}]

    week = layout_week('2024-01-01', tasks, events)

    assert week['weekStart'] == '2024-01-01'
    assert week['weekEnd'] == '2024-01-07'
    assert len(week['days']) == 7
    monday = week['days'][0]
    assert [s['task_id'] for s in monday['tasks']] == [7]
    assert monday['tasks'][0]['continuation'] is True
    assert [s['task_id'] for s in week['days'][2]['tasks']] == [8]
    assert week['days'][6]['events'][0]['top'] == EVENT_TOP


def test_layout_week_drops_segments_outside_week():
    week = layout_week('2024-01-01', [task('23:00', '01:00', day='2024-01-07')], [])
    sunday = week['days'][6]
    assert len(sunday['tasks']) == 1
    assert sum(len(day['tasks']) for day in week['days']) == 1


def test_slot_id_round_trip():
    identifier = slot_id('2024-01-03', '10:30')
    assert identifier == '2024-01-03_10:30'
    assert parse_slot_id(identifier) == ('2024-01-03', '10:30')


@pytest.mark.parametrize('bad', ['2024-01-03', '2024-01-03_25:00', 'monday_10:00'])
def test_parse_slot_id_rejects_garbage(bad):
    with pytest.raises(ValueError):
        parse_slot_id(bad)


def test_drop_keeps_duration():
    moved = drop_task(task('09:00', '10:30'), '2024-01-04_14:00')
    assert moved == {'date': '2024-01-04', 'start_time': '14:00', 'end_time': '15:30'}


def test_drop_near_midnight_wraps_end_time():
    moved = drop_task(task('09:00', '10:30'), '2024-01-04_23:30')
    assert moved['end_time'] == '01:00'

    moved = drop_task(task('23:00', '01:00'), '2024-01-04_10:00')
    assert (moved['start_time'], moved['end_time']) == ('10:00', '12:00')
