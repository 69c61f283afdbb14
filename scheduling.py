"""Recurrence expansion and template application.

Both operations issue one INSERT per generated row with no surrounding
transaction: if an insert fails part-way, the rows written before it stay.
"""
import logging
from datetime import date
from typing import List

from models import RecurrenceInstance, RecurrenceParent, Standalone
from timeutils import add_days, add_months, add_weekdays, format_date, parse_date

logger = logging.getLogger(__name__)

# 12 weeks
HORIZON_DAYS = 84


def occurrence_dates(start: date, rule: str, horizon: int = HORIZON_DAYS) -> List[date]:
    """Dates of the generated instances for a parent dated ``start``.

    The parent's own date is never included.
    """
    if rule == 'DAILY':
        return [add_days(start, i) for i in range(1, horizon + 1)]
    if rule == 'WEEKLY':
        return [add_days(start, i) for i in range(1, horizon + 1) if i % 7 == 0]
    if rule == 'WEEKDAYS':
        return [add_weekdays(start, i) for i in range(1, horizon + 1)]
    if rule == 'MONTHLY':
        dates = []
        months = 1
        while (add_months(start, months) - start).days <= horizon:
            dates.append(add_months(start, months))
            months += 1
        return dates
    raise ValueError(f"Unknown recurrence rule: {rule}")


def _insert_task(db, task, task_date, recurrence, template_task_id=None):
    columns = {
        'title': task['title'],
        'description': task.get('description'),
        'date': task_date,
        'start_time': task['start_time'],
        'end_time': task['end_time'],
        'color': task.get('color') or '#3b82f6',
        **recurrence.columns(),
        'template_task_id': template_task_id,
        'is_from_template': 1 if template_task_id is not None else 0,
    }
    sql = (
        f"INSERT INTO scheduled_tasks ({', '.join(columns)}) "
        f"VALUES ({db.placeholders(len(columns))})"
    )
    return db.run(sql, list(columns.values())).inserted_id


def create_scheduled_task(db, task, recurrence):
    """Insert a single task row carrying the given recurrence state."""
    return _insert_task(db, task, task['date'], recurrence)


def create_recurring_task(db, task):
    """Insert the parent row, then one instance per occurrence date.

    ``task`` is a dict with title, description, date, start_time, end_time,
    color and recurrence_rule. Returns ``(parent_id, instances_created)``.
    """
    rule = task['recurrence_rule']
    parent_id = _insert_task(db, task, task['date'], RecurrenceParent(rule=rule))

    instance = RecurrenceInstance(parent_id=parent_id)
    created = 0
    for occurrence in occurrence_dates(parse_date(task['date']), rule):
        _insert_task(db, task, format_date(occurrence), instance)
        created += 1

    logger.info(f"Created {created} {rule} instances for task {parent_id}")
    return parent_id, created


def delete_scheduled_task(db, task_id):
    """Delete a task; deleting a recurrence parent also removes its instances."""
    ph = db.ph
    result = db.run(
        f"DELETE FROM scheduled_tasks WHERE id = {ph} OR recurrence_parent_id = {ph}",
        (task_id, task_id),
    )
    return result.rows_affected


def apply_template(db, template_id, week_start):
    """Copy every task of a template into the week beginning ``week_start``.

    Returns the created tasks, or None when the template does not exist.
    Applying twice creates duplicates.
    """
    ph = db.ph
    template = db.get(f"SELECT * FROM templates WHERE id = {ph}", (template_id,))
    if not template:
        return None

    template_tasks = db.query(
        f"SELECT * FROM template_tasks WHERE template_id = {ph} ORDER BY day_of_week, start_time",
        (template_id,),
    )

    start = parse_date(week_start)
    inserted = []
    for template_task in template_tasks:
        task_date = format_date(add_days(start, template_task['day_of_week']))
        task_id = _insert_task(
            db, template_task, task_date, Standalone(),
            template_task_id=template_task['id'],
        )
        inserted.append({
            **template_task,
            'id': task_id,
            'date': task_date,
            'template_task_id': template_task['id'],
            'is_from_template': 1,
        })

    logger.info(f"Applied template {template_id} to week {week_start}: {len(inserted)} tasks")
    return inserted
