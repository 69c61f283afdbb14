from typing import Annotated, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from timeutils import is_valid_time, parse_date

RecurrenceRule = Literal['DAILY', 'WEEKLY', 'MONTHLY', 'WEEKDAYS']
EventType = Literal['deadline', 'meeting', 'event']
VoteType = Literal['upvote', 'downvote']

DEFAULT_TASK_COLOR = '#3b82f6'
DEFAULT_EVENT_COLOR = '#ef4444'

def _check_date(value: str) -> str:
    try:
        parse_date(value)
    except ValueError:
        raise ValueError('must be a date in YYYY-MM-DD format')
    return value.strip()

def _check_time(value: str) -> str:
    if not is_valid_time(value):
        raise ValueError('must be a time in HH:MM (24-hour) format')
    return value.strip()

IsoDate = Annotated[str, AfterValidator(_check_date)]
ClockTime = Annotated[str, AfterValidator(_check_time)]

# Recurrence state of a scheduled task, read from its two nullable columns

class Standalone(BaseModel):
    kind: Literal['standalone'] = 'standalone'

    def columns(self):
        return {'recurrence_rule': None, 'recurrence_parent_id': None}

class RecurrenceParent(BaseModel):
    kind: Literal['parent'] = 'parent'
    rule: RecurrenceRule

    def columns(self):
        return {'recurrence_rule': self.rule, 'recurrence_parent_id': None}

class RecurrenceInstance(BaseModel):
    kind: Literal['instance'] = 'instance'
    parent_id: int

    def columns(self):
        return {'recurrence_rule': None, 'recurrence_parent_id': self.parent_id}

Recurrence = Annotated[
    Union[Standalone, RecurrenceParent, RecurrenceInstance],
    Field(discriminator='kind'),
]

def recurrence_from_row(row) -> Union[Standalone, RecurrenceParent, RecurrenceInstance]:
    rule = row.get('recurrence_rule')
    parent_id = row.get('recurrence_parent_id')
    if rule and parent_id is not None:
        raise ValueError(f"Task {row.get('id')} has both a recurrence rule and a parent")
    if rule:
        return RecurrenceParent(rule=rule)
    if parent_id is not None:
        return RecurrenceInstance(parent_id=parent_id)
    return Standalone()

# Request bodies

class LoginRequest(BaseModel):
    password: str = Field(min_length=1)

class ScheduledTaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    date: IsoDate
    start_time: ClockTime
    end_time: ClockTime
    color: str = DEFAULT_TASK_COLOR
    recurrence_rule: Optional[RecurrenceRule] = None

    @field_validator('recurrence_rule', mode='before')
    @classmethod
    def blank_rule_is_none(cls, value):
        return value or None

    @property
    def recurrence(self):
        if self.recurrence_rule:
            return RecurrenceParent(rule=self.recurrence_rule)
        return Standalone()

class ScheduledTaskUpdate(BaseModel):
    """Columns a PUT may overwrite; anything else in the body is dropped."""
    model_config = ConfigDict(extra='ignore')

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    date: Optional[IsoDate] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    color: Optional[str] = None
    completed: Optional[bool] = None
    completed_at: Optional[str] = None
    not_completed_reason: Optional[str] = None
    reflection_notes: Optional[str] = None

class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    date: IsoDate
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    type: EventType = 'event'
    color: str = DEFAULT_EVENT_COLOR

    @field_validator('start_time', 'end_time', 'description', mode='before')
    @classmethod
    def blank_is_none(cls, value):
        return value or None

class EventUpdate(BaseModel):
    model_config = ConfigDict(extra='ignore')

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    date: Optional[IsoDate] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    type: Optional[EventType] = None
    color: Optional[str] = None
    completed: Optional[bool] = None
    completed_at: Optional[str] = None

class WeeklyGoalCreate(BaseModel):
    text: str = Field(min_length=1)
    week_start: IsoDate
    completed: bool = False

class WeeklyGoalUpdate(BaseModel):
    text: str = Field(min_length=1)
    completed: bool = False

class PulseNoteCreate(BaseModel):
    content: str = Field(min_length=1)

class TemplateCreate(BaseModel):
    name: str = Field(min_length=1)

class TemplateTaskBody(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    day_of_week: int = Field(ge=0, le=6)
    start_time: ClockTime
    end_time: ClockTime
    color: str = DEFAULT_TASK_COLOR

class ApplyTemplateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    week_start_date: IsoDate = Field(alias='weekStartDate')

class BlogPostCreate(BaseModel):
    id: str = Field(min_length=1, max_length=200, pattern=r'^[A-Za-z0-9][A-Za-z0-9_-]*$')
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    full_content: Optional[str] = None
    date: IsoDate
    theme: Optional[str] = None
    published: bool = True

    @field_validator('theme', 'full_content', mode='before')
    @classmethod
    def blank_is_none(cls, value):
        return value or None

class BlogPostUpdate(BaseModel):
    model_config = ConfigDict(extra='ignore')

    title: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = Field(default=None, min_length=1)
    full_content: Optional[str] = None
    date: Optional[IsoDate] = None
    theme: Optional[str] = None
    published: Optional[bool] = None

class VoteRequest(BaseModel):
    vote_type: VoteType

class MoveTaskRequest(BaseModel):
    slot: str = Field(min_length=1)
