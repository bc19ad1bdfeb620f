"""
Entity types persisted in the local goal database.

Goals own their children exclusively, forming a tree::

    Goal (book_reading) ── Book ─┬─ Chapter ── ChapterNote
                                 └─ ReadingSession
    Goal (fitness) ─────────┬─ TrainingSession
                            ├─ PersonalRecord
                            └─ FitnessGoalConfig (at most one)
    Goal (programming) ──── GitHubRepository ─┬─ CommitActivity
                                              └─ StarHistory

Each entity is a dataclass that knows its table and how to convert itself to and from
a database row. Derived values used by the views (progress, pace, streaks) live here
as properties or plain functions over lists of entities.
"""
import dataclasses
import datetime
import enum
import math
import uuid
from typing import Any, ClassVar, Dict, Iterable, Optional, Tuple

from dateutil.relativedelta import relativedelta

from ..status import status


class GoalType(enum.StrEnum):
    BookReading = 'book_reading'
    Fitness = 'fitness'
    Programming = 'programming'

    @property
    def display_name(self) -> str:
        return GOAL_TYPE_DISPLAY_NAMES[self]


GOAL_TYPE_DISPLAY_NAMES = {
    GoalType.BookReading: 'Book Reading',
    GoalType.Fitness: 'Fitness',
    GoalType.Programming: 'Programming',
}


class WorkoutType(enum.StrEnum):
    Swim = 'swim'
    Bike = 'bike'
    Run = 'run'
    Strength = 'strength'
    Recovery = 'recovery'

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class DistanceUnit(enum.StrEnum):
    Kilometers = 'km'
    Miles = 'mi'
    Meters = 'm'
    Yards = 'yd'


KILOMETERS_PER_UNIT = {
    DistanceUnit.Kilometers: 1.0,
    DistanceUnit.Miles: 1.60934,
    DistanceUnit.Meters: 0.001,
    DistanceUnit.Yards: 0.0009144,
}

EFFORT_DESCRIPTIONS = (
    (range(1, 4), 'Easy'),
    (range(4, 7), 'Moderate'),
    (range(7, 9), 'Hard'),
    (range(9, 11), 'Maximum'),
)

NOTE_PREVIEW_LENGTH = 100
RECENT_COMMIT_WEEKS = 4
SYNC_INTERVAL = datetime.timedelta(hours=1)


def now_utc() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def format_duration(minutes: int) -> str:
    """Format a number of minutes as '1h 5m' or '45m'."""
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f'{hours}h {minutes}m'
    return f'{minutes}m'


def format_clock(seconds: int) -> str:
    """Format seconds as 'h:mm:ss', or 'm:ss' under an hour."""
    hours, rest = divmod(int(seconds), 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f'{hours}:{minutes:02d}:{seconds:02d}'
    return f'{minutes}:{seconds:02d}'


def format_pace(seconds_per_km: int) -> str:
    minutes, seconds = divmod(int(seconds_per_km), 60)
    return f'{minutes}:{seconds:02d}/km'


class Record:
    """Row conversion shared by all entities.

    Subclasses declare their table, their parent foreign key column, and which
    fields need converting between Python and SQLite representations.
    """
    table: ClassVar[str]
    parent_key: ClassVar[Optional[str]] = None
    datetime_fields: ClassVar[Tuple[str, ...]] = ()
    bool_fields: ClassVar[Tuple[str, ...]] = ()
    enum_fields: ClassVar[Dict[str, type]] = {}

    def to_row(self) -> Dict[str, Any]:
        row = {}
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if value is None:
                row[field.name] = None
            elif field.name in self.datetime_fields:
                row[field.name] = value.isoformat()
            elif field.name in self.bool_fields:
                row[field.name] = int(value)
            elif field.name in self.enum_fields:
                row[field.name] = str(value)
            else:
                row[field.name] = value
        return row

    @classmethod
    def from_row(cls, row) -> 'Record':
        kwargs = {}
        for field in dataclasses.fields(cls):
            value = row[field.name]
            if value is not None:
                if field.name in cls.datetime_fields:
                    value = datetime.datetime.fromisoformat(value)
                elif field.name in cls.bool_fields:
                    value = bool(value)
                elif field.name in cls.enum_fields:
                    value = cls.enum_fields[field.name](value)
            kwargs[field.name] = value
        return cls(**kwargs)


@dataclasses.dataclass
class Goal(Record):
    """A top-level tracked objective. Its type is fixed once created."""
    table: ClassVar[str] = 'goals'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('start_date', 'end_date', 'created_at', 'updated_at')
    bool_fields: ClassVar[Tuple[str, ...]] = ('is_archived',)
    enum_fields: ClassVar[Dict[str, type]] = {'goal_type': GoalType}

    title: str
    goal_type: GoalType
    target_value: int = 0
    description: Optional[str] = None
    current_value: int = 0
    start_date: datetime.datetime = dataclasses.field(default_factory=now_utc)
    end_date: Optional[datetime.datetime] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    updated_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    is_archived: bool = False
    id: str = dataclasses.field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.goal_type = GoalType(self.goal_type)

    @property
    def progress(self) -> float:
        if self.target_value <= 0:
            return 0.0
        return min(self.current_value / self.target_value, 1.0)

    @property
    def progress_percentage(self) -> int:
        return int(self.progress * 100)

    @property
    def goal_year(self) -> int:
        return self.start_date.year

    def is_current_year(self, today: Optional[datetime.date] = None) -> bool:
        today = today or datetime.date.today()
        return self.goal_year == today.year

    def days_remaining(self, today: Optional[datetime.date] = None) -> int:
        """Days left until the end date, or until 31 December when there is none."""
        today = today or datetime.date.today()
        end = self.end_date.date() if self.end_date else datetime.date(today.year, 12, 31)
        return max(0, (end - today).days)


@dataclasses.dataclass
class Book(Record):
    """A book read under a reading goal.

    ``current_page`` must stay within ``0..page_count``. Values outside that range
    are rejected with :class:`status.PageOutOfRangeException`, never clamped.
    """
    table: ClassVar[str] = 'books'
    parent_key: ClassVar[str] = 'goal_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = (
        'start_date', 'completion_date', 'started_reading_date', 'last_read_date', 'created_at'
    )
    bool_fields: ClassVar[Tuple[str, ...]] = ('is_completed',)

    goal_id: str
    title: str
    author: Optional[str] = None
    isbn: Optional[str] = None
    cover_url: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = None
    current_page: int = 0
    is_completed: bool = False
    start_date: Optional[datetime.datetime] = None
    completion_date: Optional[datetime.datetime] = None
    notes: Optional[str] = None
    started_reading_date: Optional[datetime.datetime] = None
    last_read_date: Optional[datetime.datetime] = None
    daily_page_goal: Optional[int] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    def validate(self) -> None:
        """Raise :class:`status.PageOutOfRangeException` if the page fields are inconsistent."""
        if self.page_count is not None and self.page_count < 0:
            raise status.PageOutOfRangeException(f'"{self.title}" has a negative page count ({self.page_count}).')
        if self.current_page < 0:
            raise status.PageOutOfRangeException(f'"{self.title}": page {self.current_page} is negative.')
        if self.page_count is not None and self.current_page > self.page_count:
            raise status.PageOutOfRangeException(
                f'"{self.title}": page {self.current_page} exceeds the page count ({self.page_count}).'
            )

    def set_current_page(self, page: int) -> None:
        """Move the bookmark, rejecting pages outside the book."""
        previous = self.current_page
        self.current_page = page
        try:
            self.validate()
        except status.PageOutOfRangeException:
            self.current_page = previous
            raise

    def mark_as_completed(self, when: Optional[datetime.datetime] = None) -> None:
        self.is_completed = True
        self.completion_date = when or now_utc()
        if self.page_count is not None:
            self.current_page = self.page_count

    @property
    def reading_progress(self) -> float:
        if not self.page_count:
            return 0.0
        return self.current_page / self.page_count

    @property
    def reading_progress_percentage(self) -> int:
        return int(self.reading_progress * 100)

    @property
    def pages_remaining(self) -> Optional[int]:
        if self.page_count is None:
            return None
        return max(0, self.page_count - self.current_page)

    @property
    def is_currently_reading(self) -> bool:
        return not self.is_completed and self.current_page > 0

    def days_reading(self, today: Optional[datetime.date] = None) -> int:
        """Days since reading started, counting at least one once started."""
        if self.started_reading_date is None:
            return 0
        today = today or datetime.date.today()
        return max(1, (today - self.started_reading_date.date()).days)

    def average_pages_per_day(self, today: Optional[datetime.date] = None) -> float:
        days = self.days_reading(today)
        if days <= 0:
            return 0.0
        return self.current_page / days

    def estimated_days_to_complete(self, today: Optional[datetime.date] = None) -> Optional[int]:
        remaining = self.pages_remaining
        pace = self.average_pages_per_day(today)
        if remaining is None or pace <= 0:
            return None
        return math.ceil(remaining / pace)

    def estimated_completion_date(self, today: Optional[datetime.date] = None) -> Optional[datetime.date]:
        today = today or datetime.date.today()
        days = self.estimated_days_to_complete(today)
        if days is None:
            return None
        return today + datetime.timedelta(days=days)


@dataclasses.dataclass
class ReadingSession(Record):
    """One sitting of reading logged against a book."""
    table: ClassVar[str] = 'reading_sessions'
    parent_key: ClassVar[str] = 'book_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('date', 'created_at')

    book_id: str
    pages_read: int = 0
    duration_minutes: int = 0
    start_page: int = 0
    end_page: int = 0
    date: datetime.datetime = dataclasses.field(default_factory=now_utc)
    notes: Optional[str] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    @property
    def pages_per_hour(self) -> float:
        if self.duration_minutes <= 0:
            return 0.0
        return self.pages_read / (self.duration_minutes / 60.0)

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration_minutes)


def total_pages_read(sessions: Iterable[ReadingSession]) -> int:
    return sum(s.pages_read for s in sessions)


def total_reading_time_minutes(sessions: Iterable[ReadingSession]) -> int:
    return sum(s.duration_minutes for s in sessions)


def average_pages_per_hour(sessions: Iterable[ReadingSession]) -> float:
    sessions = list(sessions)
    minutes = total_reading_time_minutes(sessions)
    if minutes <= 0:
        return 0.0
    return total_pages_read(sessions) / (minutes / 60.0)


def reading_streak(sessions: Iterable[ReadingSession], today: Optional[datetime.date] = None) -> int:
    """Number of consecutive days, ending today, with at least one reading session."""
    day = today or datetime.date.today()
    days = {s.date.date() for s in sessions}
    streak = 0
    while day in days:
        streak += 1
        day -= datetime.timedelta(days=1)
    return streak


@dataclasses.dataclass
class Chapter(Record):
    table: ClassVar[str] = 'chapters'
    parent_key: ClassVar[str] = 'book_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('created_at',)
    bool_fields: ClassVar[Tuple[str, ...]] = ('is_completed',)

    book_id: str
    title: str
    order_index: int = 0
    is_completed: bool = False
    page_start: Optional[int] = None
    page_end: Optional[int] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    @property
    def page_range(self) -> Optional[str]:
        if self.page_start is None:
            return None
        if self.page_end is not None:
            return f'pp. {self.page_start}-{self.page_end}'
        return f'p. {self.page_start}'

    def toggle_completed(self) -> None:
        self.is_completed = not self.is_completed


@dataclasses.dataclass
class ChapterNote(Record):
    table: ClassVar[str] = 'chapter_notes'
    parent_key: ClassVar[str] = 'chapter_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('created_at', 'updated_at')

    chapter_id: str
    content: str = ''
    page_number: Optional[int] = None
    highlight_color: Optional[str] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    updated_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()

    @property
    def preview(self) -> str:
        trimmed = self.content.strip()
        if len(trimmed) <= NOTE_PREVIEW_LENGTH:
            return trimmed
        return trimmed[:NOTE_PREVIEW_LENGTH] + '...'

    def update(self, content: str) -> None:
        self.content = content
        self.updated_at = now_utc()


@dataclasses.dataclass
class TrainingSession(Record):
    """One logged workout under a fitness goal."""
    table: ClassVar[str] = 'training_sessions'
    parent_key: ClassVar[str] = 'goal_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('date', 'created_at')
    bool_fields: ClassVar[Tuple[str, ...]] = ('is_race',)
    enum_fields: ClassVar[Dict[str, type]] = {'workout_type': WorkoutType, 'distance_unit': DistanceUnit}

    goal_id: str
    workout_type: WorkoutType
    duration_minutes: int = 0
    date: datetime.datetime = dataclasses.field(default_factory=now_utc)
    distance: Optional[float] = None
    distance_unit: Optional[DistanceUnit] = None
    heart_rate_avg: Optional[int] = None
    heart_rate_max: Optional[int] = None
    calories: Optional[int] = None
    perceived_effort: Optional[int] = None
    title: Optional[str] = None
    notes: Optional[str] = None
    pace_seconds_per_km: Optional[int] = None
    elevation_gain: Optional[float] = None
    elevation_loss: Optional[float] = None
    is_race: bool = False
    race_position: Optional[int] = None
    race_field_size: Optional[int] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.workout_type = WorkoutType(self.workout_type)
        if self.distance_unit is not None:
            self.distance_unit = DistanceUnit(self.distance_unit)

    def validate(self) -> None:
        if self.duration_minutes < 0:
            raise status.InvalidRecordException(f'Duration must not be negative, got {self.duration_minutes}.')
        if self.perceived_effort is not None and not 1 <= self.perceived_effort <= 10:
            raise status.InvalidRecordException(f'Perceived effort must be between 1 and 10, got {self.perceived_effort}.')
        if self.distance is not None and self.distance_unit is None:
            raise status.InvalidRecordException('A distance needs a distance unit.')

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration_minutes)

    @property
    def formatted_distance(self) -> Optional[str]:
        if self.distance is None or self.distance_unit is None:
            return None
        return f'{self.distance:.2f} {self.distance_unit}'

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        return f'{self.workout_type.display_name} - {self.formatted_duration}'

    @property
    def effort_description(self) -> Optional[str]:
        if self.perceived_effort is None:
            return None
        return next((label for r, label in EFFORT_DESCRIPTIONS if self.perceived_effort in r), None)

    @property
    def distance_km(self) -> Optional[float]:
        if self.distance is None or self.distance_unit is None:
            return None
        return self.distance * KILOMETERS_PER_UNIT[self.distance_unit]

    @property
    def effective_pace(self) -> Optional[int]:
        """Seconds per kilometre, as recorded or computed from distance and duration."""
        if self.pace_seconds_per_km is not None:
            return self.pace_seconds_per_km
        km = self.distance_km
        if not km or self.duration_minutes <= 0:
            return None
        return int(self.duration_minutes * 60 / km)

    @property
    def formatted_pace(self) -> Optional[str]:
        pace = self.effective_pace
        if pace is None:
            return None
        return format_pace(pace)

    @property
    def race_result(self) -> Optional[str]:
        if not self.is_race or self.race_position is None:
            return None
        if self.race_field_size is not None:
            return f'{self.race_position}/{self.race_field_size}'
        return f'#{self.race_position}'


class FitnessGoalKind(enum.StrEnum):
    RaceTraining = 'race_training'
    Strength = 'strength_goal'
    Consistency = 'consistency_goal'
    CustomMetric = 'custom_metric'


class RaceType(enum.StrEnum):
    FiveK = '5k'
    TenK = '10k'
    HalfMarathon = 'half_marathon'
    Marathon = 'marathon'
    Triathlon = 'triathlon'
    Custom = 'custom'

    @property
    def distance_km(self) -> float:
        return RACE_DISTANCES_KM[self]


# Triathlon is the Olympic total
RACE_DISTANCES_KM = {
    RaceType.FiveK: 5.0,
    RaceType.TenK: 10.0,
    RaceType.HalfMarathon: 21.0975,
    RaceType.Marathon: 42.195,
    RaceType.Triathlon: 51.5,
    RaceType.Custom: 0.0,
}


class TrainingPhase(enum.StrEnum):
    Base = 'base'
    Build = 'build'
    Peak = 'peak'
    Taper = 'taper'
    Recovery = 'recovery'


@dataclasses.dataclass
class FitnessGoalConfig(Record):
    """Targets of a fitness goal. A goal has at most one configuration.

    Only the fields of the chosen kind are used: race fields for race training,
    exercise and weight for strength goals, frequency for consistency goals and the
    metric fields for custom metrics.
    """
    table: ClassVar[str] = 'fitness_goal_configs'
    parent_key: ClassVar[str] = 'goal_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('race_date', 'phase_start_date', 'phase_end_date', 'created_at')
    enum_fields: ClassVar[Dict[str, type]] = {
        'kind': FitnessGoalKind,
        'race_type': RaceType,
        'current_phase': TrainingPhase,
    }

    goal_id: str
    kind: FitnessGoalKind = FitnessGoalKind.Consistency
    race_type: Optional[RaceType] = None
    race_date: Optional[datetime.datetime] = None
    race_name: Optional[str] = None
    target_pace_seconds_per_km: Optional[int] = None
    target_finish_time_seconds: Optional[int] = None
    custom_distance_km: Optional[float] = None
    current_phase: Optional[TrainingPhase] = None
    phase_start_date: Optional[datetime.datetime] = None
    phase_end_date: Optional[datetime.datetime] = None
    weekly_mileage_target_km: Optional[float] = None
    target_exercise: Optional[str] = None
    target_weight: Optional[float] = None
    target_reps: Optional[int] = None
    weight_unit: str = 'kg'
    sessions_per_week: Optional[int] = None
    minimum_duration_minutes: Optional[int] = None
    metric_name: Optional[str] = None
    metric_unit: Optional[str] = None
    target_metric_value: Optional[float] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.kind = FitnessGoalKind(self.kind)
        if self.race_type is not None:
            self.race_type = RaceType(self.race_type)
        if self.current_phase is not None:
            self.current_phase = TrainingPhase(self.current_phase)

    def validate(self) -> None:
        for name in ('target_pace_seconds_per_km', 'target_finish_time_seconds', 'custom_distance_km',
                     'weekly_mileage_target_km', 'target_weight', 'target_reps', 'sessions_per_week',
                     'minimum_duration_minutes'):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise status.InvalidRecordException(f'{name} must not be negative, got {value}.')

    @property
    def is_race_training(self) -> bool:
        return self.kind == FitnessGoalKind.RaceTraining

    @property
    def is_strength_goal(self) -> bool:
        return self.kind == FitnessGoalKind.Strength

    @property
    def is_consistency_goal(self) -> bool:
        return self.kind == FitnessGoalKind.Consistency

    def days_until_race(self, today: Optional[datetime.date] = None) -> Optional[int]:
        if self.race_date is None:
            return None
        today = today or datetime.date.today()
        return max(0, (self.race_date.date() - today).days)

    def weeks_until_race(self, today: Optional[datetime.date] = None) -> Optional[int]:
        days = self.days_until_race(today)
        if days is None:
            return None
        return days // 7

    @property
    def race_distance_km(self) -> Optional[float]:
        """The custom distance when set, otherwise the distance of the race type."""
        if self.custom_distance_km:
            return self.custom_distance_km
        if self.race_type is None:
            return None
        return self.race_type.distance_km

    @property
    def target_pace_formatted(self) -> Optional[str]:
        if self.target_pace_seconds_per_km is None:
            return None
        return format_pace(self.target_pace_seconds_per_km)

    @property
    def target_finish_time_formatted(self) -> Optional[str]:
        if self.target_finish_time_seconds is None:
            return None
        return format_clock(self.target_finish_time_seconds)

    @property
    def weekly_mileage_target_formatted(self) -> Optional[str]:
        if self.weekly_mileage_target_km is None:
            return None
        return f'{self.weekly_mileage_target_km:.1f} km/week'

    def calculate_finish_time(self, pace_seconds_per_km: int) -> Optional[int]:
        distance = self.race_distance_km
        if distance is None:
            return None
        return int(distance * pace_seconds_per_km)

    def calculate_required_pace(self, target_time_seconds: int) -> Optional[int]:
        distance = self.race_distance_km
        if not distance:
            return None
        return int(target_time_seconds / distance)


class RecordCategory(enum.StrEnum):
    Running = 'running'
    Cycling = 'cycling'
    Swimming = 'swimming'
    Strength = 'strength'
    Custom = 'custom'

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def is_timed(self) -> bool:
        """Timed records store seconds, and a lower value is better."""
        return self in (RecordCategory.Running, RecordCategory.Cycling, RecordCategory.Swimming)

    @property
    def default_unit(self) -> str:
        if self.is_timed:
            return 'seconds'
        if self == RecordCategory.Strength:
            return 'kg'
        return ''


@dataclasses.dataclass
class PersonalRecord(Record):
    """A best result for one exercise under a fitness goal."""
    table: ClassVar[str] = 'personal_records'
    parent_key: ClassVar[str] = 'goal_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('achieved_date', 'previous_date', 'created_at')
    enum_fields: ClassVar[Dict[str, type]] = {'category': RecordCategory}

    goal_id: str
    exercise: str
    category: RecordCategory = RecordCategory.Running
    value: float = 0.0
    unit: str = ''
    achieved_date: datetime.datetime = dataclasses.field(default_factory=now_utc)
    notes: Optional[str] = None
    previous_value: Optional[float] = None
    previous_date: Optional[datetime.datetime] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.category = RecordCategory(self.category)
        if not self.unit:
            self.unit = self.category.default_unit

    def validate(self) -> None:
        if not self.exercise.strip():
            raise status.InvalidRecordException('A personal record needs an exercise name.')
        if self.value < 0:
            raise status.InvalidRecordException(f'"{self.exercise}": the value must not be negative, got {self.value}.')

    def supersede(self, value: float, achieved_date: Optional[datetime.datetime] = None) -> None:
        """Replace the record with a new result, keeping the current one as the previous best."""
        self.previous_value = self.value
        self.previous_date = self.achieved_date
        self.value = value
        self.achieved_date = achieved_date or now_utc()

    @property
    def improvement(self) -> Optional[float]:
        if self.previous_value is None:
            return None
        return self.value - self.previous_value

    @property
    def improvement_percentage(self) -> Optional[float]:
        if not self.previous_value or self.previous_value <= 0:
            return None
        return (self.value - self.previous_value) / self.previous_value * 100

    @property
    def is_improvement(self) -> bool:
        if self.previous_value is None:
            return True
        if self.category.is_timed:
            return self.value < self.previous_value
        return self.value > self.previous_value

    @property
    def formatted_value(self) -> str:
        if self.category.is_timed:
            return format_clock(self.value)
        return f'{self.value:.1f} {self.unit}'

    @property
    def formatted_improvement(self) -> Optional[str]:
        improvement = self.improvement
        if improvement is None:
            return None
        if self.category.is_timed:
            direction = 'faster' if improvement < 0 else 'slower'
            minutes, seconds = divmod(abs(int(improvement)), 60)
            if minutes > 0:
                return f'{minutes}m {seconds}s {direction}'
            return f'{seconds}s {direction}'
        sign = '+' if improvement > 0 else ''
        return f'{sign}{improvement:.1f} {self.unit}'

    @property
    def display_title(self) -> str:
        return f'{self.exercise} PR'


@dataclasses.dataclass
class GitHubRepository(Record):
    """A repository tracked under a programming goal."""
    table: ClassVar[str] = 'github_repositories'
    parent_key: ClassVar[str] = 'goal_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('last_synced_at', 'created_at')
    bool_fields: ClassVar[Tuple[str, ...]] = ('is_private',)

    goal_id: str
    owner: str
    name: str
    repo_id: int = 0
    description: Optional[str] = None
    html_url: str = ''
    language: Optional[str] = None
    star_count: int = 0
    fork_count: int = 0
    open_issues_count: int = 0
    is_private: bool = False
    default_branch: str = 'main'
    last_synced_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    @property
    def full_name(self) -> str:
        return f'{self.owner}/{self.name}'

    def needs_sync(self, now: Optional[datetime.datetime] = None) -> bool:
        if self.last_synced_at is None:
            return True
        now = now or now_utc()
        return now - self.last_synced_at >= SYNC_INTERVAL

    def update_from_api(self, data: Dict[str, Any], synced_at: Optional[datetime.datetime] = None) -> None:
        """Copy fields from a GitHub ``/repos/{owner}/{name}`` response."""
        self.repo_id = data.get('id', self.repo_id)
        self.description = data.get('description')
        self.html_url = data.get('html_url', self.html_url)
        self.language = data.get('language')
        self.star_count = data.get('stargazers_count', 0)
        self.fork_count = data.get('forks_count', 0)
        self.open_issues_count = data.get('open_issues_count', 0)
        self.is_private = bool(data.get('private', False))
        self.default_branch = data.get('default_branch') or self.default_branch
        self.last_synced_at = synced_at or now_utc()


@dataclasses.dataclass
class CommitActivity(Record):
    """Commit totals for one week of a repository."""
    table: ClassVar[str] = 'commit_activities'
    parent_key: ClassVar[str] = 'repository_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('week_start',)

    repository_id: str
    week_start: datetime.datetime
    commit_count: int = 0
    additions: int = 0
    deletions: int = 0
    id: str = dataclasses.field(default_factory=new_id)

    @property
    def net_changes(self) -> int:
        return self.additions - self.deletions

    @property
    def has_activity(self) -> bool:
        return self.commit_count > 0

    @property
    def week_label(self) -> str:
        from ..settings import locale
        return locale.short_formatted(self.week_start)


def total_commits(activities: Iterable[CommitActivity]) -> int:
    return sum(a.commit_count for a in activities)


def recent_commits(activities: Iterable[CommitActivity], now: Optional[datetime.datetime] = None) -> int:
    """Commits in weeks starting within the last four weeks."""
    cutoff = (now or now_utc()) - datetime.timedelta(weeks=RECENT_COMMIT_WEEKS)
    return sum(a.commit_count for a in activities if a.week_start >= cutoff)


def format_count(count: int) -> str:
    """Format a count as '1.2k' from a thousand upwards."""
    if count >= 1000:
        return f'{count / 1000.0:.1f}k'
    return str(count)


@dataclasses.dataclass
class StarHistory(Record):
    """Repository counters captured at one sync."""
    table: ClassVar[str] = 'star_history'
    parent_key: ClassVar[str] = 'repository_id'
    datetime_fields: ClassVar[Tuple[str, ...]] = ('date', 'created_at')

    repository_id: str
    date: datetime.datetime = dataclasses.field(default_factory=now_utc)
    star_count: int = 0
    fork_count: int = 0
    watcher_count: int = 0
    open_issues_count: int = 0
    created_at: datetime.datetime = dataclasses.field(default_factory=now_utc)
    id: str = dataclasses.field(default_factory=new_id)

    @classmethod
    def from_api(cls, repository_id: str, data: Dict[str, Any],
                 date: Optional[datetime.datetime] = None) -> 'StarHistory':
        """Capture the counters of a GitHub ``/repos/{owner}/{name}`` response."""
        return cls(
            repository_id=repository_id,
            date=date or now_utc(),
            star_count=data.get('stargazers_count', 0),
            fork_count=data.get('forks_count', 0),
            watcher_count=data.get('subscribers_count', data.get('watchers_count', 0)),
            open_issues_count=data.get('open_issues_count', 0),
        )

    @property
    def formatted_star_count(self) -> str:
        return format_count(self.star_count)

    @property
    def formatted_fork_count(self) -> str:
        return format_count(self.fork_count)

    @property
    def formatted_date(self) -> str:
        from ..settings import locale
        return locale.short_formatted(self.date)


def star_growth_since(history: Iterable[StarHistory], since: datetime.datetime) -> int:
    """Stars gained between the first and last snapshot taken at or after since."""
    recent = sorted((h for h in history if h.date >= since), key=lambda h: h.date)
    if not recent:
        return 0
    return recent[-1].star_count - recent[0].star_count


def star_growth_this_week(history: Iterable[StarHistory], now: Optional[datetime.datetime] = None) -> int:
    return star_growth_since(history, (now or now_utc()) - datetime.timedelta(days=7))


def star_growth_this_month(history: Iterable[StarHistory], now: Optional[datetime.datetime] = None) -> int:
    return star_growth_since(history, (now or now_utc()) - relativedelta(months=1))


def average_daily_star_growth(history: Iterable[StarHistory]) -> float:
    ordered = sorted(history, key=lambda h: h.date)
    if len(ordered) < 2:
        return 0.0
    days = (ordered[-1].date - ordered[0].date).days
    if days <= 0:
        return 0.0
    return (ordered[-1].star_count - ordered[0].star_count) / days


def projected_stars_at(
        history: Iterable[StarHistory],
        when: datetime.datetime,
        now: Optional[datetime.datetime] = None
) -> Optional[int]:
    """Extrapolate the latest star count to when, at the average daily growth."""
    history = list(history)
    if not history:
        return None
    latest = max(history, key=lambda h: h.date)
    days = (when - (now or now_utc())).days
    return latest.star_count + int(average_daily_star_growth(history) * days)


ENTITY_TYPES = (
    Goal,
    Book,
    ReadingSession,
    Chapter,
    ChapterNote,
    TrainingSession,
    FitnessGoalConfig,
    PersonalRecord,
    GitHubRepository,
    CommitActivity,
    StarHistory,
)

# Entities attached directly to a goal, and the only goal type allowed to own them
GOAL_TYPE_FOR_CHILD = {
    Book: GoalType.BookReading,
    TrainingSession: GoalType.Fitness,
    FitnessGoalConfig: GoalType.Fitness,
    PersonalRecord: GoalType.Fitness,
    GitHubRepository: GoalType.Programming,
}
