"""
Local Goal Database Module

This module persists goals and everything they own in a local SQLite file.

Ownership is enforced by the schema itself: every child table references its parent
with ``ON DELETE CASCADE`` and foreign keys are switched on for every connection, so
deleting a goal removes everything below it in one statement: books with their chapters,
notes and reading sessions, fitness configuration, training sessions, personal records,
and repositories with their commit activity and star history. Triggers keep a goal's type fixed
and only allow children of the matching kind.

The primary entry points are:
  - open_database: Creates or opens the database file and returns a :class:`Database`.
  - Database: Explicit handle with the create/read/update/delete operations.
"""
import logging
import pathlib
import sqlite3
from typing import Iterable, List, Optional, Type, Union

from . import models
from ..status import status

SCHEMA_VERSION = 2

TABLE_META = 'metatable'

TABLES = tuple(cls.table for cls in models.ENTITY_TYPES)

ERROR_TYPE_IMMUTABLE = 'goal_type is immutable'
ERROR_TYPE_MISMATCH = 'goal type mismatch'

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {TABLE_META} (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS goals (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    goal_type TEXT NOT NULL CHECK (goal_type IN ('book_reading', 'fitness', 'programming')),
    target_value INTEGER NOT NULL DEFAULT 0,
    description TEXT,
    current_value INTEGER NOT NULL DEFAULT 0,
    start_date TEXT NOT NULL,
    end_date TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    is_archived INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS books (
    id TEXT PRIMARY KEY,
    goal_id TEXT NOT NULL REFERENCES goals(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    author TEXT,
    isbn TEXT,
    cover_url TEXT,
    description TEXT,
    page_count INTEGER CHECK (page_count IS NULL OR page_count >= 0),
    current_page INTEGER NOT NULL DEFAULT 0,
    is_completed INTEGER NOT NULL DEFAULT 0,
    start_date TEXT,
    completion_date TEXT,
    notes TEXT,
    started_reading_date TEXT,
    last_read_date TEXT,
    daily_page_goal INTEGER,
    created_at TEXT NOT NULL,
    CHECK (current_page >= 0 AND (page_count IS NULL OR current_page <= page_count))
);

CREATE TABLE IF NOT EXISTS reading_sessions (
    id TEXT PRIMARY KEY,
    book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    pages_read INTEGER NOT NULL DEFAULT 0,
    duration_minutes INTEGER NOT NULL DEFAULT 0,
    start_page INTEGER NOT NULL DEFAULT 0,
    end_page INTEGER NOT NULL DEFAULT 0,
    date TEXT NOT NULL,
    notes TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chapters (
    id TEXT PRIMARY KEY,
    book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    order_index INTEGER NOT NULL DEFAULT 0,
    is_completed INTEGER NOT NULL DEFAULT 0,
    page_start INTEGER,
    page_end INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chapter_notes (
    id TEXT PRIMARY KEY,
    chapter_id TEXT NOT NULL REFERENCES chapters(id) ON DELETE CASCADE,
    content TEXT NOT NULL DEFAULT '',
    page_number INTEGER,
    highlight_color TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS training_sessions (
    id TEXT PRIMARY KEY,
    goal_id TEXT NOT NULL REFERENCES goals(id) ON DELETE CASCADE,
    workout_type TEXT NOT NULL,
    duration_minutes INTEGER NOT NULL DEFAULT 0,
    date TEXT NOT NULL,
    distance REAL,
    distance_unit TEXT,
    heart_rate_avg INTEGER,
    heart_rate_max INTEGER,
    calories INTEGER,
    perceived_effort INTEGER CHECK (perceived_effort IS NULL OR perceived_effort BETWEEN 1 AND 10),
    title TEXT,
    notes TEXT,
    pace_seconds_per_km INTEGER,
    elevation_gain REAL,
    elevation_loss REAL,
    is_race INTEGER NOT NULL DEFAULT 0,
    race_position INTEGER,
    race_field_size INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS fitness_goal_configs (
    id TEXT PRIMARY KEY,
    goal_id TEXT NOT NULL UNIQUE REFERENCES goals(id) ON DELETE CASCADE,
    kind TEXT NOT NULL DEFAULT 'consistency_goal',
    race_type TEXT,
    race_date TEXT,
    race_name TEXT,
    target_pace_seconds_per_km INTEGER,
    target_finish_time_seconds INTEGER,
    custom_distance_km REAL,
    current_phase TEXT,
    phase_start_date TEXT,
    phase_end_date TEXT,
    weekly_mileage_target_km REAL,
    target_exercise TEXT,
    target_weight REAL,
    target_reps INTEGER,
    weight_unit TEXT NOT NULL DEFAULT 'kg',
    sessions_per_week INTEGER,
    minimum_duration_minutes INTEGER,
    metric_name TEXT,
    metric_unit TEXT,
    target_metric_value REAL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS personal_records (
    id TEXT PRIMARY KEY,
    goal_id TEXT NOT NULL REFERENCES goals(id) ON DELETE CASCADE,
    exercise TEXT NOT NULL,
    category TEXT NOT NULL,
    value REAL NOT NULL DEFAULT 0,
    unit TEXT NOT NULL DEFAULT '',
    achieved_date TEXT NOT NULL,
    notes TEXT,
    previous_value REAL,
    previous_date TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS github_repositories (
    id TEXT PRIMARY KEY,
    goal_id TEXT NOT NULL REFERENCES goals(id) ON DELETE CASCADE,
    owner TEXT NOT NULL,
    name TEXT NOT NULL,
    repo_id INTEGER NOT NULL DEFAULT 0,
    description TEXT,
    html_url TEXT NOT NULL DEFAULT '',
    language TEXT,
    star_count INTEGER NOT NULL DEFAULT 0,
    fork_count INTEGER NOT NULL DEFAULT 0,
    open_issues_count INTEGER NOT NULL DEFAULT 0,
    is_private INTEGER NOT NULL DEFAULT 0,
    default_branch TEXT NOT NULL DEFAULT 'main',
    last_synced_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS commit_activities (
    id TEXT PRIMARY KEY,
    repository_id TEXT NOT NULL REFERENCES github_repositories(id) ON DELETE CASCADE,
    week_start TEXT NOT NULL,
    commit_count INTEGER NOT NULL DEFAULT 0,
    additions INTEGER NOT NULL DEFAULT 0,
    deletions INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS star_history (
    id TEXT PRIMARY KEY,
    repository_id TEXT NOT NULL REFERENCES github_repositories(id) ON DELETE CASCADE,
    date TEXT NOT NULL,
    star_count INTEGER NOT NULL DEFAULT 0,
    fork_count INTEGER NOT NULL DEFAULT 0,
    watcher_count INTEGER NOT NULL DEFAULT 0,
    open_issues_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_books_goal ON books(goal_id);
CREATE INDEX IF NOT EXISTS idx_reading_sessions_book ON reading_sessions(book_id);
CREATE INDEX IF NOT EXISTS idx_chapters_book ON chapters(book_id);
CREATE INDEX IF NOT EXISTS idx_chapter_notes_chapter ON chapter_notes(chapter_id);
CREATE INDEX IF NOT EXISTS idx_training_sessions_goal ON training_sessions(goal_id);
CREATE INDEX IF NOT EXISTS idx_personal_records_goal ON personal_records(goal_id);
CREATE INDEX IF NOT EXISTS idx_github_repositories_goal ON github_repositories(goal_id);
CREATE INDEX IF NOT EXISTS idx_commit_activities_repository ON commit_activities(repository_id);
CREATE INDEX IF NOT EXISTS idx_star_history_repository ON star_history(repository_id);

CREATE TRIGGER IF NOT EXISTS goals_type_immutable
BEFORE UPDATE OF goal_type ON goals
WHEN NEW.goal_type IS NOT OLD.goal_type
BEGIN
    SELECT RAISE(ABORT, '{ERROR_TYPE_IMMUTABLE}');
END;
"""

# One insert and one re-parent trigger per goal-owned table
CHILD_TRIGGER = """
CREATE TRIGGER IF NOT EXISTS {table}_{event}_goal_type
BEFORE {clause} ON {table}
WHEN (SELECT goal_type FROM goals WHERE id = NEW.goal_id) IS NOT '{goal_type}'
BEGIN
    SELECT RAISE(ABORT, '{message}');
END;
"""


def _child_triggers() -> str:
    sql = ''
    for cls, goal_type in models.GOAL_TYPE_FOR_CHILD.items():
        for event, clause in (('insert', 'INSERT'), ('update', 'UPDATE OF goal_id')):
            sql += CHILD_TRIGGER.format(
                table=cls.table,
                event=event,
                clause=clause,
                goal_type=goal_type.value,
                message=ERROR_TYPE_MISMATCH,
            )
    return sql


def open_database(path: Union[str, pathlib.Path]) -> 'Database':
    """Open the goal database at path, creating the file and schema when needed.

    Args:
        path: Location of the SQLite file. Parent directories are created.

    Returns:
        Database: An open handle. Close it with :meth:`Database.close`.

    Raises:
        status.PersistenceException: If the file cannot be created, opened or initialized.
    """
    path = pathlib.Path(path)
    logging.debug(f'Opening goal database: {path}')

    connection = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(path))
        connection.row_factory = sqlite3.Row
        connection.execute('PRAGMA foreign_keys = ON')
        connection.executescript(SCHEMA + _child_triggers())
        with connection:
            connection.execute(
                f'INSERT OR REPLACE INTO {TABLE_META} (key, value) VALUES (?, ?)',
                ('schema_version', str(SCHEMA_VERSION))
            )
    except (sqlite3.Error, OSError) as ex:
        if connection is not None:
            connection.close()
        raise status.PersistenceException(f'{path}: {ex}') from ex

    logging.info(f'Goal database ready: {path}')
    return Database(connection, path)


class Database:
    """Handle to an open goal database.

    Every write runs in its own transaction. Constraint violations raised by the schema
    are translated into the matching :mod:`status` exceptions.

    Args:
        connection (sqlite3.Connection): An open connection with foreign keys enabled.
        path (pathlib.Path, optional): The database file, for logging.
    """

    def __init__(self, connection: sqlite3.Connection, path: Optional[pathlib.Path] = None):
        self.connection = connection
        self.path = path

    def __enter__(self) -> 'Database':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        if self.connection is None:
            return
        self.connection.close()
        self.connection = None
        logging.debug(f'Closed goal database: {self.path}')

    def _transaction(self) -> sqlite3.Connection:
        """Return the open connection, usable as a transaction context manager."""
        if self.connection is None:
            raise status.PersistenceException('The database is closed.')
        return self.connection

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        connection = self._transaction()
        try:
            return connection.execute(sql, params)
        except sqlite3.IntegrityError as ex:
            msg = str(ex)
            if ERROR_TYPE_IMMUTABLE in msg:
                raise status.GoalTypeImmutableException() from ex
            if ERROR_TYPE_MISMATCH in msg:
                raise status.GoalTypeMismatchException() from ex
            if 'FOREIGN KEY' in msg:
                raise status.RecordNotFoundException(msg) from ex
            if 'current_page' in msg or 'page_count' in msg:
                raise status.PageOutOfRangeException(msg) from ex
            raise status.PersistenceException(msg) from ex
        except sqlite3.Error as ex:
            raise status.PersistenceException(str(ex)) from ex

    # Generic record operations

    def _insert(self, record: models.Record) -> None:
        row = record.to_row()
        columns = ', '.join(row.keys())
        placeholders = ', '.join('?' for _ in row)
        self._execute(f'INSERT INTO {record.table} ({columns}) VALUES ({placeholders})', tuple(row.values()))

    def _add(self, record: models.Record) -> models.Record:
        with self._transaction():
            self._insert(record)
        logging.debug(f'Added {type(record).__name__} {record.id}')
        return record

    def _get(self, cls: Type[models.Record], record_id: str) -> models.Record:
        row = self._execute(f'SELECT * FROM {cls.table} WHERE id = ?', (record_id,)).fetchone()
        if row is None:
            raise status.RecordNotFoundException(f'{cls.__name__} {record_id}')
        return cls.from_row(row)

    def _list(self, cls: Type[models.Record], parent_id: str, order_by: str) -> List[models.Record]:
        cursor = self._execute(
            f'SELECT * FROM {cls.table} WHERE {cls.parent_key} = ? ORDER BY {order_by}',
            (parent_id,)
        )
        return [cls.from_row(row) for row in cursor.fetchall()]

    def _write(self, record: models.Record) -> None:
        row = record.to_row()
        record_id = row.pop('id')
        assignments = ', '.join(f'{k} = ?' for k in row)
        cursor = self._execute(
            f'UPDATE {record.table} SET {assignments} WHERE id = ?',
            tuple(row.values()) + (record_id,)
        )
        if cursor.rowcount == 0:
            raise status.RecordNotFoundException(f'{type(record).__name__} {record_id}')

    def _update(self, record: models.Record) -> models.Record:
        with self._transaction():
            self._write(record)
        logging.debug(f'Updated {type(record).__name__} {record.id}')
        return record

    def _delete(self, cls: Type[models.Record], record_id: str) -> bool:
        with self._transaction():
            cursor = self._execute(f'DELETE FROM {cls.table} WHERE id = ?', (record_id,))
        if cursor.rowcount:
            logging.debug(f'Deleted {cls.__name__} {record_id}')
        return bool(cursor.rowcount)

    def _check_goal_type(self, goal_id: str, cls: Type[models.Record]) -> models.Goal:
        goal = self.get_goal(goal_id)
        if models.GOAL_TYPE_FOR_CHILD[cls] != goal.goal_type:
            raise status.GoalTypeMismatchException(
                f'Cannot add a {cls.__name__} to the {goal.goal_type.display_name} goal "{goal.title}".'
            )
        return goal

    # Goals

    def create_goal(self, goal: models.Goal) -> models.Goal:
        return self._add(goal)

    def get_goal(self, goal_id: str) -> models.Goal:
        return self._get(models.Goal, goal_id)

    def list_goals(
            self,
            goal_type: Optional[models.GoalType] = None,
            include_archived: bool = True
    ) -> List[models.Goal]:
        clauses, params = [], []
        if goal_type is not None:
            clauses.append('goal_type = ?')
            params.append(str(goal_type))
        if not include_archived:
            clauses.append('is_archived = 0')
        where = f'WHERE {" AND ".join(clauses)}' if clauses else ''
        cursor = self._execute(f'SELECT * FROM goals {where} ORDER BY created_at', tuple(params))
        return [models.Goal.from_row(row) for row in cursor.fetchall()]

    def update_goal(self, goal: models.Goal) -> models.Goal:
        """Save changes to a goal.

        Raises:
            status.GoalTypeImmutableException: If the goal's type differs from the stored one.
            status.RecordNotFoundException: If the goal does not exist.
        """
        stored = self.get_goal(goal.id)
        if stored.goal_type != goal.goal_type:
            raise status.GoalTypeImmutableException(
                f'"{goal.title}" is a {stored.goal_type.display_name} goal.'
            )
        goal.updated_at = models.now_utc()
        return self._update(goal)

    def delete_goal(self, goal_id: str) -> bool:
        """Delete a goal and, through the cascade, everything it owns."""
        return self._delete(models.Goal, goal_id)

    # Books

    def add_book(self, book: models.Book) -> models.Book:
        self._check_goal_type(book.goal_id, models.Book)
        book.validate()
        return self._add(book)

    def get_book(self, book_id: str) -> models.Book:
        return self._get(models.Book, book_id)

    def list_books(self, goal_id: str) -> List[models.Book]:
        return self._list(models.Book, goal_id, 'created_at')

    def update_book(self, book: models.Book) -> models.Book:
        book.validate()
        return self._update(book)

    def delete_book(self, book_id: str) -> bool:
        return self._delete(models.Book, book_id)

    # Reading sessions

    def add_reading_session(self, session: models.ReadingSession) -> models.ReadingSession:
        return self._add(session)

    def list_reading_sessions(self, book_id: str) -> List[models.ReadingSession]:
        return self._list(models.ReadingSession, book_id, 'date DESC')

    def delete_reading_session(self, session_id: str) -> bool:
        return self._delete(models.ReadingSession, session_id)

    def log_reading(self, book_id: str, session: models.ReadingSession) -> models.Book:
        """Record a reading session and move the book's bookmark forward.

        The session's ``end_page`` is used when set, otherwise the bookmark advances
        by ``pages_read``. Reaching the last page completes the book.

        Raises:
            status.PageOutOfRangeException: If the new page is past the end of the book.
        """
        book = self.get_book(book_id)

        session.book_id = book.id
        if not session.start_page:
            session.start_page = book.current_page
        if session.end_page:
            new_page = session.end_page
            session.pages_read = session.pages_read or max(0, new_page - session.start_page)
        else:
            new_page = book.current_page + session.pages_read
            session.end_page = new_page

        book.set_current_page(new_page)
        book.last_read_date = session.date
        if book.started_reading_date is None:
            book.started_reading_date = session.date
        if book.page_count and book.current_page == book.page_count and not book.is_completed:
            book.mark_as_completed(session.date)

        with self._transaction():
            self._insert(session)
            self._write(book)
        logging.info(f'Logged {session.pages_read} pages of "{book.title}" (now on page {book.current_page})')

        if book.is_completed:
            self.update_progress(book.goal_id)
        return book

    # Chapters and notes

    def add_chapter(self, chapter: models.Chapter) -> models.Chapter:
        return self._add(chapter)

    def get_chapter(self, chapter_id: str) -> models.Chapter:
        return self._get(models.Chapter, chapter_id)

    def list_chapters(self, book_id: str) -> List[models.Chapter]:
        return self._list(models.Chapter, book_id, 'order_index, created_at')

    def update_chapter(self, chapter: models.Chapter) -> models.Chapter:
        return self._update(chapter)

    def delete_chapter(self, chapter_id: str) -> bool:
        return self._delete(models.Chapter, chapter_id)

    def add_note(self, note: models.ChapterNote) -> models.ChapterNote:
        return self._add(note)

    def get_note(self, note_id: str) -> models.ChapterNote:
        return self._get(models.ChapterNote, note_id)

    def list_notes(self, chapter_id: str) -> List[models.ChapterNote]:
        return self._list(models.ChapterNote, chapter_id, 'created_at')

    def update_note(self, note: models.ChapterNote) -> models.ChapterNote:
        return self._update(note)

    def delete_note(self, note_id: str) -> bool:
        return self._delete(models.ChapterNote, note_id)

    # Training sessions

    def add_training_session(self, session: models.TrainingSession) -> models.TrainingSession:
        self._check_goal_type(session.goal_id, models.TrainingSession)
        session.validate()
        return self._add(session)

    def get_training_session(self, session_id: str) -> models.TrainingSession:
        return self._get(models.TrainingSession, session_id)

    def list_training_sessions(self, goal_id: str) -> List[models.TrainingSession]:
        return self._list(models.TrainingSession, goal_id, 'date DESC')

    def update_training_session(self, session: models.TrainingSession) -> models.TrainingSession:
        session.validate()
        return self._update(session)

    def delete_training_session(self, session_id: str) -> bool:
        return self._delete(models.TrainingSession, session_id)

    # Fitness configuration and personal records

    def set_fitness_config(self, config: models.FitnessGoalConfig) -> models.FitnessGoalConfig:
        """Store the configuration of a fitness goal, replacing any previous one."""
        self._check_goal_type(config.goal_id, models.FitnessGoalConfig)
        config.validate()
        existing = self.get_fitness_config(config.goal_id)
        if existing is None:
            return self._add(config)
        config.id = existing.id
        config.created_at = existing.created_at
        return self._update(config)

    def get_fitness_config(self, goal_id: str) -> Optional[models.FitnessGoalConfig]:
        row = self._execute('SELECT * FROM fitness_goal_configs WHERE goal_id = ?', (goal_id,)).fetchone()
        if row is None:
            return None
        return models.FitnessGoalConfig.from_row(row)

    def delete_fitness_config(self, goal_id: str) -> bool:
        config = self.get_fitness_config(goal_id)
        if config is None:
            return False
        return self._delete(models.FitnessGoalConfig, config.id)

    def add_personal_record(self, record: models.PersonalRecord) -> models.PersonalRecord:
        self._check_goal_type(record.goal_id, models.PersonalRecord)
        record.validate()
        return self._add(record)

    def get_personal_record(self, record_id: str) -> models.PersonalRecord:
        return self._get(models.PersonalRecord, record_id)

    def list_personal_records(self, goal_id: str) -> List[models.PersonalRecord]:
        return self._list(models.PersonalRecord, goal_id, 'achieved_date DESC')

    def update_personal_record(self, record: models.PersonalRecord) -> models.PersonalRecord:
        record.validate()
        return self._update(record)

    def delete_personal_record(self, record_id: str) -> bool:
        return self._delete(models.PersonalRecord, record_id)

    # Repositories and commit activity

    def add_repository(self, repository: models.GitHubRepository) -> models.GitHubRepository:
        self._check_goal_type(repository.goal_id, models.GitHubRepository)
        return self._add(repository)

    def get_repository(self, repository_id: str) -> models.GitHubRepository:
        return self._get(models.GitHubRepository, repository_id)

    def list_repositories(self, goal_id: str) -> List[models.GitHubRepository]:
        return self._list(models.GitHubRepository, goal_id, 'created_at')

    def update_repository(self, repository: models.GitHubRepository) -> models.GitHubRepository:
        return self._update(repository)

    def delete_repository(self, repository_id: str) -> bool:
        return self._delete(models.GitHubRepository, repository_id)

    def list_commit_activity(self, repository_id: str) -> List[models.CommitActivity]:
        return self._list(models.CommitActivity, repository_id, 'week_start')

    def replace_commit_activity(
            self,
            repository_id: str,
            weeks: Iterable[models.CommitActivity]
    ) -> List[models.CommitActivity]:
        """Replace all stored weeks of a repository in a single transaction."""
        self.get_repository(repository_id)
        weeks = list(weeks)
        with self._transaction():
            self._execute('DELETE FROM commit_activities WHERE repository_id = ?', (repository_id,))
            for week in weeks:
                week.repository_id = repository_id
                self._insert(week)
        logging.debug(f'Stored {len(weeks)} weeks of commit activity for {repository_id}')
        return weeks

    def add_star_snapshot(self, snapshot: models.StarHistory) -> models.StarHistory:
        return self._add(snapshot)

    def list_star_history(self, repository_id: str) -> List[models.StarHistory]:
        return self._list(models.StarHistory, repository_id, 'date')

    # Aggregates

    def update_progress(self, goal_id: str) -> int:
        """Recompute a goal's ``current_value`` from its children and store it.

        Reading goals count completed books, fitness goals count training sessions and
        programming goals sum the commits of their repositories.

        Returns:
            int: The new current value.
        """
        goal = self.get_goal(goal_id)

        if goal.goal_type == models.GoalType.BookReading:
            sql = 'SELECT COUNT(*) FROM books WHERE goal_id = ? AND is_completed = 1'
        elif goal.goal_type == models.GoalType.Fitness:
            sql = 'SELECT COUNT(*) FROM training_sessions WHERE goal_id = ?'
        else:
            sql = """
                SELECT COALESCE(SUM(a.commit_count), 0)
                FROM commit_activities a
                JOIN github_repositories r ON a.repository_id = r.id
                WHERE r.goal_id = ?
            """
        value = self._execute(sql, (goal_id,)).fetchone()[0]

        with self._transaction():
            self._execute(
                'UPDATE goals SET current_value = ?, updated_at = ? WHERE id = ?',
                (value, models.now_utc().isoformat(), goal_id)
            )
        logging.debug(f'Progress of "{goal.title}": {value}/{goal.target_value}')
        return value

    def count(self, table: str) -> int:
        """Return the number of rows in one of the entity tables."""
        if table not in TABLES:
            raise ValueError(f'Unknown table "{table}", must be one of {TABLES}')
        return self._execute(f'SELECT COUNT(*) FROM {table}').fetchone()[0]

    def schema_version(self) -> Optional[int]:
        row = self._execute(f'SELECT value FROM {TABLE_META} WHERE key = ?', ('schema_version',)).fetchone()
        return int(row[0]) if row else None
