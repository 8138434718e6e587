"""SQLite store for track points, sections, address breakpoints and step segments."""

import sqlite3
import threading
from contextlib import contextmanager
from typing import Optional

from .models import AddressBreakpoint, Section, SectionSummary, StepSegment, TrackPoint

_BREAKPOINT_COLUMNS = (
    "timestamp, section_id, track_id, lat, lon, name, address_line, admin_area, "
    "country_name, locality, sub_locality, thoroughfare, sub_thoroughfare, postal_code"
)


class TrackStore:
    """SQLite database holding everything a recording produces.

    One connection is shared between the stream, worker and address threads;
    a re-entrant lock serialises access and ``transaction()`` groups writes so
    they commit together.
    """

    def __init__(self, db_path: str = "walkaround.db"):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._tx_depth = 0
        self._init_schema()

    def _init_schema(self):
        """Create database tables"""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS tracks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp REAL NOT NULL,
                lat REAL NOT NULL,
                lon REAL NOT NULL,
                altitude REAL NOT NULL DEFAULT 0,
                speed REAL NOT NULL DEFAULT 0,
                accuracy REAL NOT NULL,
                vertical_accuracy REAL,
                heading REAL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS sections (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                track_start_id INTEGER REFERENCES tracks(id) ON DELETE SET NULL,
                track_end_id INTEGER REFERENCES tracks(id) ON DELETE SET NULL,
                distance_meters REAL,
                duration_seconds REAL,
                average_speed_kmh REAL,
                created_at REAL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS address_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp REAL NOT NULL,
                section_id INTEGER REFERENCES sections(id) ON DELETE CASCADE,
                track_id INTEGER,
                lat REAL,
                lon REAL,
                name TEXT,
                address_line TEXT,
                admin_area TEXT,
                country_name TEXT,
                locality TEXT,
                sub_locality TEXT,
                thoroughfare TEXT,
                sub_thoroughfare TEXT,
                postal_code TEXT
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS step_segments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                section_id INTEGER NOT NULL REFERENCES sections(id) ON DELETE CASCADE,
                steps INTEGER NOT NULL,
                start_time REAL NOT NULL,
                end_time REAL NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_address_section ON address_records(section_id)")
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_steps_section ON step_segments(section_id)")
        self.conn.commit()

    @contextmanager
    def transaction(self):
        """Group several writes into one commit; rolls back on error"""
        with self._lock:
            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                self._tx_depth -= 1
                if self._tx_depth == 0:
                    self.conn.rollback()
                raise
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.conn.commit()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self.conn.execute(sql, params)
            if self._tx_depth == 0:
                self.conn.commit()
            return cursor

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    # Track points

    @staticmethod
    def _row_to_track_point(row) -> TrackPoint:
        return TrackPoint(*row)

    def insert_track_point(self, timestamp: float, lat: float, lon: float,
                           altitude: float, speed: float, accuracy: float,
                           vertical_accuracy: Optional[float] = None,
                           heading: Optional[float] = None) -> TrackPoint:
        """Persist a fix and return it with its assigned id"""
        cursor = self._execute(
            "INSERT INTO tracks (timestamp, lat, lon, altitude, speed, accuracy, "
            "vertical_accuracy, heading) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (timestamp, lat, lon, altitude, speed, accuracy, vertical_accuracy, heading)
        )
        return TrackPoint(cursor.lastrowid, timestamp, lat, lon, altitude, speed,
                          accuracy, vertical_accuracy, heading)

    def get_track_point(self, track_id: int) -> Optional[TrackPoint]:
        rows = self._query("SELECT * FROM tracks WHERE id = ?", (track_id,))
        return self._row_to_track_point(rows[0]) if rows else None

    def get_track_points_between(self, start_id: int, end_id: int) -> list[TrackPoint]:
        """All points with ids in [start_id, end_id], in time order"""
        rows = self._query(
            "SELECT * FROM tracks WHERE id BETWEEN ? AND ? ORDER BY timestamp ASC, id ASC",
            (start_id, end_id)
        )
        return [self._row_to_track_point(r) for r in rows]

    def get_accurate_track_points_between(self, start_id: int, end_id: int,
                                          accuracy_limit: float) -> list[TrackPoint]:
        rows = self._query(
            "SELECT * FROM tracks WHERE id BETWEEN ? AND ? AND accuracy <= ? "
            "ORDER BY timestamp ASC, id ASC",
            (start_id, end_id, accuracy_limit)
        )
        return [self._row_to_track_point(r) for r in rows]

    def get_last_track_point(self) -> Optional[TrackPoint]:
        rows = self._query("SELECT * FROM tracks ORDER BY id DESC LIMIT 1")
        return self._row_to_track_point(rows[0]) if rows else None

    def get_last_accurate_track_point(self, accuracy_limit: float) -> Optional[TrackPoint]:
        """Most recent point whose accuracy is within the limit"""
        rows = self._query(
            "SELECT * FROM tracks WHERE accuracy <= ? ORDER BY id DESC LIMIT 1",
            (accuracy_limit,)
        )
        return self._row_to_track_point(rows[0]) if rows else None

    def count_track_points(self) -> int:
        return self._query("SELECT COUNT(*) FROM tracks")[0][0]

    def delete_track_points_between(self, start_id: int, end_id: int):
        self._execute("DELETE FROM tracks WHERE id BETWEEN ? AND ?", (start_id, end_id))

    # Sections

    @staticmethod
    def _row_to_section(row) -> Section:
        return Section(*row)

    def insert_section(self, created_at: float) -> Section:
        cursor = self._execute("INSERT INTO sections (created_at) VALUES (?)", (created_at,))
        return Section(id=cursor.lastrowid, created_at=created_at)

    def get_section(self, section_id: int) -> Optional[Section]:
        rows = self._query(
            "SELECT id, track_start_id, track_end_id, distance_meters, duration_seconds, "
            "average_speed_kmh, created_at FROM sections WHERE id = ?",
            (section_id,)
        )
        return self._row_to_section(rows[0]) if rows else None

    def get_last_section(self) -> Optional[Section]:
        rows = self._query(
            "SELECT id, track_start_id, track_end_id, distance_meters, duration_seconds, "
            "average_speed_kmh, created_at FROM sections ORDER BY created_at DESC, id DESC LIMIT 1"
        )
        return self._row_to_section(rows[0]) if rows else None

    def get_sections(self) -> list[Section]:
        """All sections, newest first"""
        rows = self._query(
            "SELECT id, track_start_id, track_end_id, distance_meters, duration_seconds, "
            "average_speed_kmh, created_at FROM sections ORDER BY created_at DESC, id DESC"
        )
        return [self._row_to_section(r) for r in rows]

    def set_section_start_if_unset(self, section_id: int, track_id: int) -> bool:
        """Set the start track id unless one is already set. Returns True if it was set."""
        cursor = self._execute(
            "UPDATE sections SET track_start_id = ? WHERE id = ? AND track_start_id IS NULL",
            (track_id, section_id)
        )
        return cursor.rowcount == 1

    def close_section(self, section_id: int, track_end_id: Optional[int],
                      duration_seconds: float, distance_meters: Optional[float] = None,
                      average_speed_kmh: Optional[float] = None):
        """Record the end of a section with its stats"""
        self._execute(
            "UPDATE sections SET track_end_id = ?, duration_seconds = ?, "
            "distance_meters = ?, average_speed_kmh = ? WHERE id = ?",
            (track_end_id, duration_seconds, distance_meters, average_speed_kmh, section_id)
        )

    def update_section_distance(self, section_id: int, distance_meters: float):
        self._execute(
            "UPDATE sections SET distance_meters = ? WHERE id = ?",
            (distance_meters, section_id)
        )

    def delete_section(self, section_id: int):
        """Delete a section; its breakpoints and step segments cascade"""
        self._execute("DELETE FROM sections WHERE id = ?", (section_id,))

    def get_section_summaries(self) -> list[SectionSummary]:
        """Overview of every section, newest first"""
        rows = self._query("""
            SELECT
                s.id,
                s.created_at,
                COALESCE((SELECT SUM(ss.steps) FROM step_segments ss WHERE ss.section_id = s.id), 0),
                CASE WHEN s.track_start_id IS NULL THEN 0 ELSE
                    (SELECT COUNT(*) FROM tracks t
                     WHERE t.id >= s.track_start_id
                       AND (s.track_end_id IS NULL OR t.id <= s.track_end_id))
                END,
                s.distance_meters
            FROM sections s
            ORDER BY s.created_at DESC, s.id DESC
        """)
        return [SectionSummary(*row) for row in rows]

    def get_total_steps_since(self, since: float) -> int:
        rows = self._query("""
            SELECT SUM(ss.steps)
            FROM sections s
            JOIN step_segments ss ON s.id = ss.section_id
            WHERE s.created_at >= ?
        """, (since,))
        return rows[0][0] or 0

    # Address breakpoints

    @staticmethod
    def _row_to_breakpoint(row) -> AddressBreakpoint:
        return AddressBreakpoint(*row)

    def insert_breakpoint(self, record: AddressBreakpoint) -> AddressBreakpoint:
        """Insert a breakpoint and return a copy carrying its id"""
        cursor = self._execute(
            f"INSERT INTO address_records ({_BREAKPOINT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (record.timestamp, record.section_id, record.track_id, record.lat, record.lon,
             record.name, record.address_line, record.admin_area, record.country_name,
             record.locality, record.sub_locality, record.thoroughfare,
             record.sub_thoroughfare, record.postal_code)
        )
        return AddressBreakpoint(
            cursor.lastrowid, record.timestamp, record.section_id, record.track_id,
            record.lat, record.lon, record.name, record.address_line, record.admin_area,
            record.country_name, record.locality, record.sub_locality, record.thoroughfare,
            record.sub_thoroughfare, record.postal_code
        )

    def get_breakpoints_for_section(self, section_id: int) -> list[AddressBreakpoint]:
        """Breakpoints of a section ordered by time"""
        rows = self._query(
            f"SELECT id, {_BREAKPOINT_COLUMNS} FROM address_records "
            "WHERE section_id = ? ORDER BY timestamp ASC, id ASC",
            (section_id,)
        )
        return [self._row_to_breakpoint(r) for r in rows]

    def get_breakpoint_by_section_and_track(self, section_id: int,
                                            track_id: int) -> Optional[AddressBreakpoint]:
        rows = self._query(
            f"SELECT id, {_BREAKPOINT_COLUMNS} FROM address_records "
            "WHERE section_id = ? AND track_id = ? LIMIT 1",
            (section_id, track_id)
        )
        return self._row_to_breakpoint(rows[0]) if rows else None

    def delete_breakpoints_for_section(self, section_id: int) -> int:
        cursor = self._execute("DELETE FROM address_records WHERE section_id = ?", (section_id,))
        return cursor.rowcount

    # Step segments

    def insert_step_segment(self, segment: StepSegment) -> StepSegment:
        cursor = self._execute(
            "INSERT INTO step_segments (section_id, steps, start_time, end_time) VALUES (?, ?, ?, ?)",
            (segment.section_id, segment.steps, segment.start_time, segment.end_time)
        )
        return StepSegment(segment.section_id, segment.steps, segment.start_time,
                           segment.end_time, id=cursor.lastrowid)

    def get_step_segments_for_section(self, section_id: int) -> list[StepSegment]:
        rows = self._query(
            "SELECT section_id, steps, start_time, end_time, id FROM step_segments "
            "WHERE section_id = ? ORDER BY start_time ASC",
            (section_id,)
        )
        return [StepSegment(*row) for row in rows]

    # Settings

    def get_setting(self, key: str) -> Optional[str]:
        rows = self._query("SELECT value FROM app_settings WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def set_setting(self, key: str, value: str):
        self._execute("""
            INSERT INTO app_settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """, (key, value))

    def delete_setting(self, key: str):
        self._execute("DELETE FROM app_settings WHERE key = ?", (key,))

    def close(self):
        with self._lock:
            self.conn.close()
