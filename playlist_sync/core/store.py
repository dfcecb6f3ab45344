"""
SQLite persistence for song mappings, playlist links and sync history.

song_mappings is an append-only log: every resolution attempt inserts a row
and nothing is ever updated or deleted. The current status of a track is the
newest row for (source_track_id, target_playlist_id), see fold_latest().
"""

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable

from playlist_sync.core.models import (
    ConcurrentSyncError, PlaylistLink, SongMapping, SyncHistoryRecord, FAILED, IN_PROGRESS,
)

logger = logging.getLogger(__name__)

# An in_progress claim older than this belongs to a run that died before finishing
STALE_CLAIM_SECONDS = 30 * 60


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def ensure_tables(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if missing."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS song_mappings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            source_playlist_id TEXT NOT NULL,
            target_playlist_id TEXT NOT NULL,
            source_track_id TEXT NOT NULL,
            target_item_id TEXT,
            source_track_name TEXT,
            source_artist_name TEXT,
            target_item_title TEXT,
            target_channel_title TEXT,
            sync_status TEXT NOT NULL,
            error_message TEXT,
            created_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_song_mappings_pair "
        "ON song_mappings (source_playlist_id, target_playlist_id, created_at DESC)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS playlist_links (
            source_playlist_id TEXT PRIMARY KEY,
            target_playlist_id TEXT NOT NULL,
            name TEXT,
            description TEXT,
            privacy_status TEXT,
            user_id TEXT,
            created_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS sync_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            source_playlist_id TEXT NOT NULL,
            target_playlist_id TEXT,
            playlist_name TEXT,
            target_playlist_name TEXT,
            status TEXT NOT NULL,
            total_songs INTEGER NOT NULL DEFAULT 0,
            songs_synced INTEGER NOT NULL DEFAULT 0,
            songs_failed INTEGER NOT NULL DEFAULT 0,
            started_at TEXT NOT NULL,
            completed_at TEXT,
            error_message TEXT
        )
        """
    )
    # At most one in-progress sync per source playlist.
    cur.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_sync_history_in_progress "
        "ON sync_history (source_playlist_id) WHERE status = 'in_progress'"
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_sync_history_user "
        "ON sync_history (user_id, started_at DESC)"
    )
    conn.commit()


def fold_latest(rows: Iterable[SongMapping]) -> dict[str, SongMapping]:
    """
    Reduce mapping rows to the current row per (source track, target playlist).
    Newest created_at wins; row id breaks ties between equal timestamps.
    Result is keyed by source_track_id, so pass rows for a single target playlist.
    """
    current: dict[tuple[str, str], SongMapping] = {}
    for row in rows:
        key = (row.source_track_id, row.target_playlist_id)
        existing = current.get(key)
        if existing is None or (row.created_at or "", row.id or 0) > (existing.created_at or "", existing.id or 0):
            current[key] = row
    return {track_id: row for (track_id, _), row in current.items()}


class _SQLiteStore:
    def __init__(self, db_path: Path | str):
        self._db_path = str(db_path)
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            ensure_tables(conn)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn


class MappingStore(_SQLiteStore):
    """Append-only log of per-track resolution attempts."""

    def append(self, mapping: SongMapping) -> SongMapping:
        """Insert a new row. Never updates an existing one."""
        created_at = _now()
        conn = self._connect()
        try:
            cur = conn.execute(
                """
                INSERT INTO song_mappings (
                    source_playlist_id, target_playlist_id, source_track_id,
                    target_item_id, source_track_name, source_artist_name,
                    target_item_title, target_channel_title, sync_status,
                    error_message, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    mapping.source_playlist_id, mapping.target_playlist_id,
                    mapping.source_track_id, mapping.target_item_id,
                    mapping.source_track_name, mapping.source_artist_name,
                    mapping.target_item_title, mapping.target_channel_title,
                    mapping.sync_status, mapping.error_message, created_at,
                ),
            )
            conn.commit()
            mapping.id = cur.lastrowid
            mapping.created_at = created_at
        finally:
            conn.close()
        return mapping

    def query(self, source_playlist_id: str | None = None,
              target_playlist_id: str | None = None) -> list[SongMapping]:
        """Rows matching the given filters, newest first."""
        clauses = []
        params = []
        if source_playlist_id:
            clauses.append("source_playlist_id = ?")
            params.append(source_playlist_id)
        if target_playlist_id:
            clauses.append("target_playlist_id = ?")
            params.append(target_playlist_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT * FROM song_mappings {where} ORDER BY created_at DESC, id DESC",
                params,
            ).fetchall()
        finally:
            conn.close()
        return [SongMapping(**dict(row)) for row in rows]

    def current(self, source_playlist_id: str, target_playlist_id: str) -> dict[str, SongMapping]:
        return fold_latest(self.query(source_playlist_id, target_playlist_id))

    def count(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM song_mappings").fetchone()[0]
        finally:
            conn.close()


class PlaylistLinkStore(_SQLiteStore):
    """Source playlist -> target playlist association, one per source playlist."""

    def get(self, source_playlist_id: str) -> PlaylistLink | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM playlist_links WHERE source_playlist_id = ?",
                (source_playlist_id,),
            ).fetchone()
        finally:
            conn.close()
        return PlaylistLink(**dict(row)) if row else None

    def save(self, link: PlaylistLink) -> PlaylistLink:
        link.created_at = link.created_at or _now()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO playlist_links (
                    source_playlist_id, target_playlist_id, name, description,
                    privacy_status, user_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    link.source_playlist_id, link.target_playlist_id, link.name,
                    link.description, link.privacy_status, link.user_id, link.created_at,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return link

    def delete(self, source_playlist_id: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM playlist_links WHERE source_playlist_id = ?",
                         (source_playlist_id,))
            conn.commit()
        finally:
            conn.close()


class SyncHistoryStore(_SQLiteStore):
    """Audit trail of sync runs, with an atomic per-playlist in-progress claim."""

    def __init__(self, db_path: Path | str, stale_after_seconds: float = STALE_CLAIM_SECONDS):
        super().__init__(db_path)
        self._stale_after = stale_after_seconds

    def start(self, user_id: str, source_playlist_id: str, playlist_name: str | None,
              total_songs: int) -> SyncHistoryRecord:
        """
        Claim the playlist by inserting an in_progress row.
        A claim older than stale_after_seconds is taken to be from a crashed
        run and is marked failed first.
        Raises ConcurrentSyncError if a live in_progress row exists.
        """
        now = datetime.now(timezone.utc)
        started_at = now.isoformat()
        cutoff = (now - timedelta(seconds=self._stale_after)).isoformat()
        conn = self._connect()
        try:
            expired = conn.execute(
                """
                UPDATE sync_history
                SET status = ?, error_message = ?, completed_at = ?
                WHERE source_playlist_id = ? AND status = ? AND started_at < ?
                """,
                (FAILED, f"Sync abandoned: no completion after {self._stale_after:g}s",
                 started_at, source_playlist_id, IN_PROGRESS, cutoff),
            ).rowcount
            if expired:
                logger.warning(f"Released stale sync claim for playlist {source_playlist_id}")
            cur = conn.execute(
                """
                INSERT INTO sync_history (
                    user_id, source_playlist_id, playlist_name, status,
                    total_songs, started_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, source_playlist_id, playlist_name, IN_PROGRESS,
                 total_songs, started_at),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise ConcurrentSyncError(
                f"A sync is already in progress for playlist {source_playlist_id}"
            ) from e
        finally:
            conn.close()

        return SyncHistoryRecord(
            id=cur.lastrowid, user_id=user_id, source_playlist_id=source_playlist_id,
            status=IN_PROGRESS, playlist_name=playlist_name, total_songs=total_songs,
            started_at=started_at,
        )

    def finish(self, record_id: int, status: str, *, target_playlist_id: str | None = None,
               target_playlist_name: str | None = None, songs_synced: int = 0,
               songs_failed: int = 0, error_message: str | None = None) -> None:
        """Move an in_progress row to its terminal status."""
        conn = self._connect()
        try:
            conn.execute(
                """
                UPDATE sync_history
                SET status = ?,
                    target_playlist_id = COALESCE(?, target_playlist_id),
                    target_playlist_name = COALESCE(?, target_playlist_name),
                    songs_synced = ?, songs_failed = ?,
                    error_message = ?, completed_at = ?
                WHERE id = ? AND status = ?
                """,
                (status, target_playlist_id, target_playlist_name, songs_synced,
                 songs_failed, error_message, _now(), record_id, IN_PROGRESS),
            )
            conn.commit()
        finally:
            conn.close()

    def get(self, record_id: int) -> SyncHistoryRecord | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM sync_history WHERE id = ?", (record_id,)).fetchone()
        finally:
            conn.close()
        return SyncHistoryRecord(**dict(row)) if row else None

    def in_progress(self, source_playlist_id: str) -> SyncHistoryRecord | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM sync_history WHERE source_playlist_id = ? AND status = ?",
                (source_playlist_id, IN_PROGRESS),
            ).fetchone()
        finally:
            conn.close()
        return SyncHistoryRecord(**dict(row)) if row else None

    def list_for_user(self, user_id: str, limit: int = 50) -> list[SyncHistoryRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM sync_history WHERE user_id = ? "
                "ORDER BY started_at DESC, id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        finally:
            conn.close()
        return [SyncHistoryRecord(**dict(row)) for row in rows]
