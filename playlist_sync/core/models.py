"""Data models and error taxonomy for sync operations."""

from dataclasses import dataclass, field
from typing import List

MATCHED = "matched"
NOT_FOUND = "not_found"
ERROR = "error"

IN_PROGRESS = "in_progress"
COMPLETED = "completed"
COMPLETED_WITH_ERRORS = "completed_with_errors"
FAILED = "failed"

MAX_REPORTED_ERRORS = 10
MAX_MISSING_SAMPLES = 5


class PlaylistSyncError(Exception):
    """Base class for sync failures."""
    pass


class AuthenticationError(PlaylistSyncError):
    """Credentials for a catalog are absent or expired."""
    pass


class NotFoundError(PlaylistSyncError):
    """Source playlist does not exist."""
    pass


class QuotaExceededError(PlaylistSyncError):
    """Target catalog request quota is exhausted. Aborts the run."""
    pass


class TrackResolutionError(PlaylistSyncError):
    """Failure while resolving a single track. Recorded, never fatal."""
    pass


class ConcurrentSyncError(PlaylistSyncError):
    """A sync for the same playlist is already in progress."""
    pass


@dataclass(frozen=True)
class SourceTrack:
    """A track from the source playlist."""
    track_id: str
    name: str
    artist: str
    playlist_id: str

    @property
    def query(self) -> str:
        return f"{self.artist} - {self.name}"


@dataclass
class PlaylistMetadata:
    """Source playlist details."""
    playlist_id: str
    title: str
    description: str
    track_count: int


@dataclass
class TargetCandidate:
    """A search result from the target catalog."""
    video_id: str
    title: str
    channel: str


@dataclass
class SongMapping:
    """One persisted resolution attempt for a source track."""
    source_playlist_id: str
    target_playlist_id: str
    source_track_id: str
    source_track_name: str
    source_artist_name: str
    sync_status: str
    target_item_id: str | None = None
    target_item_title: str | None = None
    target_channel_title: str | None = None
    error_message: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass
class PlaylistLink:
    """Target playlist created for a source playlist."""
    source_playlist_id: str
    target_playlist_id: str
    name: str
    description: str = ""
    privacy_status: str = "private"
    user_id: str | None = None
    created_at: str | None = None


@dataclass
class SyncHistoryRecord:
    """Audit row for one sync invocation."""
    id: int
    user_id: str
    source_playlist_id: str
    status: str
    playlist_name: str | None = None
    target_playlist_id: str | None = None
    target_playlist_name: str | None = None
    total_songs: int = 0
    songs_synced: int = 0
    songs_failed: int = 0
    started_at: str | None = None
    completed_at: str | None = None
    error_message: str | None = None


@dataclass
class SyncOptions:
    """Per-run sync policy."""
    create_new_playlist: bool = False
    update_existing: bool = True
    skip_existing: bool = False
    retry_not_found: bool = False


@dataclass
class SyncResult:
    """Result of a sync operation."""
    success: bool
    target_playlist_id: str | None
    target_playlist_name: str | None
    songs_synced: int
    songs_failed: int
    songs_skipped: int
    total_songs: int
    errors: List[dict] = field(default_factory=list)
    duration: float = 0.0

    @classmethod
    def failure(cls, error: str) -> "SyncResult":
        """Create a failure result with single error."""
        return cls(
            success=False,
            target_playlist_id=None,
            target_playlist_name=None,
            songs_synced=0,
            songs_failed=0,
            songs_skipped=0,
            total_songs=0,
            errors=[{"track": None, "error": error}],
        )


@dataclass
class StatusReport:
    """Read-only sync completeness for one playlist."""
    exists: bool
    needs_sync: bool
    is_up_to_date: bool
    total_tracks: int
    synced_tracks: int
    missing_songs: int
    missing_songs_list: List[dict] = field(default_factory=list)
    target_playlist_id: str | None = None
    target_playlist_name: str | None = None
    message: str = ""
