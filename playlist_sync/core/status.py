"""Status file writer for the command-line entry point"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from playlist_sync.core.models import SyncResult


def write_status(result: SyncResult, status_file: Path, playlist_id: str | None = None) -> bool:
    last_error = result.errors[-1]["error"] if result.errors else None
    data = {
        "status": "success" if result.success else "failed",
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "source_playlist_id": playlist_id,
        "target_playlist_id": result.target_playlist_id,
        "songs_synced": result.songs_synced,
        "songs_failed": result.songs_failed,
        "songs_skipped": result.songs_skipped,
        "total_songs": result.total_songs,
        "last_error": last_error,
    }
    return _atomic_write(status_file, data)


def write_running_status(status_file: Path, playlist_id: str | None = None) -> bool:
    data = {
        "status": "running",
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "source_playlist_id": playlist_id,
        "target_playlist_id": None,
        "songs_synced": 0,
        "songs_failed": 0,
        "songs_skipped": 0,
        "total_songs": 0,
        "last_error": None,
    }
    return _atomic_write(status_file, data)


def write_skipped_status(status_file: Path, reason: str, playlist_id: str | None = None) -> bool:
    """Record a run that never started because another sync holds the playlist."""
    data = {
        "status": "skipped",
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "source_playlist_id": playlist_id,
        "target_playlist_id": None,
        "songs_synced": 0,
        "songs_failed": 0,
        "songs_skipped": 0,
        "total_songs": 0,
        "last_error": reason,
    }
    return _atomic_write(status_file, data)


def _atomic_write(path: Path, data: dict) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".status_", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, path)
            return True
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
    except OSError:
        return False
