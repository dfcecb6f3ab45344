import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from playlist_sync.core.models import (
    COMPLETED, FAILED, IN_PROGRESS, MATCHED, NOT_FOUND, ConcurrentSyncError, PlaylistLink,
    SongMapping,
)
from playlist_sync.core.store import SyncHistoryStore, fold_latest


def _mapping(track_id: str, status: str, target: str = "yt-1", **kwargs) -> SongMapping:
    source = kwargs.pop("source", "pl-1")
    return SongMapping(
        source_playlist_id=source,
        target_playlist_id=target,
        source_track_id=track_id,
        source_track_name=f"Song {track_id}",
        source_artist_name="Artist",
        sync_status=status,
        **kwargs,
    )


def test_append_always_inserts_new_rows(mappings) -> None:
    first = mappings.append(_mapping("t1", NOT_FOUND))
    second = mappings.append(_mapping("t1", MATCHED, target_item_id="v1"))

    assert first.id != second.id
    assert first.created_at is not None
    assert mappings.count() == 2


def test_query_filters_and_orders_newest_first(mappings) -> None:
    mappings.append(_mapping("t1", MATCHED))
    mappings.append(_mapping("t2", MATCHED, target="yt-2"))
    mappings.append(_mapping("t3", MATCHED, source="pl-2", target="yt-3"))
    mappings.append(_mapping("t4", NOT_FOUND))

    by_pair = mappings.query("pl-1", "yt-1")
    assert [m.source_track_id for m in by_pair] == ["t4", "t1"]

    by_source = mappings.query(source_playlist_id="pl-1")
    assert {m.source_track_id for m in by_source} == {"t1", "t2", "t4"}

    by_target = mappings.query(target_playlist_id="yt-3")
    assert [m.source_track_id for m in by_target] == ["t3"]

    assert len(mappings.query()) == 4


def test_current_folds_to_latest_row_per_track(mappings) -> None:
    mappings.append(_mapping("t1", MATCHED, target_item_id="v1"))
    mappings.append(_mapping("t1", NOT_FOUND))
    mappings.append(_mapping("t2", NOT_FOUND))
    mappings.append(_mapping("t2", MATCHED, target_item_id="v2"))

    current = mappings.current("pl-1", "yt-1")

    assert current["t1"].sync_status == NOT_FOUND
    assert current["t2"].sync_status == MATCHED
    assert current["t2"].target_item_id == "v2"


def test_fold_latest_breaks_timestamp_ties_by_row_id() -> None:
    ts = "2026-01-01T00:00:00+00:00"
    rows = [
        _mapping("t1", MATCHED, id=7, created_at=ts),
        _mapping("t1", NOT_FOUND, id=3, created_at=ts),
        _mapping("t2", NOT_FOUND, id=1, created_at="2025-12-31T00:00:00+00:00"),
        _mapping("t2", MATCHED, id=2, created_at="2026-01-02T00:00:00+00:00"),
    ]

    current = fold_latest(rows)

    assert current["t1"].id == 7
    assert current["t2"].sync_status == MATCHED


def test_link_save_get_delete(links) -> None:
    assert links.get("pl-1") is None

    links.save(PlaylistLink("pl-1", "yt-1", "Mix (Synced from Spotify)"))
    link = links.get("pl-1")
    assert link.target_playlist_id == "yt-1"
    assert link.created_at is not None

    links.save(PlaylistLink("pl-1", "yt-2", "Mix (Synced from Spotify)"))
    assert links.get("pl-1").target_playlist_id == "yt-2"

    links.delete("pl-1")
    assert links.get("pl-1") is None


def test_history_claim_is_exclusive_per_playlist(history) -> None:
    record = history.start("user-1", "pl-1", "Mix", 10)
    assert record.status == IN_PROGRESS

    with pytest.raises(ConcurrentSyncError):
        history.start("user-2", "pl-1", "Mix", 10)

    # Other playlists are unaffected
    history.start("user-1", "pl-2", "Other", 3)

    history.finish(record.id, COMPLETED, songs_synced=10)
    again = history.start("user-1", "pl-1", "Mix", 10)
    assert again.id != record.id


def _backdate(db_path, record_id: int, seconds: int) -> None:
    started = (datetime.now(timezone.utc) - timedelta(seconds=seconds)).isoformat()
    conn = sqlite3.connect(db_path)
    conn.execute("UPDATE sync_history SET started_at = ? WHERE id = ?", (started, record_id))
    conn.commit()
    conn.close()


def test_history_stale_claim_is_released(history, db_path) -> None:
    crashed = history.start("user-1", "pl-1", "Mix", 10)
    _backdate(db_path, crashed.id, 31 * 60)

    fresh = history.start("user-2", "pl-1", "Mix", 10)

    assert fresh.status == IN_PROGRESS
    assert history.in_progress("pl-1").id == fresh.id
    stale = history.get(crashed.id)
    assert stale.status == FAILED
    assert stale.error_message.startswith("Sync abandoned")
    assert stale.completed_at is not None


def test_history_recent_claim_is_not_released(db_path) -> None:
    history = SyncHistoryStore(db_path, stale_after_seconds=600)
    running = history.start("user-1", "pl-1", "Mix", 10)
    _backdate(db_path, running.id, 300)

    with pytest.raises(ConcurrentSyncError):
        history.start("user-2", "pl-1", "Mix", 10)

    assert history.get(running.id).status == IN_PROGRESS


def test_history_finish_is_terminal_once(history) -> None:
    record = history.start("user-1", "pl-1", "Mix", 4)

    history.finish(record.id, FAILED, error_message="boom")
    history.finish(record.id, COMPLETED, songs_synced=4)

    stored = history.get(record.id)
    assert stored.status == FAILED
    assert stored.error_message == "boom"
    assert stored.completed_at is not None
    assert history.in_progress("pl-1") is None


def test_history_finish_records_target_and_counts(history) -> None:
    record = history.start("user-1", "pl-1", "Mix", 4)

    history.finish(record.id, COMPLETED, target_playlist_id="yt-1",
                   target_playlist_name="Mix (Synced from Spotify)", songs_synced=3, songs_failed=1)

    stored = history.get(record.id)
    assert stored.target_playlist_id == "yt-1"
    assert stored.songs_synced == 3
    assert stored.songs_failed == 1


def test_history_list_for_user_newest_first(history) -> None:
    first = history.start("user-1", "pl-1", "A", 1)
    history.finish(first.id, COMPLETED)
    second = history.start("user-1", "pl-2", "B", 1)
    history.start("user-2", "pl-3", "C", 1)

    records = history.list_for_user("user-1")

    assert [r.id for r in records] == [second.id, first.id]
    assert len(history.list_for_user("user-1", limit=1)) == 1
