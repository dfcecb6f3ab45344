import sys
from pathlib import Path

import pytest

# Ensure tests can import project packages regardless of how pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from playlist_sync.core.models import (  # noqa: E402
    NotFoundError, PlaylistMetadata, SourceTrack, TargetCandidate,
)
from playlist_sync.core.store import MappingStore, PlaylistLinkStore, SyncHistoryStore  # noqa: E402


def make_tracks(count: int, playlist_id: str = "pl-1") -> list[SourceTrack]:
    return [
        SourceTrack(track_id=f"t{i}", name=f"Song {i}", artist=f"Artist {i}", playlist_id=playlist_id)
        for i in range(1, count + 1)
    ]


class FakeSpotify:
    """In-memory source catalog."""

    def __init__(self, playlists: dict[str, tuple[PlaylistMetadata, list[SourceTrack]]] | None = None):
        self.playlists = playlists or {}
        self.track_fetches = 0

    def add(self, playlist_id: str, tracks: list[SourceTrack], title: str = "Road Trip",
            description: str = "") -> None:
        metadata = PlaylistMetadata(playlist_id, title, description, len(tracks))
        self.playlists[playlist_id] = (metadata, tracks)

    def get_playlist_metadata(self, playlist_id: str) -> PlaylistMetadata | None:
        entry = self.playlists.get(playlist_id)
        return entry[0] if entry else None

    def get_all_tracks(self, playlist_id: str) -> list[SourceTrack]:
        if playlist_id not in self.playlists:
            raise NotFoundError(playlist_id)
        self.track_fetches += 1
        return list(self.playlists[playlist_id][1])


class FakeYouTube:
    """
    In-memory target catalog. By default every query returns one exact match
    whose title is the query and whose channel is the artist.
    """

    def __init__(self):
        self.results: dict[str, list[TargetCandidate]] = {}
        self.failures: dict[str, Exception] = {}
        self.searches: list[str] = []
        self.created: list[tuple[str, str, str]] = []
        self.deleted: list[str] = []
        self.inserted: list[tuple[str, str]] = []
        self._next_playlist = 0

    def search(self, query: str, max_results: int) -> list[TargetCandidate]:
        self.searches.append(query)
        if query in self.failures:
            raise self.failures[query]
        if query in self.results:
            return self.results[query][:max_results]
        artist = query.split(" - ")[0]
        return [TargetCandidate(video_id=f"vid-{query}", title=query, channel=artist)]

    def create_playlist(self, title: str, description: str, privacy_status: str) -> str:
        self._next_playlist += 1
        self.created.append((title, description, privacy_status))
        return f"yt-{self._next_playlist}"

    def delete_playlist(self, playlist_id: str) -> None:
        self.deleted.append(playlist_id)

    def insert_item(self, playlist_id: str, video_id: str) -> None:
        self.inserted.append((playlist_id, video_id))

    @property
    def mutations(self) -> int:
        return len(self.created) + len(self.deleted) + len(self.inserted)


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "playlist_sync.sqlite3"


@pytest.fixture
def mappings(db_path) -> MappingStore:
    return MappingStore(db_path)


@pytest.fixture
def links(db_path) -> PlaylistLinkStore:
    return PlaylistLinkStore(db_path)


@pytest.fixture
def history(db_path) -> SyncHistoryStore:
    return SyncHistoryStore(db_path)


@pytest.fixture
def spotify() -> FakeSpotify:
    return FakeSpotify()


@pytest.fixture
def youtube() -> FakeYouTube:
    return FakeYouTube()
