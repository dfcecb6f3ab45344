"""Spotify Web API Client - read access to playlists and saved tracks"""

import logging
import time
from typing import Any

import requests

from playlist_sync.core.models import (
    AuthenticationError, NotFoundError, PlaylistMetadata, SourceTrack, TrackResolutionError,
)

logger = logging.getLogger(__name__)

API_BASE = "https://api.spotify.com/v1"
LIKED_SONGS_ID = "liked_songs"
PLAYLIST_PAGE_SIZE = 100
SAVED_TRACKS_PAGE_SIZE = 50
MAX_RETRIES = 3


class SpotifyAuthError(AuthenticationError):
    pass


class SpotifyNotFoundError(NotFoundError):
    pass


class SpotifyAPIError(TrackResolutionError):
    pass


class SpotifyClient:
    def __init__(self, access_token: str, session: requests.Session | None = None):
        if not access_token:
            raise SpotifyAuthError("Missing Spotify access token")
        self._session = session or requests.Session()
        self._session.headers.update({
            "authorization": f"Bearer {access_token}",
            "content-type": "application/json",
        })

    def _request_json(self, url: str, params: dict[str, Any] | None = None) -> dict:
        if not url.startswith("http"):
            url = f"{API_BASE}{url}"

        for attempt in range(MAX_RETRIES):
            response = self._session.get(url, params=params, timeout=30)

            if response.status_code == 429 and attempt < MAX_RETRIES - 1:
                wait = int(response.headers.get("Retry-After", 1))
                logger.warning(f"Spotify rate limited, waiting {wait}s...")
                time.sleep(wait)
                continue
            if response.status_code == 401:
                raise SpotifyAuthError("Spotify access token rejected or expired")
            if response.status_code == 404:
                raise SpotifyNotFoundError(f"Spotify resource not found: {url}")
            if response.status_code != 200:
                logger.error(f"Spotify error {response.status_code}: {response.text[:200]}")
                raise SpotifyAPIError(f"Spotify API error {response.status_code} on {url}")

            return response.json()

        raise SpotifyAPIError(f"Spotify request failed after {MAX_RETRIES} attempts: {url}")

    def get_playlist_metadata(self, playlist_id: str) -> PlaylistMetadata:
        if playlist_id == LIKED_SONGS_ID:
            data = self._request_json("/me/tracks", {"limit": 1})
            return PlaylistMetadata(
                playlist_id=LIKED_SONGS_ID,
                title="Liked Songs",
                description="Your liked songs on Spotify",
                track_count=data.get("total", 0),
            )

        data = self._request_json(f"/playlists/{playlist_id}",
                                  {"fields": "id,name,description,tracks.total"})
        return PlaylistMetadata(
            playlist_id=data.get("id") or playlist_id,
            title=data.get("name") or "",
            description=data.get("description") or "",
            track_count=(data.get("tracks") or {}).get("total", 0),
        )

    def get_all_tracks(self, playlist_id: str) -> list[SourceTrack]:
        """Fetch every track in order, following `next` links until absent."""
        if playlist_id == LIKED_SONGS_ID:
            url = "/me/tracks"
            params = {"limit": SAVED_TRACKS_PAGE_SIZE, "offset": 0}
        else:
            url = f"/playlists/{playlist_id}/tracks"
            params = {"limit": PLAYLIST_PAGE_SIZE, "offset": 0, "market": "from_token"}

        tracks = []
        pages = 0
        while url:
            page = self._request_json(url, params)
            pages += 1
            for item in page.get("items", []):
                track = self._extract_track(item, playlist_id)
                if track:
                    tracks.append(track)

            # `next` carries its own query string
            url = page.get("next")
            params = None
            if url:
                time.sleep(0.1)

        logger.info(f"Retrieved {len(tracks)} tracks from Spotify ({pages} pages)")
        return tracks

    def _extract_track(self, item: dict, playlist_id: str) -> SourceTrack | None:
        track_data = item.get("track") or {}
        track_id = track_data.get("id")
        name = track_data.get("name", "")

        # Local files and removed tracks have no id
        if not track_id or not name:
            logger.debug(f"Skipping unplayable item: {name or '<unknown>'}")
            return None

        artists = track_data.get("artists") or []
        artist = artists[0].get("name", "") if artists else ""

        return SourceTrack(track_id=track_id, name=name, artist=artist, playlist_id=playlist_id)
