"""Read-only sync status: how much of a playlist is already on YouTube."""

import logging

from playlist_sync.core.models import (
    MATCHED, MAX_MISSING_SAMPLES, NotFoundError, StatusReport,
)
from playlist_sync.core.store import MappingStore, PlaylistLinkStore
from playlist_sync.core.sync_engine import SpotifyClientProtocol

logger = logging.getLogger(__name__)


class StatusChecker:
    """Computes sync completeness. Never writes mappings, links or playlists."""

    def __init__(self, spotify: SpotifyClientProtocol, mappings: MappingStore,
                 links: PlaylistLinkStore):
        self._spotify = spotify
        self._mappings = mappings
        self._links = links

    def check(self, source_playlist_id: str) -> StatusReport:
        link = self._links.get(source_playlist_id)

        if link is None:
            metadata = self._spotify.get_playlist_metadata(source_playlist_id)
            if metadata is None:
                raise NotFoundError(f"Spotify playlist not found: {source_playlist_id}")
            return StatusReport(
                exists=False,
                needs_sync=True,
                is_up_to_date=False,
                total_tracks=metadata.track_count,
                synced_tracks=0,
                missing_songs=metadata.track_count,
                message="YouTube playlist does not exist. Full sync required.",
            )

        tracks = self._spotify.get_all_tracks(source_playlist_id)
        current = self._mappings.current(source_playlist_id, link.target_playlist_id)

        # Counted by distinct track id; a duplicated track is synced or missing once.
        missing = []
        synced = set()
        seen = set()
        for track in tracks:
            if track.track_id in seen:
                continue
            seen.add(track.track_id)
            row = current.get(track.track_id)
            if row is not None and row.sync_status == MATCHED:
                synced.add(track.track_id)
            else:
                missing.append(track)

        up_to_date = not missing
        logger.debug(f"Status {source_playlist_id}: {len(tracks)} tracks, {len(missing)} missing")

        return StatusReport(
            exists=True,
            needs_sync=not up_to_date,
            is_up_to_date=up_to_date,
            total_tracks=len(tracks),
            synced_tracks=len(synced),
            missing_songs=len(missing),
            missing_songs_list=[
                {"name": t.name, "artist": t.artist} for t in missing[:MAX_MISSING_SAMPLES]
            ],
            target_playlist_id=link.target_playlist_id,
            target_playlist_name=link.name,
            message=("Playlist is up to date. No sync needed." if up_to_date
                     else f"{len(missing)} songs need to be synced."),
        )
