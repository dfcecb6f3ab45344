"""
Sync Engine

Replicates a Spotify playlist into a YouTube playlist, one track at a time.

Algorithm
---------
1. Fetch source playlist metadata and the full track list
2. Find the linked YouTube playlist, or create one (and link it)
3. Fold the mapping log to the current status of each track
4. For each track in source order:
   - skip if already matched (unless updating) or previously not found
   - otherwise search YouTube, score candidates, insert the best one
     if it clears the threshold, and append a mapping row either way
   - sleep a fixed throttle before the next track
5. Quota exhaustion or a rejected credential aborts the loop; any other
   per-track error is recorded as an "error" mapping and the loop continues

Quota costs:
- search.list: 100 units
- playlistItems.insert: 50 units
- playlists.insert / playlists.delete: 50 units
"""

import logging
import time
from typing import Protocol

from playlist_sync.core import matcher
from playlist_sync.core.models import (
    ERROR, MATCHED, NOT_FOUND, MAX_REPORTED_ERRORS, AuthenticationError,
    NotFoundError, PlaylistLink, PlaylistMetadata, QuotaExceededError, SongMapping,
    SourceTrack, SyncOptions, SyncResult, TargetCandidate,
)
from playlist_sync.core.store import MappingStore, PlaylistLinkStore

logger = logging.getLogger(__name__)

SEARCH_RESULTS = 3
THROTTLE_SECONDS = 0.15
PLAYLIST_PRIVACY = "private"


class SpotifyClientProtocol(Protocol):
    def get_playlist_metadata(self, playlist_id: str) -> PlaylistMetadata | None: ...
    def get_all_tracks(self, playlist_id: str) -> list[SourceTrack]: ...


class YouTubeClientProtocol(Protocol):
    def search(self, query: str, max_results: int) -> list[TargetCandidate]: ...
    def create_playlist(self, title: str, description: str, privacy_status: str) -> str: ...
    def delete_playlist(self, playlist_id: str) -> None: ...
    def insert_item(self, playlist_id: str, video_id: str) -> None: ...


def playlist_title(metadata: PlaylistMetadata) -> str:
    return f"{metadata.title} (Synced from Spotify)"


def playlist_description(metadata: PlaylistMetadata) -> str:
    return metadata.description or f"Synced playlist from Spotify: {metadata.title}"


class SyncEngine:
    """Orchestrates incremental playlist replication."""

    def __init__(self, spotify: SpotifyClientProtocol, youtube: YouTubeClientProtocol,
                 mappings: MappingStore, links: PlaylistLinkStore,
                 throttle_seconds: float = THROTTLE_SECONDS, user_id: str | None = None):
        self._spotify = spotify
        self._youtube = youtube
        self._mappings = mappings
        self._links = links
        self._throttle = throttle_seconds
        self._user_id = user_id

    def _resolve_target_playlist(self, metadata: PlaylistMetadata,
                                 options: SyncOptions) -> PlaylistLink:
        """Return the linked YouTube playlist, creating it when needed."""
        link = self._links.get(metadata.playlist_id)

        if link and not options.create_new_playlist:
            logger.info(f"Using existing YouTube playlist: {link.name}")
            return link

        if link:
            # Not transactional: a failure before create leaves no link behind
            logger.info(f"Deleting previous YouTube playlist {link.target_playlist_id}")
            self._youtube.delete_playlist(link.target_playlist_id)
            self._links.delete(metadata.playlist_id)

        title = playlist_title(metadata)
        description = playlist_description(metadata)
        target_id = self._youtube.create_playlist(title, description, PLAYLIST_PRIVACY)

        link = self._links.save(PlaylistLink(
            source_playlist_id=metadata.playlist_id,
            target_playlist_id=target_id,
            name=title,
            description=description,
            privacy_status=PLAYLIST_PRIVACY,
            user_id=self._user_id,
        ))
        logger.info(f"Created new YouTube playlist: {title}")
        return link

    def _should_skip(self, current: SongMapping | None, options: SyncOptions) -> bool:
        if current is None:
            return False
        if current.sync_status == MATCHED:
            return options.skip_existing or not options.update_existing
        if current.sync_status == NOT_FOUND:
            return not options.retry_not_found
        return False

    def _resolve_track(self, track: SourceTrack, link: PlaylistLink) -> bool:
        """Search, score and insert one track. Returns True when matched."""
        candidates = self._youtube.search(track.query, SEARCH_RESULTS)
        best, score = matcher.best_candidate(candidates, track)

        base = dict(
            source_playlist_id=track.playlist_id,
            target_playlist_id=link.target_playlist_id,
            source_track_id=track.track_id,
            source_track_name=track.name,
            source_artist_name=track.artist,
        )

        if best is None or not matcher.is_acceptable(score):
            self._mappings.append(SongMapping(sync_status=NOT_FOUND, **base))
            logger.info(f"Not found: {track.name} by {track.artist} (score={score:.2f})")
            return False

        self._youtube.insert_item(link.target_playlist_id, best.video_id)
        self._mappings.append(SongMapping(
            sync_status=MATCHED,
            target_item_id=best.video_id,
            target_item_title=best.title,
            target_channel_title=best.channel,
            **base,
        ))
        logger.info(f"Synced: {track.name} by {track.artist} -> {best.title} (score={score:.2f})")
        return True

    def _record_error(self, track: SourceTrack, link: PlaylistLink, error: Exception) -> None:
        self._mappings.append(SongMapping(
            source_playlist_id=track.playlist_id,
            target_playlist_id=link.target_playlist_id,
            source_track_id=track.track_id,
            source_track_name=track.name,
            source_artist_name=track.artist,
            sync_status=ERROR,
            error_message=str(error),
        ))

    def sync(self, source_playlist_id: str, options: SyncOptions | None = None,
             metadata: PlaylistMetadata | None = None) -> SyncResult:
        """
        Perform a full or incremental sync. Returns SyncResult.
        Raises NotFoundError if the source playlist is unknown and
        QuotaExceededError if YouTube quota runs out mid-run.
        """
        options = options or SyncOptions()
        start = time.time()

        logger.info("=" * 50)
        logger.info(f"Starting sync of {source_playlist_id}")

        if metadata is None:
            metadata = self._spotify.get_playlist_metadata(source_playlist_id)
        if metadata is None:
            raise NotFoundError(f"Spotify playlist not found: {source_playlist_id}")

        tracks = self._spotify.get_all_tracks(source_playlist_id)
        logger.info(f"Spotify: {len(tracks)} tracks")

        link = self._resolve_target_playlist(metadata, options)
        current = self._mappings.current(source_playlist_id, link.target_playlist_id)
        logger.info(f"Existing mappings: {len(current)}")

        synced = failed = skipped = 0
        errors = []

        for track in tracks:
            existing = current.get(track.track_id)
            if self._should_skip(existing, options):
                logger.debug(f"Skipping {existing.sync_status} track: {track.name}")
                skipped += 1
                continue

            try:
                if self._resolve_track(track, link):
                    synced += 1
                else:
                    failed += 1
                    skipped += 1
            except QuotaExceededError:
                logger.error(f"Quota exceeded at {track.name}, aborting after "
                             f"{synced} synced, {failed} failed")
                raise
            except AuthenticationError:
                logger.error(f"Authentication rejected at {track.name}, aborting after "
                             f"{synced} synced, {failed} failed")
                raise
            except Exception as e:
                logger.error(f"Error syncing track {track.name}: {e}")
                self._record_error(track, link, e)
                failed += 1
                errors.append({"track": track.name, "error": str(e)})

            time.sleep(self._throttle)

        duration = time.time() - start
        logger.info(f"Completed in {duration:.1f}s: {synced} synced, "
                    f"{failed} failed, {skipped} skipped")
        logger.info("=" * 50)

        return SyncResult(
            success=failed == 0,
            target_playlist_id=link.target_playlist_id,
            target_playlist_name=link.name,
            songs_synced=synced,
            songs_failed=failed,
            songs_skipped=skipped,
            total_songs=len(tracks),
            errors=errors[:MAX_REPORTED_ERRORS],
            duration=duration,
        )
