"""
Request-level orchestration around the sync engine.

Builds catalog clients per request, claims the playlist in sync history,
runs the engine and moves the history row to its terminal status.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from playlist_sync.clients.spotify import SpotifyClient
from playlist_sync.clients.youtube import YouTubeClient
from playlist_sync.config import Settings
from playlist_sync.core.checker import StatusChecker
from playlist_sync.core.models import (
    COMPLETED, COMPLETED_WITH_ERRORS, FAILED,
    AuthenticationError, NotFoundError, QuotaExceededError, StatusReport, SyncHistoryRecord, SyncOptions,
    SyncResult,
)
from playlist_sync.core.store import MappingStore, PlaylistLinkStore, SyncHistoryStore
from playlist_sync.core.sync_engine import (
    SpotifyClientProtocol, SyncEngine, YouTubeClientProtocol, THROTTLE_SECONDS,
)

logger = logging.getLogger(__name__)

QUOTA_MESSAGE = "YouTube quota exceeded. Please wait before running another sync."


@dataclass
class CatalogCredentials:
    """Tokens handed over by the auth layer for one request."""
    user_id: str
    spotify_token: str | None = None
    youtube_token: str | None = None
    youtube_refresh_token: str | None = None

    def require_both(self) -> None:
        missing = []
        if not self.spotify_token:
            missing.append("Spotify")
        if not (self.youtube_token or self.youtube_refresh_token):
            missing.append("YouTube")
        if missing:
            raise AuthenticationError(
                f"Both Spotify and YouTube accounts must be connected (missing: {', '.join(missing)})"
            )


def _default_spotify(creds: CatalogCredentials) -> SpotifyClientProtocol:
    return SpotifyClient(creds.spotify_token)


def _default_youtube(creds: CatalogCredentials) -> YouTubeClientProtocol:
    return YouTubeClient(creds.youtube_token, creds.youtube_refresh_token)


class SyncService:
    def __init__(self, mappings: MappingStore, links: PlaylistLinkStore,
                 history: SyncHistoryStore,
                 spotify_factory: Callable[[CatalogCredentials], SpotifyClientProtocol] = _default_spotify,
                 youtube_factory: Callable[[CatalogCredentials], YouTubeClientProtocol] = _default_youtube,
                 throttle_seconds: float = THROTTLE_SECONDS, retry_not_found: bool = False):
        self.mappings = mappings
        self.links = links
        self.history = history
        self._spotify_factory = spotify_factory
        self._youtube_factory = youtube_factory
        self._throttle = throttle_seconds
        self.retry_not_found = retry_not_found

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "SyncService":
        return cls(
            MappingStore(settings.db_path),
            PlaylistLinkStore(settings.db_path),
            SyncHistoryStore(settings.db_path, stale_after_seconds=settings.stale_claim_seconds),
            throttle_seconds=settings.throttle_seconds,
            retry_not_found=settings.retry_not_found,
            **kwargs,
        )

    def sync(self, creds: CatalogCredentials, playlist_id: str,
             options: SyncOptions | None = None) -> tuple[SyncHistoryRecord, SyncResult]:
        """
        Run one sync and record it in history.
        Auth, not-found and concurrent-sync errors are raised before the
        history row exists; any later fatal error marks the row failed.
        """
        options = options or SyncOptions(retry_not_found=self.retry_not_found)
        creds.require_both()

        spotify = self._spotify_factory(creds)
        youtube = self._youtube_factory(creds)
        metadata = spotify.get_playlist_metadata(playlist_id)
        if metadata is None:
            raise NotFoundError(f"Spotify playlist not found: {playlist_id}")

        record = self.history.start(creds.user_id, playlist_id, metadata.title,
                                    metadata.track_count)
        logger.info(f"Sync {record.id} started for {playlist_id} ({metadata.title})")

        engine = SyncEngine(spotify, youtube, self.mappings, self.links,
                            throttle_seconds=self._throttle, user_id=creds.user_id)
        try:
            result = engine.sync(playlist_id, options, metadata=metadata)
        except QuotaExceededError as e:
            logger.error(f"Sync {record.id} aborted: {e}")
            self.history.finish(record.id, FAILED, error_message=f"{QUOTA_MESSAGE} ({e})")
            raise
        except Exception as e:
            logger.exception(f"Sync {record.id} failed: {e}")
            self.history.finish(record.id, FAILED, error_message=str(e))
            raise

        self.history.finish(
            record.id,
            COMPLETED if result.success else COMPLETED_WITH_ERRORS,
            target_playlist_id=result.target_playlist_id,
            target_playlist_name=result.target_playlist_name,
            songs_synced=result.songs_synced,
            songs_failed=result.songs_failed,
        )
        return self.history.get(record.id), result

    def check(self, creds: CatalogCredentials, playlist_id: str) -> StatusReport:
        creds.require_both()
        checker = StatusChecker(self._spotify_factory(creds), self.mappings, self.links)
        return checker.check(playlist_id)

    def recent_history(self, user_id: str, limit: int = 50) -> list[SyncHistoryRecord]:
        return self.history.list_for_user(user_id, limit)
