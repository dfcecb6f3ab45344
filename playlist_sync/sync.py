#!/usr/bin/env python3
"""Playlist Sync - command-line entry point for a single sync run"""

import logging
import sys

from playlist_sync.config import ConfigError, load_config, load_settings, setup_logging
from playlist_sync.core.models import (
    AuthenticationError, ConcurrentSyncError, NotFoundError, QuotaExceededError, SyncResult,
)
from playlist_sync.core.status import write_running_status, write_skipped_status, write_status
from playlist_sync.service import CatalogCredentials, SyncService

logger = logging.getLogger(__name__)

CLI_USER_ID = "cli"


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Invalid config: {e}", file=sys.stderr)
        return 1
    setup_logging(settings)
    status_file = settings.status_file

    try:
        config = load_config(
            required=["SPOTIFY_ACCESS_TOKEN"] + ([] if argv else ["SOURCE_PLAYLIST_ID"]),
            optional=["YOUTUBE_ACCESS_TOKEN", "YOUTUBE_REFRESH_TOKEN"],
        )
    except ConfigError as e:
        logger.error(str(e))
        return 1

    playlist_id = argv[0] if argv else config["SOURCE_PLAYLIST_ID"]
    creds = CatalogCredentials(
        user_id=CLI_USER_ID,
        spotify_token=config["SPOTIFY_ACCESS_TOKEN"],
        youtube_token=config["YOUTUBE_ACCESS_TOKEN"],
        youtube_refresh_token=config["YOUTUBE_REFRESH_TOKEN"],
    )

    write_running_status(status_file, playlist_id)
    service = SyncService.from_settings(settings)

    try:
        logger.info(f"Starting sync of {playlist_id}...")
        record, result = service.sync(creds, playlist_id)
    except AuthenticationError as e:
        logger.error(f"Authentication failed: {e}")
        write_status(SyncResult.failure(f"Authentication failed: {e}"), status_file, playlist_id)
        return 1
    except NotFoundError as e:
        logger.error(str(e))
        write_status(SyncResult.failure(str(e)), status_file, playlist_id)
        return 1
    except ConcurrentSyncError as e:
        logger.warning(f"{e}, exiting")
        write_skipped_status(status_file, str(e), playlist_id)
        return 0
    except QuotaExceededError as e:
        logger.error(f"Quota exceeded: {e}")
        write_status(SyncResult.failure(f"Quota exceeded: {e}"), status_file, playlist_id)
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        write_status(SyncResult.failure(f"Unexpected error: {e}"), status_file, playlist_id)
        return 1

    write_status(result, status_file, playlist_id)

    if result.success:
        logger.info(f"Sync {record.id} completed: +{result.songs_synced}, "
                    f"{result.songs_skipped} skipped")
        return 0

    logger.warning(f"Sync {record.id} finished with {result.songs_failed} failures: {result.errors}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
