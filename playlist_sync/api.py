"""HTTP surface for the web UI: run a sync, check status, list history."""

import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from pydantic import BaseModel

from playlist_sync.config import load_settings, setup_logging
from playlist_sync.core.models import (
    AuthenticationError, ConcurrentSyncError, NotFoundError, SyncOptions,
)
from playlist_sync.service import CatalogCredentials, SyncService

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "default"

app = FastAPI(title="playlist-sync")


class SyncRequest(BaseModel):
    playlistId: Optional[str] = None
    createNewPlaylist: bool = False
    updateExisting: bool = True
    skipExisting: bool = False
    retryNotFound: Optional[bool] = None


class CheckRequest(BaseModel):
    playlistId: Optional[str] = None


def get_service(request: Request) -> SyncService:
    service = getattr(request.app.state, "sync_service", None)
    if service is None:
        service = SyncService.from_settings(load_settings())
        request.app.state.sync_service = service
    return service


def get_credentials(
    x_user_id: Optional[str] = Header(default=None),
    x_spotify_token: Optional[str] = Header(default=None),
    x_youtube_token: Optional[str] = Header(default=None),
    x_youtube_refresh_token: Optional[str] = Header(default=None),
) -> CatalogCredentials:
    return CatalogCredentials(
        user_id=x_user_id or DEFAULT_USER_ID,
        spotify_token=x_spotify_token,
        youtube_token=x_youtube_token,
        youtube_refresh_token=x_youtube_refresh_token,
    )


def _require_playlist_id(playlist_id: Optional[str]) -> str:
    if not playlist_id or not playlist_id.strip():
        raise HTTPException(status_code=400, detail="Playlist ID is required")
    return playlist_id.strip()


@app.post("/sync")
def sync_playlist(payload: SyncRequest, service: SyncService = Depends(get_service),
                  creds: CatalogCredentials = Depends(get_credentials)) -> dict:
    playlist_id = _require_playlist_id(payload.playlistId)
    options = SyncOptions(
        create_new_playlist=payload.createNewPlaylist,
        update_existing=payload.updateExisting,
        skip_existing=payload.skipExisting,
        retry_not_found=(service.retry_not_found if payload.retryNotFound is None
                         else payload.retryNotFound),
    )

    try:
        record, result = service.sync(creds, playlist_id, options)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConcurrentSyncError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail={"message": "Sync failed", "error": str(e)})

    return {
        "message": "Playlist synced successfully" if result.success else "Sync completed with errors",
        "result": {
            "syncId": record.id,
            "status": record.status,
            "success": result.success,
            "targetPlaylistId": result.target_playlist_id,
            "targetPlaylistName": result.target_playlist_name,
            "songsSynced": result.songs_synced,
            "songsFailed": result.songs_failed,
            "songsSkipped": result.songs_skipped,
            "totalSongs": result.total_songs,
            "errors": result.errors,
        },
    }


@app.post("/sync/check")
def check_playlist(payload: CheckRequest, service: SyncService = Depends(get_service),
                   creds: CatalogCredentials = Depends(get_credentials)) -> dict:
    playlist_id = _require_playlist_id(payload.playlistId)

    try:
        report = service.check(creds, playlist_id)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception(f"Error checking sync status: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "exists": report.exists,
        "needsSync": report.needs_sync,
        "isUpToDate": report.is_up_to_date,
        "message": report.message,
        "totalTracks": report.total_tracks,
        "syncedTracks": report.synced_tracks,
        "missingSongs": report.missing_songs,
        "missingSongsList": report.missing_songs_list,
        "targetPlaylistId": report.target_playlist_id,
        "targetPlaylistName": report.target_playlist_name,
    }


@app.get("/sync/history")
def sync_history(limit: int = Query(default=50, ge=1, le=500),
                 service: SyncService = Depends(get_service),
                 creds: CatalogCredentials = Depends(get_credentials)) -> dict:
    records = service.recent_history(creds.user_id, limit)
    return {
        "history": [
            {
                "id": r.id,
                "playlist_name": r.playlist_name,
                "source_playlist_id": r.source_playlist_id,
                "target_playlist_id": r.target_playlist_id,
                "target_playlist_name": r.target_playlist_name,
                "status": r.status,
                "total_songs": r.total_songs,
                "songs_synced": r.songs_synced,
                "songs_failed": r.songs_failed,
                "started_at": r.started_at,
                "completed_at": r.completed_at,
                "error_message": r.error_message,
            }
            for r in records
        ]
    }


def main() -> None:
    import uvicorn

    settings = load_settings()
    setup_logging(settings)
    uvicorn.run(app, host=os.environ.get("API_HOST", "0.0.0.0"),
                port=int(os.environ.get("API_PORT", "8080")))


if __name__ == "__main__":
    main()
