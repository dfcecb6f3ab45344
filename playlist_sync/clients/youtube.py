"""
YouTube Data API v3 Client

Search, playlist creation/deletion and item insertion.
Includes retry logic for rate limiting and transient errors.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, TypeVar

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from playlist_sync.core.models import (
    AuthenticationError, QuotaExceededError, TargetCandidate, TrackResolutionError,
)

logger = logging.getLogger(__name__)

CLIENT_SECRETS_FILE = Path(os.environ.get("GOOGLE_CLIENT_SECRETS", "client_secrets.json"))
TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = ["https://www.googleapis.com/auth/youtube"]
MUSIC_CATEGORY_ID = "10"
RATE_LIMIT_WAIT = 60

QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded"}
RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}

T = TypeVar('T')


class YouTubeAuthError(AuthenticationError):
    """YouTube authentication failed."""
    pass


class YouTubeAPIError(TrackResolutionError):
    """YouTube API operation failed."""
    pass


class YouTubeQuotaExceededError(QuotaExceededError):
    """YouTube API quota exceeded."""
    pass


def _load_client_credentials() -> tuple[str, str]:
    """Load OAuth client credentials from env vars or client_secrets.json."""
    client_id = os.environ.get("GOOGLE_CLIENT_ID")
    client_secret = os.environ.get("GOOGLE_CLIENT_SECRET")

    if client_id and client_secret:
        return client_id, client_secret

    if CLIENT_SECRETS_FILE.exists():
        try:
            secrets = json.loads(CLIENT_SECRETS_FILE.read_text())
            creds = secrets.get("installed") or secrets.get("web")
            if creds:
                return creds["client_id"], creds["client_secret"]
        except Exception as e:
            logger.warning(f"Failed to parse {CLIENT_SECRETS_FILE}: {e}")

    raise YouTubeAuthError(
        "OAuth credentials not found. Set GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET "
        "or provide client_secrets.json"
    )


def _error_reasons(error: HttpError) -> set[str]:
    """Extract `reason` values from an API error body."""
    try:
        body = json.loads(error.content.decode("utf-8") if isinstance(error.content, bytes)
                          else error.content)
        return {e.get("reason", "") for e in body.get("error", {}).get("errors", [])}
    except (ValueError, AttributeError, TypeError):
        return set()


class YouTubeClient:
    """YouTube Data API client with retry logic."""

    def __init__(self, access_token: str | None = None, refresh_token: str | None = None,
                 service: Any = None):
        if service is not None:
            self._service = service
            return

        if not access_token and not refresh_token:
            raise YouTubeAuthError("Missing YouTube credentials")

        try:
            client_id = client_secret = None
            if refresh_token:
                client_id, client_secret = _load_client_credentials()

            credentials = Credentials(
                token=access_token,
                refresh_token=refresh_token,
                token_uri=TOKEN_URI,
                client_id=client_id,
                client_secret=client_secret,
                scopes=SCOPES
            )

            self._service = build("youtube", "v3", credentials=credentials,
                                  cache_discovery=False)
            logger.info("YouTube client initialized")

        except YouTubeAuthError:
            raise
        except Exception as e:
            raise YouTubeAuthError(f"Failed to authenticate: {e}")

    def _retry(self, operation: Callable[[], T], name: str, max_retries: int = 3) -> T:
        """Execute operation with retry logic for transient errors."""
        for attempt in range(max_retries):
            try:
                return operation()
            except HttpError as e:
                status = e.resp.status if e.resp else 0
                reasons = _error_reasons(e)

                if status == 401:
                    raise YouTubeAuthError(f"YouTube credentials rejected on {name}: {e}")

                if status == 403 and reasons & QUOTA_REASONS:
                    raise YouTubeQuotaExceededError(f"Quota exceeded: {e}")

                # Rate limit - wait and retry once
                if status in (403, 429) and reasons & RATE_LIMIT_REASONS and attempt == 0:
                    logger.warning(f"Rate limited on {name}, waiting {RATE_LIMIT_WAIT}s...")
                    time.sleep(RATE_LIMIT_WAIT)
                    continue

                # Any other forbidden response is treated as an exhausted allotment
                if status == 403:
                    raise YouTubeQuotaExceededError(f"Forbidden on {name}: {e}")

                if status >= 500 and attempt < max_retries - 1:
                    wait = 2 ** attempt
                    logger.warning(f"Server error on {name}, retrying in {wait}s...")
                    time.sleep(wait)
                    continue

                raise YouTubeAPIError(f"API error on {name}: {e}")

            except (ConnectionError, TimeoutError, OSError) as e:
                if attempt < max_retries - 1:
                    wait = 2 ** attempt
                    logger.warning(f"Network error on {name}, retrying in {wait}s...")
                    time.sleep(wait)
                    continue
                raise YouTubeAPIError(f"Network error on {name}: {e}")

        raise YouTubeAPIError(f"{name} failed after {max_retries} attempts")

    def search(self, query: str, max_results: int = 3) -> list[TargetCandidate]:
        """Search music videos. Returns candidates in API order."""
        def do_search():
            return self._service.search().list(
                part="snippet",
                q=query,
                type="video",
                videoCategoryId=MUSIC_CATEGORY_ID,
                maxResults=max_results
            ).execute()

        response = self._retry(do_search, f"search '{query}'")
        candidates = []
        for item in response.get("items", []):
            video_id = (item.get("id") or {}).get("videoId")
            if not video_id:
                continue
            snippet = item.get("snippet", {})
            candidates.append(TargetCandidate(
                video_id=video_id,
                title=snippet.get("title", ""),
                channel=snippet.get("channelTitle", ""),
            ))

        logger.debug(f"Search '{query}': {len(candidates)} candidates")
        return candidates

    def create_playlist(self, title: str, description: str = "",
                        privacy_status: str = "private") -> str:
        """Create a playlist. Returns its id."""
        def do_create():
            return self._service.playlists().insert(
                part="snippet,status",
                body={
                    "snippet": {"title": title, "description": description},
                    "status": {"privacyStatus": privacy_status},
                }
            ).execute()

        response = self._retry(do_create, f"create playlist '{title}'")
        logger.info(f"Created playlist: {title} ({response['id']})")
        return response["id"]

    def delete_playlist(self, playlist_id: str) -> None:
        def do_delete():
            return self._service.playlists().delete(id=playlist_id).execute()

        self._retry(do_delete, f"delete playlist {playlist_id}")
        logger.info(f"Deleted playlist: {playlist_id}")

    def insert_item(self, playlist_id: str, video_id: str) -> None:
        """Append a video to the end of a playlist."""
        def do_insert():
            return self._service.playlistItems().insert(
                part="snippet",
                body={
                    "snippet": {
                        "playlistId": playlist_id,
                        "resourceId": {"kind": "youtube#video", "videoId": video_id}
                    }
                }
            ).execute()

        self._retry(do_insert, f"add {video_id}")
        logger.debug(f"Added {video_id} to {playlist_id}")
