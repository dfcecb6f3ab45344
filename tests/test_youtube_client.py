import json

import httplib2
import pytest
from googleapiclient.errors import HttpError

from playlist_sync.clients.youtube import (
    YouTubeAPIError, YouTubeAuthError, YouTubeClient, YouTubeQuotaExceededError,
)
from playlist_sync.core.models import QuotaExceededError, TrackResolutionError


def _http_error(status: int, reason: str = "") -> HttpError:
    body = {"error": {"code": status, "message": reason or "error",
                      "errors": [{"reason": reason}] if reason else []}}
    return HttpError(httplib2.Response({"status": status}), json.dumps(body).encode("utf-8"))


class FakeRequest:
    def __init__(self, outcomes: list):
        self._outcomes = outcomes

    def execute(self):
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeResource:
    def __init__(self, outcomes: list):
        self.outcomes = outcomes
        self.calls: list[tuple[str, dict]] = []

    def list(self, **kwargs) -> FakeRequest:
        self.calls.append(("list", kwargs))
        return FakeRequest(self.outcomes)

    def insert(self, **kwargs) -> FakeRequest:
        self.calls.append(("insert", kwargs))
        return FakeRequest(self.outcomes)

    def delete(self, **kwargs) -> FakeRequest:
        self.calls.append(("delete", kwargs))
        return FakeRequest(self.outcomes)


class FakeService:
    def __init__(self, outcomes: list):
        self.resource = FakeResource(outcomes)

    def search(self) -> FakeResource:
        return self.resource

    def playlists(self) -> FakeResource:
        return self.resource

    def playlistItems(self) -> FakeResource:
        return self.resource


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch) -> None:
    monkeypatch.setattr("playlist_sync.clients.youtube.time.sleep", lambda _: None)


def test_missing_credentials() -> None:
    with pytest.raises(YouTubeAuthError):
        YouTubeClient()


def test_search_maps_video_results() -> None:
    service = FakeService([{
        "items": [
            {"id": {"videoId": "v1"}, "snippet": {"title": "Daft Punk - One More Time", "channelTitle": "Daft Punk"}},
            {"id": {"channelId": "c1"}, "snippet": {"title": "Daft Punk channel"}},
            {"id": {"videoId": "v2"}, "snippet": {"title": "One More Time (Live)"}},
        ]
    }])
    client = YouTubeClient(service=service)

    candidates = client.search("Daft Punk - One More Time", 3)

    assert [c.video_id for c in candidates] == ["v1", "v2"]
    assert candidates[0].channel == "Daft Punk"
    assert candidates[1].channel == ""
    _, kwargs = service.resource.calls[0]
    assert kwargs["q"] == "Daft Punk - One More Time"
    assert kwargs["maxResults"] == 3
    assert kwargs["type"] == "video"
    assert kwargs["videoCategoryId"] == "10"


def test_quota_exceeded_is_fatal() -> None:
    client = YouTubeClient(service=FakeService([_http_error(403, "quotaExceeded")]))

    with pytest.raises(YouTubeQuotaExceededError) as exc_info:
        client.search("a - b", 3)
    assert isinstance(exc_info.value, QuotaExceededError)


def test_forbidden_is_treated_as_quota() -> None:
    client = YouTubeClient(service=FakeService([_http_error(403, "forbidden")]))

    with pytest.raises(YouTubeQuotaExceededError):
        client.search("a - b", 3)


def test_rate_limit_waits_and_retries_once() -> None:
    service = FakeService([_http_error(403, "rateLimitExceeded"), {"items": []}])
    client = YouTubeClient(service=service)

    assert client.search("a - b", 3) == []
    assert len(service.resource.calls) == 2


def test_server_errors_are_retried_then_reported() -> None:
    service = FakeService([_http_error(500), _http_error(503), _http_error(500)])
    client = YouTubeClient(service=service)

    with pytest.raises(YouTubeAPIError) as exc_info:
        client.search("a - b", 3)
    assert isinstance(exc_info.value, TrackResolutionError)
    assert len(service.resource.calls) == 3


def test_client_errors_are_recoverable_track_errors() -> None:
    client = YouTubeClient(service=FakeService([_http_error(400, "badRequest")]))

    with pytest.raises(TrackResolutionError):
        client.insert_item("yt-1", "v1")


def test_unauthorized_is_auth_error() -> None:
    client = YouTubeClient(service=FakeService([_http_error(401, "authError")]))

    with pytest.raises(YouTubeAuthError):
        client.create_playlist("Mix", "desc", "private")


def test_create_playlist_returns_id() -> None:
    service = FakeService([{"id": "yt-123"}])
    client = YouTubeClient(service=service)

    playlist_id = client.create_playlist("Mix (Synced from Spotify)", "desc", "private")

    assert playlist_id == "yt-123"
    _, kwargs = service.resource.calls[0]
    assert kwargs["body"]["snippet"]["title"] == "Mix (Synced from Spotify)"
    assert kwargs["body"]["status"]["privacyStatus"] == "private"


def test_insert_and_delete_requests() -> None:
    service = FakeService([{}, {}])
    client = YouTubeClient(service=service)

    client.insert_item("yt-1", "v1")
    client.delete_playlist("yt-1")

    (_, insert_kwargs), (_, delete_kwargs) = service.resource.calls
    assert insert_kwargs["body"]["snippet"]["playlistId"] == "yt-1"
    assert insert_kwargs["body"]["snippet"]["resourceId"]["videoId"] == "v1"
    assert delete_kwargs == {"id": "yt-1"}
