"""HTTP clients that talk to a Voicepool API server instead of local storage."""

from __future__ import annotations

import time
from urllib.parse import quote
from typing import Dict, Iterator, Optional, Sequence

import httpx

from .models import Artifact, Config, SocialMediaPosts, TranscriptSegment, UserPrincipal
from .storage import StorageError


def build_client(cfg: Config) -> httpx.Client:
    if not cfg.server_url:
        raise StorageError("No API server configured. Run `voicepool config --server-url https://host` first.")
    headers: Dict[str, str] = {}
    if cfg.server_token:
        headers["Authorization"] = f"Bearer {cfg.server_token}"
    return httpx.Client(
        base_url=cfg.server_url.rstrip("/"),
        headers=headers,
        timeout=cfg.api_timeout,
        verify=cfg.verify_ssl,
    )


def _path(*parts: str) -> str:
    return "/" + "/".join(quote(part, safe="") for part in parts)


def describe_http_error(exc: httpx.HTTPError) -> str:
    detail = str(exc)
    status_text = ""
    try:
        request = exc.request
    except RuntimeError:
        request = None
    if request is not None:
        status_text = f"{request.method} {request.url}"
    response = getattr(exc, "response", None)
    if response is not None:
        status_text = f"{response.status_code} {response.request.method} {response.request.url}"
        try:
            detail = response.json().get("detail", detail)
        except ValueError:
            detail = response.text or detail
    return f"Request to API failed ({status_text}): {detail}"


class RemoteStorage:
    """Artifact and profile store backed by the Voicepool API."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    @classmethod
    def from_config(cls, cfg: Config) -> "RemoteStorage":
        return cls(build_client(cfg))

    def close(self) -> None:
        self._client.close()

    def create_user_profile(self, user: UserPrincipal) -> bool:
        payload = self._request(
            "PUT",
            _path("users", user.uid),
            json={"displayName": user.display_name, "email": user.email},
        )
        return bool(payload.get("created"))

    def save_artifact(
        self,
        user_id: str,
        transcript: Sequence[TranscriptSegment],
        summary: str,
        emotion: Optional[str] = None,
        social_media_posts: Optional[SocialMediaPosts] = None,
    ) -> Artifact:
        payload = self._request(
            "POST",
            _path("users", user_id, "artifacts"),
            json={
                "transcript": [segment.to_dict() for segment in transcript],
                "summary": summary,
                "emotion": emotion,
                "socialMediaPosts": social_media_posts.to_dict() if social_media_posts else None,
            },
        )
        return Artifact.from_dict(payload)

    def list_artifacts(self, user_id: str) -> Iterator[Artifact]:
        for item in self._request("GET", _path("users", user_id, "artifacts")):
            yield Artifact.from_dict(item)

    def get_artifact(self, user_id: str, artifact_id: str) -> Artifact:
        return Artifact.from_dict(self._request("GET", _path("users", user_id, "artifacts", artifact_id)))

    def _request(self, method: str, url: str, **kwargs):
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(describe_http_error(exc)) from exc
        return response.json()


class RemoteBlobStore:
    """Upload recorded audio to the Voicepool API."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    def upload_audio(self, user_id: str, data: bytes, timestamp_ms: Optional[int] = None) -> str:
        timestamp_ms = timestamp_ms or int(time.time() * 1000)
        try:
            response = self._client.post(
                _path("users", user_id, "audio"),
                data={"timestamp_ms": str(timestamp_ms)},
                files={"file": (f"{timestamp_ms}.wav", data, "audio/wav")},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(describe_http_error(exc)) from exc
        return response.json()["url"]
