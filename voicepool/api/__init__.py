"""FastAPI application serving Voicepool artifacts and recorded audio."""

from __future__ import annotations

import os
import threading
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field

from ..models import Artifact, SocialMediaPosts, TranscriptSegment, UserPrincipal
from ..storage import DB_PATH, MEDIA_ROOT, LocalBlobStore, Storage, StorageError

API_TOKEN = os.getenv("VOICEPOOL_API_TOKEN")

app = FastAPI(
    title="Voicepool API",
    description="Artifact and audio storage for Voicepool clients.",
    version="0.1.0",
)

_storage_lock = threading.Lock()
_storage: Optional[Storage] = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class SegmentPayload(_CamelModel):
    speaker_id: str = Field(alias="speakerId")
    speaker_name: str = Field(alias="speakerName")
    text: str
    timestamp: datetime
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")


class SocialPostPayload(BaseModel):
    title: Optional[str] = None
    content: str


class ArtifactCreate(_CamelModel):
    transcript: List[SegmentPayload] = Field(min_length=1)
    summary: str
    emotion: Optional[str] = None
    social_media_posts: Optional[Dict[str, SocialPostPayload]] = Field(default=None, alias="socialMediaPosts")


class ArtifactPayload(ArtifactCreate):
    id: str
    user_id: str = Field(alias="userId")
    created_at: datetime = Field(alias="createdAt")


class ProfileUpdate(_CamelModel):
    display_name: Optional[str] = Field(default=None, alias="displayName")
    email: Optional[str] = None


class ProfileResponse(BaseModel):
    uid: str
    created: bool


class UploadResponse(BaseModel):
    url: str


def _initialise_storage() -> Storage:
    global _storage
    if _storage is not None:
        return _storage
    with _storage_lock:
        if _storage is None:
            _storage = Storage(DB_PATH)
    return _storage


def _require_token(authorization: Optional[str] = Header(None)) -> None:
    if API_TOKEN and authorization != f"Bearer {API_TOKEN}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing token")


def _artifact_to_payload(artifact: Artifact) -> ArtifactPayload:
    return ArtifactPayload.model_validate(artifact.to_dict())


def _payload_to_segment(segment: SegmentPayload) -> TranscriptSegment:
    return TranscriptSegment(
        speaker_id=segment.speaker_id,
        speaker_name=segment.speaker_name,
        text=segment.text,
        timestamp=segment.timestamp,
        audio_url=segment.audio_url,
    )


@app.get("/health", response_model=HealthResponse)
async def healthcheck() -> HealthResponse:
    await run_in_threadpool(_initialise_storage)
    return HealthResponse(version=app.version)


@app.put("/users/{user_id}", response_model=ProfileResponse, dependencies=[Depends(_require_token)])
async def upsert_profile(user_id: str, profile: ProfileUpdate) -> ProfileResponse:
    storage = await run_in_threadpool(_initialise_storage)
    user = UserPrincipal(uid=user_id, display_name=profile.display_name, email=profile.email)
    created = await run_in_threadpool(storage.create_user_profile, user)
    return ProfileResponse(uid=user_id, created=created)


@app.get(
    "/users/{user_id}/artifacts",
    response_model=list[ArtifactPayload],
    dependencies=[Depends(_require_token)],
)
async def list_artifacts(user_id: str) -> list[ArtifactPayload]:
    storage = await run_in_threadpool(_initialise_storage)
    artifacts = await run_in_threadpool(lambda: list(storage.list_artifacts(user_id)))
    return [_artifact_to_payload(artifact) for artifact in artifacts]


@app.get(
    "/users/{user_id}/artifacts/{artifact_id}",
    response_model=ArtifactPayload,
    dependencies=[Depends(_require_token)],
)
async def get_artifact(user_id: str, artifact_id: str) -> ArtifactPayload:
    storage = await run_in_threadpool(_initialise_storage)
    try:
        artifact = await run_in_threadpool(storage.get_artifact, user_id, artifact_id)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _artifact_to_payload(artifact)


@app.post(
    "/users/{user_id}/artifacts",
    response_model=ArtifactPayload,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(_require_token)],
)
async def create_artifact(user_id: str, payload: ArtifactCreate) -> ArtifactPayload:
    storage = await run_in_threadpool(_initialise_storage)
    posts = None
    if payload.social_media_posts is not None:
        try:
            posts = SocialMediaPosts.from_dict(
                {name: post.model_dump() for name, post in payload.social_media_posts.items()}
            )
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        artifact = await run_in_threadpool(
            storage.save_artifact,
            user_id,
            [_payload_to_segment(segment) for segment in payload.transcript],
            payload.summary,
            payload.emotion,
            posts,
        )
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return _artifact_to_payload(artifact)


@app.post(
    "/users/{user_id}/audio",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(_require_token)],
)
async def upload_audio(
    request: Request,
    user_id: str,
    file: UploadFile = File(...),
    timestamp_ms: Optional[int] = Form(None),
) -> UploadResponse:
    data = await file.read()
    blob_store = LocalBlobStore(MEDIA_ROOT, base_url=str(request.base_url))
    try:
        url = await run_in_threadpool(blob_store.upload_audio, user_id, data, timestamp_ms)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return UploadResponse(url=url)


@app.get("/media/{blob_path:path}")
async def get_media(blob_path: str) -> FileResponse:
    try:
        path = LocalBlobStore(MEDIA_ROOT).resolve(blob_path)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return FileResponse(path, media_type="audio/wav")
