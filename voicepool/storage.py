"""SQLite backed persistence for Voicepool artifacts and a filesystem blob store."""

from __future__ import annotations

import json
import re
import sqlite3
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Protocol, Sequence

from .models import Artifact, SocialMediaPosts, TranscriptSegment, UserPrincipal, UserProfile

APP_DIR = Path.home() / ".voicepool"
DB_PATH = APP_DIR / "voicepool.db"
MEDIA_ROOT = APP_DIR / "media"
SCHEMA_VERSION = 1

_SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9_.@-]+$")


class StorageError(RuntimeError):
    """Raised when something goes wrong while accessing the storage."""


class ArtifactStore(Protocol):
    def create_user_profile(self, user: UserPrincipal) -> bool:
        ...

    def save_artifact(
        self,
        user_id: str,
        transcript: Sequence[TranscriptSegment],
        summary: str,
        emotion: Optional[str] = None,
        social_media_posts: Optional[SocialMediaPosts] = None,
    ) -> Artifact:
        ...

    def list_artifacts(self, user_id: str) -> Iterator[Artifact]:
        ...

    def get_artifact(self, user_id: str, artifact_id: str) -> Artifact:
        ...


class BlobStore(Protocol):
    def upload_audio(self, user_id: str, data: bytes, timestamp_ms: Optional[int] = None) -> str:
        """Store raw audio bytes and return a URL they can be fetched from."""


def audio_blob_path(user_id: str, timestamp_ms: int, suffix: str = ".wav") -> str:
    if not _SAFE_KEY_RE.match(user_id) or user_id in {".", ".."}:
        raise StorageError(f"Invalid user id for blob path: {user_id!r}")
    return f"audio/{user_id}/{timestamp_ms}{suffix}"


class Storage:
    """Manage persistence of user profiles and artifacts using SQLite."""

    def __init__(self, db_path: Path = DB_PATH) -> None:
        self.db_path = db_path
        self._ensure_initialised()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_initialised(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    uid TEXT PRIMARY KEY,
                    display_name TEXT,
                    email TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS artifacts (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    emotion TEXT,
                    transcript TEXT NOT NULL,
                    social_media_posts TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS artifacts_by_user ON artifacts(user_id, created_at)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            cur = conn.execute("SELECT value FROM metadata WHERE key = ?", ("schema_version",))
            row = cur.fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO metadata(key, value) VALUES(?, ?)",
                    ("schema_version", str(SCHEMA_VERSION)),
                )

    def create_user_profile(self, user: UserPrincipal) -> bool:
        """Write a profile for ``user`` unless one exists. Returns ``True`` when created."""

        with self._connect() as conn:
            cur = conn.execute("SELECT 1 FROM users WHERE uid = ?", (user.uid,))
            if cur.fetchone() is not None:
                return False
            conn.execute(
                "INSERT INTO users(uid, display_name, email, created_at) VALUES(?, ?, ?, ?)",
                (user.uid, user.display_name, user.email, _now().isoformat()),
            )
        return True

    def get_user_profile(self, uid: str) -> UserProfile:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE uid = ?", (uid,)).fetchone()
        if row is None:
            raise StorageError(f"User {uid} not found")
        return UserProfile(
            uid=row["uid"],
            display_name=row["display_name"],
            email=row["email"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def save_artifact(
        self,
        user_id: str,
        transcript: Sequence[TranscriptSegment],
        summary: str,
        emotion: Optional[str] = None,
        social_media_posts: Optional[SocialMediaPosts] = None,
    ) -> Artifact:
        if not transcript:
            raise StorageError("An artifact requires at least one transcript segment.")
        artifact = Artifact(
            id=uuid.uuid4().hex,
            user_id=user_id,
            created_at=_now(),
            summary=summary,
            transcript=list(transcript),
            emotion=emotion,
            social_media_posts=social_media_posts,
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO artifacts(id, user_id, created_at, summary, emotion, transcript, social_media_posts)
                    VALUES(?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        artifact.id,
                        artifact.user_id,
                        artifact.created_at.isoformat(),
                        artifact.summary,
                        artifact.emotion,
                        json.dumps([segment.to_dict() for segment in artifact.transcript]),
                        json.dumps(social_media_posts.to_dict()) if social_media_posts else None,
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save artifact: {exc}") from exc
        return artifact

    def list_artifacts(self, user_id: str) -> Iterator[Artifact]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM artifacts WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
        for row in rows:
            yield _row_to_artifact(row)

    def get_artifact(self, user_id: str, artifact_id: str) -> Artifact:
        with self._connect() as conn:
            cur = conn.execute(
                "SELECT * FROM artifacts WHERE id = ? AND user_id = ?",
                (artifact_id, user_id),
            )
            row = cur.fetchone()
        if row is None:
            raise StorageError(f"Artifact with id {artifact_id} not found")
        return _row_to_artifact(row)


class LocalBlobStore:
    """Write raw audio below a media directory, keyed by user and timestamp."""

    def __init__(self, root: Path = MEDIA_ROOT, base_url: Optional[str] = None) -> None:
        self.root = root
        self.base_url = base_url.rstrip("/") if base_url else None

    def upload_audio(self, user_id: str, data: bytes, timestamp_ms: Optional[int] = None) -> str:
        relative = audio_blob_path(user_id, timestamp_ms or int(time.time() * 1000))
        destination = self.root / relative
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to store audio: {exc}") from exc
        if self.base_url:
            return f"{self.base_url}/media/{relative}"
        return destination.resolve().as_uri()

    def resolve(self, relative: str) -> Path:
        path = (self.root / relative).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Blob {relative} not found")
        if not path.is_file():
            raise StorageError(f"Blob {relative} not found")
        return path


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_artifact(row: sqlite3.Row) -> Artifact:
    posts = json.loads(row["social_media_posts"]) if row["social_media_posts"] else None
    return Artifact(
        id=row["id"],
        user_id=row["user_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        summary=row["summary"],
        transcript=[TranscriptSegment.from_dict(item) for item in json.loads(row["transcript"])],
        emotion=row["emotion"],
        social_media_posts=SocialMediaPosts.from_dict(posts) if posts else None,
    )
