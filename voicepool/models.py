"""Dataclasses describing the records Voicepool produces and persists."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

PLATFORMS: Tuple[str, ...] = ("linkedIn", "x", "instagram", "threads", "medium", "devto")

PLATFORM_NAMES = {
    "x": "X (Twitter)",
    "linkedIn": "LinkedIn",
    "instagram": "Instagram",
    "threads": "Threads",
    "medium": "Medium",
    "devto": "Dev.to",
}


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True, slots=True)
class TranscriptSegment:
    """One completed push-to-talk recording and its transcription."""

    speaker_id: str
    speaker_name: str
    text: str
    timestamp: datetime
    audio_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "speakerId": self.speaker_id,
            "speakerName": self.speaker_name,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.audio_url is not None:
            data["audioUrl"] = self.audio_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptSegment":
        return cls(
            speaker_id=data["speakerId"],
            speaker_name=data.get("speakerName") or "User",
            text=data["text"],
            timestamp=_parse_datetime(data["timestamp"]),
            audio_url=data.get("audioUrl"),
        )


@dataclass(slots=True)
class SocialPost:
    content: str
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": self.content}
        if self.title:
            data["title"] = self.title
        return data


@dataclass(slots=True)
class SocialMediaPosts:
    """Generated posts for the fixed set of supported platforms."""

    posts: Dict[str, SocialPost]

    def __post_init__(self) -> None:
        missing = [name for name in PLATFORMS if name not in self.posts]
        if missing:
            raise ValueError(f"Missing social posts for: {', '.join(missing)}")
        unknown = [name for name in self.posts if name not in PLATFORMS]
        if unknown:
            raise ValueError(f"Unsupported platforms: {', '.join(unknown)}")

    def __getitem__(self, platform: str) -> SocialPost:
        return self.posts[platform]

    def items(self):
        return [(name, self.posts[name]) for name in PLATFORMS]

    def to_dict(self) -> Dict[str, Any]:
        return {name: post.to_dict() for name, post in self.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SocialMediaPosts":
        return cls(
            posts={
                name: SocialPost(content=value["content"], title=value.get("title"))
                for name, value in data.items()
            }
        )


@dataclass(slots=True)
class Artifact:
    """A saved session: full transcript plus generated metadata."""

    id: str
    user_id: str
    created_at: datetime
    summary: str
    transcript: List[TranscriptSegment]
    emotion: Optional[str] = None
    social_media_posts: Optional[SocialMediaPosts] = None

    @property
    def full_text(self) -> str:
        return "\n".join(segment.text for segment in self.transcript)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "createdAt": self.created_at.isoformat(),
            "summary": self.summary,
            "transcript": [segment.to_dict() for segment in self.transcript],
            "emotion": self.emotion,
            "socialMediaPosts": self.social_media_posts.to_dict() if self.social_media_posts else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        posts = data.get("socialMediaPosts")
        return cls(
            id=data["id"],
            user_id=data["userId"],
            created_at=_parse_datetime(data["createdAt"]),
            summary=data["summary"],
            transcript=[TranscriptSegment.from_dict(item) for item in data.get("transcript", [])],
            emotion=data.get("emotion"),
            social_media_posts=SocialMediaPosts.from_dict(posts) if posts else None,
        )


@dataclass(frozen=True, slots=True)
class UserPrincipal:
    """The signed-in identity recordings are attributed to."""

    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def speaker_name(self) -> str:
        return self.display_name or "User"


@dataclass(slots=True)
class UserProfile:
    uid: str
    display_name: Optional[str]
    email: Optional[str]
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Notice:
    """A transient, user-visible notification."""

    title: str
    description: str
    variant: str = "default"

    @property
    def destructive(self) -> bool:
        return self.variant == "destructive"


@dataclass(slots=True)
class Config:
    """User configuration stored on disk."""

    user_id: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    openai_api_key: Optional[str] = None
    transcription_model: str = "gpt-4o-mini-transcribe"
    summary_model: str = "gpt-4o-mini"
    sample_rate: int = 16000
    channels: int = 1
    noise_suppression: bool = True
    upload_audio: bool = True
    generate_social_posts: bool = False
    detect_emotion: bool = True
    server_url: Optional[str] = None
    server_token: Optional[str] = None
    verify_ssl: bool = True
    api_timeout: float = 60.0
