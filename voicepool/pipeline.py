"""Push-to-talk capture pipeline.

A :class:`CapturePipeline` owns one in-memory :class:`Session`. Each press of
the talk trigger walks ``IDLE -> STARTING -> RECORDING -> FINALIZING -> IDLE``
and, when transcription succeeds, appends one :class:`TranscriptSegment`. Ending the
session summarises the joined transcript, persists an :class:`Artifact` and
clears the session. Failures are reported through the ``notify`` callback and
never leave the pipeline outside ``IDLE``.

Collaborators are blocking (HTTP clients, SQLite, PortAudio) and are run in
worker threads so the event loop driving the pipeline stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple

from .errors import (
    MicrophonePermissionError,
    SaveError,
    TranscriptionError,
    UploadError,
    VoicepoolError,
)
from .models import Artifact, Notice, SocialMediaPosts, TranscriptSegment, UserPrincipal
from .recorder import AudioBlob, CaptureHandle, CaptureSettings, Microphone
from .storage import ArtifactStore, BlobStore
from .summarizer import SessionSummary
from .transcriber import TranscriptionBackend

logger = logging.getLogger(__name__)

MICROPHONE_NOTICE = Notice(
    "Microphone Error",
    "Could not access your microphone. Please check permissions.",
    "destructive",
)
TRANSCRIPTION_NOTICE = Notice(
    "Transcription Failed",
    "Could not transcribe the audio segment.",
    "destructive",
)
UPLOAD_NOTICE = Notice("Upload Failed", "Could not save the recorded audio.", "destructive")
EMPTY_SESSION_NOTICE = Notice("Session is empty", "Record some audio before saving the session.")
BUSY_NOTICE = Notice("Session busy", "Wait for the current recording to finish before saving.")
SAVED_NOTICE = Notice("Session Saved", "Your session artifact has been successfully saved.")
SAVE_FAILED_NOTICE = Notice("Save Failed", "There was an error saving your session.", "destructive")


class RecorderState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RECORDING = "recording"
    FINALIZING = "finalizing"


class SessionState(str, Enum):
    EMPTY = "empty"
    HAS_SEGMENTS = "has_segments"
    SAVING = "saving"


class SessionSummarizer(Protocol):
    def summarise(self, transcript: str) -> SessionSummary:
        ...

    def generate_artifact_metadata(self, transcript: str) -> str:
        ...

    def generate_social_media_posts(self, transcript: str, summary: str) -> SocialMediaPosts:
        ...


@dataclass
class Session:
    """Ordered transcript segments for the active recording session."""

    segments: List[TranscriptSegment] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.segments)

    def append(self, segment: TranscriptSegment) -> None:
        self.segments.append(segment)

    def snapshot(self) -> Tuple[TranscriptSegment, ...]:
        return tuple(self.segments)

    def clear(self) -> None:
        self.segments.clear()

    def discard(self, count: int) -> None:
        """Drop the ``count`` oldest segments, keeping anything appended since."""

        del self.segments[:count]

    def full_transcript(self) -> str:
        return "\n".join(segment.text for segment in self.segments)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CapturePipeline:
    """Coordinate microphone capture, transcription and session saving."""

    def __init__(
        self,
        user: UserPrincipal,
        microphone: Microphone,
        transcriber: TranscriptionBackend,
        summarizer: SessionSummarizer,
        store: ArtifactStore,
        blob_store: Optional[BlobStore] = None,
        settings: Optional[CaptureSettings] = None,
        notify: Optional[Callable[[Notice], None]] = None,
        generate_social_posts: bool = False,
        detect_emotion: bool = True,
        session: Optional[Session] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.user = user
        self.session = session if session is not None else Session()
        self.settings = settings or CaptureSettings()
        self.generate_social_posts = generate_social_posts
        self.detect_emotion = detect_emotion
        self.last_error: Optional[VoicepoolError] = None
        self._microphone = microphone
        self._transcriber = transcriber
        self._summarizer = summarizer
        self._store = store
        self._blob_store = blob_store
        self._notify = notify or (lambda notice: None)
        self._clock = clock
        self._handle: Optional[CaptureHandle] = None
        self._pending_start: Optional[object] = None
        self._state = RecorderState.IDLE
        self._saving = False
        self._processing = False

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def session_state(self) -> SessionState:
        if self._saving:
            return SessionState.SAVING
        return SessionState.HAS_SEGMENTS if len(self.session) else SessionState.EMPTY

    @property
    def is_recording(self) -> bool:
        return self._state is RecorderState.RECORDING

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def segments(self) -> Tuple[TranscriptSegment, ...]:
        return self.session.snapshot()

    async def start_recording(self) -> bool:
        """Acquire the microphone and begin capturing. Returns ``True`` once recording."""

        if self._state is not RecorderState.IDLE:
            return False
        if self._processing:
            logger.debug("Ignoring start trigger while processing")
            return False

        token = object()
        self._pending_start = token
        self._state = RecorderState.STARTING
        try:
            handle = await asyncio.to_thread(self._microphone.acquire, self.settings)
        except MicrophonePermissionError as exc:
            self._abandon_start(token)
            self._report(exc, MICROPHONE_NOTICE)
            return False
        except Exception as exc:
            self._abandon_start(token)
            self._report(
                MicrophonePermissionError(f"Could not access the microphone: {exc}"),
                MICROPHONE_NOTICE,
                cause=exc,
            )
            return False

        try:
            if self._pending_start is token:
                await asyncio.to_thread(handle.start)
        except Exception as exc:
            await asyncio.to_thread(handle.release)
            self._abandon_start(token)
            self._report(
                MicrophonePermissionError(f"Could not start capturing audio: {exc}"),
                MICROPHONE_NOTICE,
                cause=exc,
            )
            return False

        if self._pending_start is not token:
            # Stopped or closed while the device was opening.
            logger.debug("Start trigger cancelled before recording began")
            await asyncio.to_thread(handle.release)
            return False

        self._pending_start = None
        self._handle = handle
        self._state = RecorderState.RECORDING
        logger.debug("Recording started")
        return True

    async def stop_recording(self) -> Optional[TranscriptSegment]:
        """Finish the active recording and transcribe it.

        Returns the appended segment, or ``None`` when nothing was recording,
        nothing was captured, or the segment was dropped after a failure.
        """

        if self._state is RecorderState.STARTING:
            self._abandon_start(self._pending_start)
            return None
        handle = self._handle
        if handle is None or self._state is not RecorderState.RECORDING:
            return None

        self._handle = None
        self._state = RecorderState.FINALIZING
        self._processing = True
        try:
            try:
                blob = await asyncio.to_thread(handle.stop)
            except Exception as exc:
                self._report(
                    TranscriptionError(f"Could not finalise the recording: {exc}"),
                    TRANSCRIPTION_NOTICE,
                    cause=exc,
                )
                return None
            if blob is None:
                logger.debug("Recording stopped before any audio was captured")
                return None
            return await self._finalize(blob)
        finally:
            try:
                await asyncio.to_thread(handle.release)
            finally:
                self._processing = False
                self._state = RecorderState.IDLE

    async def end_session(self) -> Optional[Artifact]:
        """Summarise and persist the session. Returns the saved artifact."""

        if self._state is not RecorderState.IDLE or self._processing:
            self._notify(BUSY_NOTICE)
            return None
        if not len(self.session):
            self._notify(EMPTY_SESSION_NOTICE)
            return None

        segments = self.session.snapshot()
        transcript = self.session.full_transcript()
        self._processing = True
        self._saving = True
        try:
            summary = await self._summarise(transcript)
            posts = None
            if self.generate_social_posts:
                posts = await asyncio.to_thread(
                    self._summarizer.generate_social_media_posts, transcript, summary.summary
                )
            artifact = await asyncio.to_thread(
                self._store.save_artifact,
                self.user.uid,
                list(segments),
                summary.summary,
                summary.emotion,
                posts,
            )
        except Exception as exc:
            self._report(
                SaveError(f"Could not save the session: {exc}"),
                SAVE_FAILED_NOTICE,
                cause=exc,
            )
            return None
        finally:
            self._saving = False
            self._processing = False

        self.session.discard(len(segments))
        logger.debug("Saved artifact %s with %d segments", artifact.id, len(artifact.transcript))
        self._notify(SAVED_NOTICE)
        return artifact

    async def close(self) -> None:
        """Release any active capture and discard the unsaved session."""

        self._abandon_start(self._pending_start)
        handle = self._handle
        self._handle = None
        if handle is not None:
            await asyncio.to_thread(handle.release)
        if self._state is RecorderState.RECORDING:
            self._state = RecorderState.IDLE
        self.session.clear()

    def _abandon_start(self, token: Optional[object]) -> None:
        if token is None or self._pending_start is not token:
            return
        self._pending_start = None
        self._state = RecorderState.IDLE

    async def _summarise(self, transcript: str) -> SessionSummary:
        if self.detect_emotion:
            return await asyncio.to_thread(self._summarizer.summarise, transcript)
        summary = await asyncio.to_thread(self._summarizer.generate_artifact_metadata, transcript)
        return SessionSummary(summary)

    async def _finalize(self, blob: AudioBlob) -> Optional[TranscriptSegment]:
        audio_url = await self._upload(blob)
        try:
            text = await asyncio.to_thread(self._transcriber.transcribe, blob.to_data_uri())
        except Exception as exc:
            self._report(
                TranscriptionError(f"Could not transcribe the audio segment: {exc}"),
                TRANSCRIPTION_NOTICE,
                cause=exc,
            )
            return None

        text = (text or "").strip()
        if not text:
            logger.debug("Transcription returned no text; segment dropped")
            return None

        segment = TranscriptSegment(
            speaker_id=self.user.uid,
            speaker_name=self.user.speaker_name,
            text=text,
            timestamp=self._clock(),
            audio_url=audio_url,
        )
        self.session.append(segment)
        return segment

    async def _upload(self, blob: AudioBlob) -> Optional[str]:
        if self._blob_store is None:
            return None
        timestamp_ms = int(self._clock().timestamp() * 1000)
        try:
            return await asyncio.to_thread(
                self._blob_store.upload_audio, self.user.uid, blob.data, timestamp_ms
            )
        except Exception as exc:
            self._report(
                UploadError(f"Could not upload the recorded audio: {exc}"),
                UPLOAD_NOTICE,
                cause=exc,
            )
            return None

    def _report(self, error: VoicepoolError, notice: Notice, cause: Optional[BaseException] = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        self.last_error = error
        logger.error("%s: %s", notice.title, error, exc_info=cause or error)
        self._notify(notice)
