"""Microphone capture and audio blob encoding."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import numpy as np

from .errors import MicrophonePermissionError

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[^,;]+)*;base64,(?P<data>.*)$", re.DOTALL)


@dataclass(slots=True)
class CaptureSettings:
    """Constraints applied to an acquired microphone stream."""

    sample_rate: int = 16000
    channels: int = 1
    noise_suppression: bool = True


@dataclass(frozen=True, slots=True)
class AudioBlob:
    """A finalised recording held in memory."""

    data: bytes
    mime_type: str = "audio/wav"

    def to_data_uri(self) -> str:
        return encode_data_uri(self.data, self.mime_type)


def encode_data_uri(data: bytes, mime_type: str = "audio/wav") -> str:
    """Return ``data`` as a ``data:<mime>;base64,<payload>`` URI."""

    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """Split a base64 data URI into its MIME type and raw bytes."""

    match = _DATA_URI_RE.match(uri.strip())
    if match is None:
        raise ValueError("Expected a data URI of the form 'data:<mime>;base64,<data>'.")
    try:
        payload = base64.b64decode(match.group("data"), validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload in data URI: {exc}") from exc
    return match.group("mime"), payload


def suppress_noise(audio: np.ndarray, sample_rate: int, frame_ms: int = 20) -> np.ndarray:
    """Remove DC offset and attenuate frames that sit at the noise floor."""

    audio = audio - audio.mean(axis=0)
    frame = max(1, int(sample_rate * frame_ms / 1000))
    count = len(audio) // frame
    if count < 2:
        return audio

    framed = audio[: count * frame].reshape(count, frame, -1)
    rms = np.sqrt((framed**2).mean(axis=(1, 2)))
    floor = np.percentile(rms, 10)
    gate = np.where(rms > floor * 2.0, 1.0, 0.1).astype(audio.dtype)
    gated = (framed * gate[:, None, None]).reshape(count * frame, -1)
    return np.concatenate([gated, audio[count * frame :]], axis=0)


class CaptureHandle(Protocol):
    """A scoped microphone stream obtained from :class:`Microphone`."""

    @property
    def recording(self) -> bool:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> Optional[AudioBlob]:
        """Stop capture and return the buffered audio, or ``None`` if nothing was captured."""

    def release(self) -> None:
        """Stop the underlying hardware stream. Safe to call repeatedly."""


class Microphone(Protocol):
    def acquire(self, settings: CaptureSettings) -> CaptureHandle:
        """Request microphone access, raising :class:`MicrophonePermissionError` when denied."""


class SoundDeviceCapture:
    """Stream audio from an input device into memory."""

    def __init__(self, sd, settings: CaptureSettings) -> None:
        self._settings = settings
        self._frames: list[np.ndarray] = []
        self._recording = False
        self._released = False
        self._stream = sd.InputStream(
            samplerate=settings.sample_rate,
            channels=settings.channels,
            dtype="float32",
            callback=self._callback,
        )

    @property
    def recording(self) -> bool:
        return self._recording

    def start(self) -> None:
        if self._recording:
            return
        if self._released:
            raise RuntimeError("Capture handle has already been released.")
        self._frames = []
        self._stream.start()
        self._recording = True

    def stop(self) -> Optional[AudioBlob]:
        if not self._recording:
            return None
        self._stream.stop()
        self._recording = False

        if not self._frames:
            return None

        audio = np.concatenate(self._frames, axis=0)
        if self._settings.noise_suppression:
            audio = suppress_noise(audio, self._settings.sample_rate)

        import soundfile as sf

        buffer = io.BytesIO()
        sf.write(buffer, audio, self._settings.sample_rate, format="WAV")
        return AudioBlob(buffer.getvalue(), "audio/wav")

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            if self._recording:
                self._stream.stop()
        finally:
            self._recording = False
            self._stream.close()

    def _callback(self, indata, frames, time, status) -> None:
        if status:
            logger.debug("Recorder status: %s", status)
        self._frames.append(indata.copy())


class SoundDeviceMicrophone:
    """Acquire the default input device through PortAudio."""

    def __init__(self, sd=None) -> None:
        self._sd = sd

    def acquire(self, settings: CaptureSettings) -> SoundDeviceCapture:
        sd = self._sd
        if sd is None:
            try:
                import sounddevice as sd  # type: ignore
            except Exception as exc:  # pragma: no cover - optional dependency
                raise MicrophonePermissionError(
                    "The `sounddevice` package is required for recording."
                ) from exc

        try:
            device = sd.query_devices(kind="input")
            logger.debug("Using input device %s", device.get("name"))
            return SoundDeviceCapture(sd, settings)
        except (sd.PortAudioError, ValueError) as exc:
            raise MicrophonePermissionError(f"Could not access the microphone: {exc}") from exc
