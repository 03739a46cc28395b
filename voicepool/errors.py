"""Errors surfaced by the capture pipeline."""

from __future__ import annotations


class VoicepoolError(RuntimeError):
    """Base class for failures the pipeline reports to the user."""


class MicrophonePermissionError(VoicepoolError):
    """Microphone access was denied or no input device is available."""


class TranscriptionError(VoicepoolError):
    """A recorded segment could not be transcribed."""


class SaveError(VoicepoolError):
    """Summarising or persisting a session failed."""


class UploadError(VoicepoolError):
    """Raw audio could not be written to the blob store."""
