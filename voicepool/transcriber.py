"""Audio transcription backends."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import load_config
from .llm import LanguageModelError, create_client, resolve_api_key
from .models import Config
from .recorder import decode_data_uri

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/wave": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/flac": ".flac",
}


class TranscribeAudioSegmentInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio_data_uri: str = Field(
        alias="audioDataUri",
        description="A recorded audio segment as a 'data:<mimetype>;base64,<encoded_data>' URI.",
    )

    @field_validator("audio_data_uri")
    @classmethod
    def _must_be_data_uri(cls, value: str) -> str:
        decode_data_uri(value)
        return value


class TranscribeAudioSegmentOutput(BaseModel):
    transcription: str = Field(description="The transcribed text of the audio segment.")


class TranscriptionBackend(Protocol):
    """Common interface for transcription backends."""

    def transcribe(self, audio_data_uri: str) -> str:
        """Return the transcript for an audio segment encoded as a data URI."""


class OpenAIBackend:
    """Cloud transcription using the OpenAI API."""

    def __init__(self, config: Config, client=None) -> None:
        self._client = client if client is not None else create_client(config)
        self._model = config.transcription_model

    def transcribe(self, audio_data_uri: str) -> str:
        request = TranscribeAudioSegmentInput(audioDataUri=audio_data_uri)
        mime_type, payload = decode_data_uri(request.audio_data_uri)
        filename = "segment" + _EXTENSIONS.get(mime_type, ".wav")
        logger.debug("Transcribing %d bytes of %s with %s", len(payload), mime_type, self._model)
        try:
            response = self._client.audio.transcriptions.create(
                model=self._model,
                file=(filename, payload, mime_type),
            )
        except Exception as exc:
            raise LanguageModelError(f"Transcription request failed: {exc}") from exc
        return TranscribeAudioSegmentOutput(transcription=response.text.strip()).transcription


class DummyBackend:
    """Fallback backend used when no transcription engine is available."""

    def __init__(self) -> None:
        self._notice = (
            "No transcription backend available. Configure an OpenAI API key with "
            "`voicepool config --openai-api-key ...` or set OPENAI_API_KEY."
        )

    def transcribe(self, audio_data_uri: str) -> str:
        raise LanguageModelError(self._notice)


def get_backend(config: Optional[Config] = None) -> TranscriptionBackend:
    """Return the best available transcription backend."""

    config = config or load_config()
    if resolve_api_key(config) is None:
        return DummyBackend()
    return OpenAIBackend(config)
