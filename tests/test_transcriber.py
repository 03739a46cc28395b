from types import SimpleNamespace

import pytest

from voicepool.llm import LanguageModelError
from voicepool.models import Config
from voicepool.recorder import encode_data_uri
from voicepool.transcriber import DummyBackend, OpenAIBackend, get_backend


class FakeTranscriptions:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def _client(transcriptions):
    return SimpleNamespace(audio=SimpleNamespace(transcriptions=transcriptions))


def test_openai_backend_uploads_decoded_audio():
    transcriptions = FakeTranscriptions(text="  hello world \n")
    backend = OpenAIBackend(Config(transcription_model="whisper-1"), client=_client(transcriptions))

    text = backend.transcribe(encode_data_uri(b"RIFFdata", "audio/wav"))

    assert text == "hello world"
    call = transcriptions.calls[0]
    assert call["model"] == "whisper-1"
    assert call["file"] == ("segment.wav", b"RIFFdata", "audio/wav")


def test_openai_backend_wraps_provider_errors():
    transcriptions = FakeTranscriptions(error=RuntimeError("boom"))
    backend = OpenAIBackend(Config(), client=_client(transcriptions))

    with pytest.raises(LanguageModelError):
        backend.transcribe(encode_data_uri(b"x"))


def test_openai_backend_rejects_non_data_uri():
    backend = OpenAIBackend(Config(), client=_client(FakeTranscriptions()))

    with pytest.raises(ValueError):
        backend.transcribe("https://example.com/audio.wav")


def test_get_backend_without_key_falls_back_to_dummy(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    backend = get_backend(Config())
    assert isinstance(backend, DummyBackend)
    with pytest.raises(LanguageModelError):
        backend.transcribe(encode_data_uri(b"x"))
