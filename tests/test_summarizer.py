import json
from types import SimpleNamespace

import pytest

from voicepool.llm import LanguageModelError
from voicepool.models import PLATFORMS
from voicepool.summarizer import Summarizer


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _summarizer(*replies):
    completions = FakeCompletions(replies)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return Summarizer(client, model="test-model"), completions


def test_summarise_returns_summary_and_emotion():
    summarizer, completions = _summarizer(json.dumps({"summary": " Greeting exchanged ", "emotion": "friendly"}))

    result = summarizer.summarise("hello world")

    assert result.summary == "Greeting exchanged"
    assert result.emotion == "friendly"
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] == {"type": "json_object"}
    assert "hello world" in call["messages"][0]["content"]


def test_summarise_treats_blank_emotion_as_missing():
    summarizer, _ = _summarizer(json.dumps({"summary": "Plans", "emotion": "  "}))
    assert summarizer.summarise("we made plans").emotion is None


def test_summarise_rejects_empty_transcript():
    summarizer, completions = _summarizer()
    with pytest.raises(ValueError):
        summarizer.summarise("   ")
    assert completions.calls == []


def test_invalid_model_reply_raises_language_model_error():
    summarizer, _ = _summarizer("not json at all")
    with pytest.raises(LanguageModelError):
        summarizer.summarise("hello")


def test_generate_artifact_metadata_returns_summary_only():
    summarizer, completions = _summarizer(json.dumps({"summary": "Weekly sync notes\n"}))

    assert summarizer.generate_artifact_metadata("we met and synced") == "Weekly sync notes"
    assert "we met and synced" in completions.calls[0]["messages"][0]["content"]


def test_provider_failure_raises_language_model_error():
    summarizer, _ = _summarizer(RuntimeError("rate limited"))
    with pytest.raises(LanguageModelError):
        summarizer.generate_artifact_metadata("hello")


def test_generate_social_media_posts_covers_every_platform():
    payload = {name: {"content": f"post for {name}"} for name in PLATFORMS}
    payload["medium"]["title"] = "What we learned"
    summarizer, completions = _summarizer(json.dumps(payload))

    posts = summarizer.generate_social_media_posts("full transcript", "short summary")

    assert [name for name, _ in posts.items()] == list(PLATFORMS)
    assert posts["medium"].title == "What we learned"
    assert posts["x"].title is None
    prompt = completions.calls[0]["messages"][0]["content"]
    assert "short summary" in prompt and "full transcript" in prompt


def test_generate_social_media_posts_requires_all_platforms():
    summarizer, _ = _summarizer(json.dumps({"x": {"content": "only x"}}))
    with pytest.raises(LanguageModelError):
        summarizer.generate_social_media_posts("t", "s")
