"""Session summaries, sentiment and social posts from the hosted language model.

Every call renders a prompt template, asks the chat completion endpoint for a
JSON object and validates the reply against a pydantic schema before handing
plain records back to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

from .config import load_config
from .llm import LanguageModelError, create_client
from .models import Config, SocialMediaPosts, SocialPost

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = """You are an expert summarizer, skilled at distilling key information from long transcripts.

Please provide a concise summary of the following audio session transcript. Focus on key decisions, action items, and main points of discussion.
Also describe the overall emotion or sentiment of the conversation in a word or short phrase.

Reply with a JSON object: {{"summary": "...", "emotion": "..."}}

Transcript: {transcript}"""

METADATA_PROMPT = """You are an AI expert in summarizing audio transcripts. Please provide a concise and informative summary of the following transcript.

Reply with a JSON object: {{"summary": "..."}}

Transcript: {transcript}"""

SOCIAL_PROMPT = """You are a social media manager for a podcast creator. Your task is to generate compelling social media content based on the provided transcript and summary from a recent session. The tone should be from the creator's perspective.

**Session Summary:**
{summary}

**Full Transcript:**
{transcript}

Please generate content for the following platforms with the specified tones:
- **LinkedIn:** Professional and insightful. Encourage discussion and networking.
- **X (Twitter):** Short, punchy, and impactful. Use relevant hashtags to maximize reach.
- **Instagram:** Engaging and visual. Write a caption that would accompany a relevant image, carousel, or video clip.
- **Threads:** Conversational and community-focused. Ask a question to spark a dialogue.
- **Medium:** A blog post format. Provide a compelling title and an introductory paragraph that hooks the reader.
- **dev.to:** A developer-focused blog post. Create a catchy, technical title and an intro paragraph. If the content isn't technical, adapt it as best as possible or state that it's not a good fit.

Reply with a JSON object whose keys are "linkedIn", "x", "instagram", "threads", "medium" and "devto".
Each value is an object {{"title": "... (optional)", "content": "..."}}."""

_Schema = TypeVar("_Schema", bound=BaseModel)


class SummarizeSessionOutput(BaseModel):
    summary: str = Field(description="The summary of the entire audio session.")
    emotion: Optional[str] = Field(default=None, description="Overall sentiment of the session.")


class ArtifactMetadataOutput(BaseModel):
    summary: str = Field(description="A summary of the audio session.")


class SocialPostOutput(BaseModel):
    title: Optional[str] = None
    content: str


class SocialMediaPostsOutput(BaseModel):
    linkedIn: SocialPostOutput
    x: SocialPostOutput
    instagram: SocialPostOutput
    threads: SocialPostOutput
    medium: SocialPostOutput
    devto: SocialPostOutput

    def to_posts(self) -> SocialMediaPosts:
        return SocialMediaPosts(
            posts={
                name: SocialPost(content=post.content, title=post.title or None)
                for name, post in (
                    ("linkedIn", self.linkedIn),
                    ("x", self.x),
                    ("instagram", self.instagram),
                    ("threads", self.threads),
                    ("medium", self.medium),
                    ("devto", self.devto),
                )
            }
        )


@dataclass(slots=True)
class SessionSummary:
    summary: str
    emotion: Optional[str] = None


class Summarizer:
    """Prompt-template wrapper around the chat completion endpoint."""

    def __init__(self, client, model: str = "gpt-4o-mini", temperature: float = 0.3) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "Summarizer":
        config = config or load_config()
        return cls(create_client(config), model=config.summary_model)

    def summarise(self, transcript: str) -> SessionSummary:
        _require_text(transcript)
        result = self._complete(SUMMARY_PROMPT.format(transcript=transcript), SummarizeSessionOutput)
        emotion = (result.emotion or "").strip() or None
        return SessionSummary(summary=result.summary.strip(), emotion=emotion)

    def generate_artifact_metadata(self, transcript: str) -> str:
        _require_text(transcript)
        return self._complete(METADATA_PROMPT.format(transcript=transcript), ArtifactMetadataOutput).summary.strip()

    def generate_social_media_posts(self, transcript: str, summary: str) -> SocialMediaPosts:
        _require_text(transcript)
        prompt = SOCIAL_PROMPT.format(transcript=transcript, summary=summary)
        return self._complete(prompt, SocialMediaPostsOutput).to_posts()

    def _complete(self, prompt: str, schema: Type[_Schema]) -> _Schema:
        logger.debug("Requesting %s from %s", schema.__name__, self.model)
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
                temperature=self.temperature,
            )
        except Exception as exc:
            raise LanguageModelError(f"Language model request failed: {exc}") from exc

        content = response.choices[0].message.content or ""
        try:
            return schema.model_validate_json(content)
        except ValidationError as exc:
            raise LanguageModelError(f"Unexpected response from language model: {exc}") from exc


def _require_text(transcript: str) -> None:
    if not transcript.strip():
        raise ValueError("Transcript is empty.")
