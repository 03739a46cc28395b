"""Top-level package for voicepool."""

from . import config, pipeline, recorder, storage, summarizer, transcriber

__version__ = "0.1.0"

__all__ = ["config", "pipeline", "recorder", "storage", "summarizer", "transcriber"]
