"""
Gemini service for the Jeve Home assistant widget.
Uses the google-genai client, either with an API key or with Vertex AI.
"""
import logging
from pathlib import Path
from typing import Iterator

from jevehome.config import get_settings
from jevehome.services.prompt_builder import build_title_prompt

logger = logging.getLogger(__name__)

# Lazy client to avoid import/credentials errors at import time
_gemini_client = None


def _get_client():
    global _gemini_client
    if _gemini_client is not None:
        return _gemini_client
    try:
        from google import genai
        from google.oauth2 import service_account
    except ImportError as e:
        raise RuntimeError(
            "Google GenAI not installed. pip install google-genai google-auth"
        ) from e

    settings = get_settings()
    from google.genai import types

    # stalled streams end with the exchange deadline (milliseconds)
    http_options = types.HttpOptions(timeout=int(settings.chat_timeout_seconds * 1000))
    if settings.vertex_project_id:
        credentials = None
        if settings.vertex_credentials_path:
            path = Path(settings.vertex_credentials_path)
            if path.is_file():
                credentials = service_account.Credentials.from_service_account_file(
                    str(path),
                    scopes=["https://www.googleapis.com/auth/cloud-platform"],
                )
        _gemini_client = genai.Client(
            vertexai=True,
            project=settings.vertex_project_id,
            location=settings.vertex_location,
            credentials=credentials,
            http_options=http_options,
        )
    elif settings.gemini_api_key:
        _gemini_client = genai.Client(api_key=settings.gemini_api_key, http_options=http_options)
    else:
        raise RuntimeError("GEMINI_API_KEY is not configured.")
    return _gemini_client


def _build_contents(messages: list[dict], new_message: str) -> list:
    """History ({"role": "user"|"assistant", "content"}) + new user message -> Gemini contents."""
    from google.genai import types

    contents = []
    for m in messages:
        role = m.get("role", "user")
        content = (m.get("content") or "").strip()
        if not content:
            continue
        if role == "user":
            contents.append(types.Content(role="user", parts=[types.Part.from_text(text=content)]))
        else:
            contents.append(types.Content(role="model", parts=[types.Part.from_text(text=content)]))
    contents.append(types.Content(role="user", parts=[types.Part.from_text(text=new_message)]))
    return contents


def generate_chat_stream(
    model: str,
    system_instruction: str,
    messages: list[dict],
    new_message: str,
) -> Iterator[str]:
    """
    Stream chat response from Gemini. Yields text deltas as they arrive.
    Caller collects the full text for saving the assistant turn.
    """
    client = _get_client()
    from google.genai.types import GenerateContentConfig

    stream = client.models.generate_content_stream(
        model=model,
        contents=_build_contents(messages, new_message),
        config=GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=0.7,
            max_output_tokens=2048,
        ),
    )
    for chunk in stream:
        if not chunk:
            continue
        text = getattr(chunk, "text", None)
        if text:
            yield text
            continue
        if chunk.candidates:
            c = chunk.candidates[0]
            if c.content and c.content.parts:
                text = getattr(c.content.parts[0], "text", None)
                if text:
                    yield text


def generate_title(model: str, first_message: str, first_reply: str) -> str:
    """Short conversation title (3-5 words) from the first exchange. Raises on API errors."""
    client = _get_client()
    settings = get_settings()
    from google.genai.types import GenerateContentConfig

    response = client.models.generate_content(
        model=model,
        contents=build_title_prompt(first_message, first_reply),
        config=GenerateContentConfig(temperature=0.3, max_output_tokens=32),
    )
    if not response or not response.candidates:
        raise ValueError("Empty response from model")
    candidate = response.candidates[0]
    if not candidate.content or not candidate.content.parts:
        raise ValueError("No text in model response")
    text = getattr(response, "text", None) or candidate.content.parts[0].text
    return clean_title(text, settings.chat_title_max_chars)


def clean_title(text: str | None, max_chars: int = 60) -> str:
    """Strip whitespace and wrapping quotes; cut to max_chars."""
    title = (text or "").strip().strip("\"'").strip()
    return title[:max_chars]


class GeminiChatProvider:
    """Generative provider used by the chat endpoint. Tests swap it via dependency override."""

    def stream_reply(
        self,
        model: str,
        system_instruction: str,
        history: list[dict],
        message: str,
    ) -> Iterator[str]:
        return generate_chat_stream(model, system_instruction, history, message)

    def generate_title(self, model: str, first_message: str, first_reply: str) -> str:
        return generate_title(model, first_message, first_reply)


def get_chat_provider() -> GeminiChatProvider:
    return GeminiChatProvider()
