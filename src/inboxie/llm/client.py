from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from inboxie.errors import ConfigurationError, MalformedOutput, ProviderError
from inboxie.llm import prompts
from inboxie.models import Category, Message, ToneProfile

logger = logging.getLogger(__name__)

CATEGORY_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "category": {"type": "string", "enum": [c.value for c in Category]},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "reason": {"type": "string"},
    },
    "required": ["category", "confidence", "reason"],
}

REPLY_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "needs_reply": {"type": "boolean"},
        "reason": {"type": "string"},
        "urgency": {"type": "string", "enum": ["low", "medium", "high"]},
    },
    "required": ["needs_reply", "reason", "urgency"],
}

TONE_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "formality": {"type": "string", "enum": ["formal", "casual", "mixed"]},
        "length": {"type": "string", "enum": ["brief", "moderate", "detailed"]},
        "style": {"type": "array", "items": {"type": "string"}},
        "common_phrases": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["formality", "length", "style", "common_phrases"],
}


class OpenAIClient:
    """LLM adapter: categorization, reply assessment, tone analysis and reply writing."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: str = "gpt-4o-mini",
        reply_model: str = "gpt-4o",
        client: Optional[OpenAI] = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY is not configured.")
            client = OpenAI(api_key=api_key, max_retries=0)
        self._client = client
        self._model = model
        self._reply_model = reply_model

    def _create(self, *, model: str, system: str, user: str, schema: Optional[dict] = None, name: str = "") -> str:
        kwargs: Dict[str, Any] = {
            "model": model,
            "input": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if schema is not None:
            # Structured Outputs (JSON Schema)
            kwargs["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": name,
                    "schema": schema,
                    "strict": True,
                }
            }
        try:
            resp = self._client.responses.create(**kwargs)
        except openai.AuthenticationError as exc:
            raise ConfigurationError("OpenAI API key was rejected.") from exc
        except openai.OpenAIError as exc:
            raise ProviderError(f"OpenAI request failed: {exc}") from exc

        output_text = getattr(resp, "output_text", None)
        if not output_text:
            raise MalformedOutput("OpenAI response was empty.")
        return output_text

    def _create_json(self, *, model: str, system: str, user: str, schema: dict, name: str) -> Dict[str, Any]:
        output_text = self._create(model=model, system=system, user=user, schema=schema, name=name)
        try:
            data = json.loads(output_text)
        except json.JSONDecodeError as exc:
            raise MalformedOutput(f"OpenAI returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise MalformedOutput("OpenAI returned a non-object JSON value.")
        return data

    def classify(self, message: Message) -> Dict[str, Any]:
        """Return the raw {category, confidence, reason} answer; callers validate it."""
        return self._create_json(
            model=self._model,
            system=prompts.CATEGORY_SYSTEM,
            user=prompts.categorize_prompt(message.sender, message.subject, message.body or message.snippet),
            schema=CATEGORY_SCHEMA,
            name="email_category",
        )

    def assess_reply(self, message: Message) -> Dict[str, Any]:
        return self._create_json(
            model=self._model,
            system=prompts.REPLY_SYSTEM,
            user=prompts.reply_prompt(message.sender, message.subject, message.body or message.snippet),
            schema=REPLY_SCHEMA,
            name="reply_assessment",
        )

    def analyze_tone(self, sent: List[Message]) -> Dict[str, Any]:
        samples = "\n\n---\n\n".join(
            f"Subject: {m.subject}\nContent: {m.body[:500]}" for m in sent
        )[:8000]
        return self._create_json(
            model=self._model,
            system=prompts.TONE_SYSTEM,
            user=prompts.tone_prompt(samples),
            schema=TONE_SCHEMA,
            name="tone_profile",
        )

    def generate_reply(self, message: Message, tone: ToneProfile, context: Optional[str] = None) -> str:
        body = message.body or message.snippet
        if context:
            body = f"{body}\n\nUser Context: {context}"
        text = self._create(
            model=self._reply_model,
            system=prompts.REPLY_WRITER_SYSTEM,
            user=prompts.reply_writer_prompt(
                message.sender,
                message.subject,
                body,
                tone.formality,
                tone.length,
                tone.style,
                tone.common_phrases,
            ),
        )
        return text.strip()
