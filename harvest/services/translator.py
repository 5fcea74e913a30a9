"""Best-effort translation of extracted text fields."""

from __future__ import annotations

import json
import logging
from typing import Any

from ..errors import AIServiceError
from ..models import ExtractionResult
from ..utils import extract_json_object
from .openrouter import TextService

logger = logging.getLogger(__name__)

TRANSLATION_PROMPT = """
You are a translator specialised in manga. Translate the data below into {language}.

RULES:
1. Keep manga titles in their original form (e.g. "Chainsaw Man" stays "Chainsaw Man").
2. Translate the synopsis completely.
3. Translate every genre (Action -> Ação, Fantasy -> Fantasia, Horror -> Terror, etc).
4. Keep author and artist names exactly as given.
5. Return ONLY valid JSON, with no explanations.

DATA TO TRANSLATE:
{payload}

RETURN ONLY THIS JSON:
{{
  "title": "keep the original title",
  "alternativeTitles": ["translate only if needed"],
  "synopsis": "TRANSLATE COMPLETELY",
  "genres": ["TRANSLATE every genre"],
  "author": "keep original",
  "artist": "keep original"
}}
"""


def _string_or(value: Any, fallback: str | None) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return fallback


def _string_list_or(value: Any, fallback: list[str]) -> list[str]:
    if isinstance(value, list) and value and all(isinstance(entry, str) for entry in value):
        return value
    return fallback


class Translator:
    """Rewrite synopsis, genres and alternate titles through the AI service.

    The primary title is never replaced and any failure yields the input
    unchanged, so calling this can never fail an item.
    """

    def __init__(self, text_service: TextService, target_language: str = "Brazilian Portuguese"):
        self._text_service = text_service
        self._target_language = target_language

    async def translate(self, result: ExtractionResult) -> ExtractionResult:
        fields = result.translatable_fields()
        logger.info("Translating %r into %s", result.title, self._target_language)
        prompt = TRANSLATION_PROMPT.format(
            language=self._target_language,
            payload=json.dumps(fields, ensure_ascii=False, indent=2),
        )

        try:
            answer = await self._text_service.complete(prompt)
            translated = extract_json_object(answer)
        except (AIServiceError, ValueError) as exc:
            logger.warning("Translation failed for %r, keeping original text: %s", result.title, exc)
            return result

        updates = {
            "alternative_titles": _string_list_or(
                translated.get("alternativeTitles"), result.alternative_titles
            ),
            "synopsis": _string_or(translated.get("synopsis"), result.synopsis),
            "genres": _string_list_or(translated.get("genres"), result.genres),
            "author": _string_or(translated.get("author"), result.author),
            "artist": _string_or(translated.get("artist"), result.artist),
        }
        merged = ExtractionResult.model_validate({**result.model_dump(), **updates})
        logger.info(
            "Translation finished for %r (synopsis=%s, genres=%s)",
            result.title,
            merged.synopsis is not None,
            len(merged.genres),
        )
        return merged
