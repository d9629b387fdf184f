"""
Base Structuring Provider Interface
===================================

Abstract base class and request model for text-generation providers that
turn cleaned article text into structured article fields.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

from ...config.settings import AIProvider
from ...utils.exceptions import StructuringRejectedError


# Fields requested from every provider; the first three are required
STRUCTURED_FIELDS = {
    "title": "Clear, factual headline without publisher suffixes",
    "excerpt": "One or two sentence summary, at most 300 characters",
    "content": "Full article body as clean HTML using only <p>, <h2>, <h3>, <ul>, <ol>, <li>, <blockquote>, <strong>, <em>",
    "slug": "URL-safe lowercase slug, hyphen separated",
    "seoTitle": "Search title, at most 60 characters",
    "seoDescription": "Search description, at most 160 characters",
    "tags": "Array of 3 to 10 lowercase topic tags",
    "location": "Main country or city the story is about, or null",
}

STRING_FIELD_PATTERN = r'"{name}"\s*:\s*"((?:[^"\\]|\\.)*)"'
TAGS_FIELD_PATTERN = re.compile(r'"tags"\s*:\s*\[(.*?)\]', re.DOTALL)


@dataclass
class StructuringRequest:
    """Cleaned article text plus source metadata sent to a provider."""
    text: str
    source_url: str
    title: str = ""
    category: Optional[str] = None
    source_label: Optional[str] = None
    published_at: Optional[datetime] = None


class StructuringProvider(ABC):
    """Abstract base class for structuring provider implementations."""

    def __init__(self, api_key: str, model_name: str, provider_type: AIProvider,
                 max_input_chars: int = 15000):
        """Initialize provider.

        Args:
            api_key: API key for the provider
            model_name: Model to use for requests
            provider_type: Type of provider
            max_input_chars: Article text beyond this is truncated
        """
        self.api_key = api_key
        self.model_name = model_name
        self.provider_type = provider_type
        self.max_input_chars = max_input_chars

    @property
    def name(self) -> str:
        return self.provider_type.value

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send a prompt and return the raw response text.

        Raises:
            AIError: If the request fails
        """
        pass

    async def structure(self, request: StructuringRequest) -> Dict[str, Any]:
        """Structure one article.

        Returns:
            Parsed (not yet validated) field dictionary

        Raises:
            AIError: On provider failure or an unparseable response
        """
        prompt = self._build_structuring_prompt(request)
        raw = await self.complete(prompt)
        return self._parse_structuring_response(raw)

    def _build_structuring_prompt(self, request: StructuringRequest) -> str:
        text = request.text[: self.max_input_chars]
        schema = "\n".join(f'- "{name}": {hint}' for name, hint in STRUCTURED_FIELDS.items())
        published = request.published_at.isoformat() if request.published_at else "unknown"

        return f"""Rewrite the following news article into structured fields for publication.

SOURCE:
URL: {request.source_url}
Original title: {request.title or "unknown"}
Category: {request.category or "general"}
Publisher: {request.source_label or "unknown"}
Published: {published}

ARTICLE TEXT:
{text}

Return ONLY a JSON object with these fields:
{schema}

Keep the facts of the original article. Do not invent quotes, names or numbers.
"""

    def _parse_structuring_response(self, response_text: str) -> Dict[str, Any]:
        """Parse a JSON response, salvaging fields from malformed output.

        Raises:
            StructuringRejectedError: If nothing usable can be read
        """
        if not response_text or not response_text.strip():
            raise StructuringRejectedError("Empty response", provider=self.name)

        cleaned = response_text.strip()
        fence = re.search(r"```(?:json)?\s*(.*?)```", cleaned, re.DOTALL)
        if fence:
            cleaned = fence.group(1).strip()

        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start != -1 and end > start:
            try:
                data = json.loads(cleaned[start:end + 1])
                if isinstance(data, dict):
                    return data
            except json.JSONDecodeError:
                pass

        salvaged = salvage_fields(cleaned)
        if not salvaged:
            raise StructuringRejectedError(
                f"Unparseable response: {response_text[:100]}", provider=self.name
            )
        salvaged["_salvaged"] = True
        return salvaged

    def __str__(self) -> str:
        return f"{type(self).__name__}(model={self.model_name})"


def salvage_fields(text: str) -> Dict[str, Any]:
    """Read whatever string and tag fields survive in malformed JSON."""
    data: Dict[str, Any] = {}
    for name in STRUCTURED_FIELDS:
        if name == "tags":
            continue
        match = re.search(STRING_FIELD_PATTERN.format(name=name), text, re.DOTALL)
        if match:
            try:
                data[name] = json.loads(f'"{match.group(1)}"')
            except json.JSONDecodeError:
                data[name] = match.group(1)

    tags = TAGS_FIELD_PATTERN.search(text)
    if tags:
        data["tags"] = re.findall(r'"((?:[^"\\]|\\.)*)"', tags.group(1))
    return data
