"""
Gemini vision analysis for uploaded images.

Produces the searchable metadata (description, tags, objects, scenes, colors)
stored alongside every image.
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from app.exceptions import AnalysisException
from app.image_service.models import SEARCHABLE_LIST_FIELDS
from app.settings import Settings, settings

log = logging.getLogger(__name__)

FALLBACK_DESCRIPTION_LENGTH = 500

ANALYSIS_PROMPT = """
Analyze this image in detail and provide structured information about its content.
Identify and categorize the following:

1. Main objects in the image
2. Scene type (e.g., indoor, outdoor, urban, nature)
3. Dominant colors
4. Activities or actions occurring in the image
5. Any text visible in the image
6. Overall mood or atmosphere
7. Time of day if apparent
8. Weather conditions if apparent
9. Distinctive landmarks if any

Format the response as a JSON object with the following structure:
{
  "description": "A brief overall description of the image",
  "objects": ["object1", "object2", ...],
  "scenes": ["scene1", "scene2", ...],
  "colors": ["color1", "color2", ...],
  "activities": ["activity1", "activity2", ...],
  "textContent": "Any visible text",
  "mood": ["mood1", "mood2", ...],
  "timeOfDay": "time if apparent",
  "weather": "weather if apparent",
  "landmarks": ["landmark1", "landmark2", ...],
  "tags": ["tag1", "tag2", ...]
}

The "tags" field should contain the most relevant keywords that would be useful for searching this image.
"""

SAFETY_SETTINGS = [
    types.SafetySetting(category=category, threshold="BLOCK_MEDIUM_AND_ABOVE")
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class GeminiAnalyzer:
    """
    Image analysis backed by a Gemini vision model.

    Each analyzer owns its own ``genai.Client``. ``analyze`` either returns
    normalized metadata or raises ``AnalysisException``; timeouts are
    reported the same way as any other failure.
    """

    def __init__(self, config: Settings = settings):
        self.model_name = config.gemini_model
        self.timeout = config.analysis_timeout_seconds
        self.client = None
        if config.gemini_api_key:
            self.client = genai.Client(
                api_key=config.gemini_api_key,
                # HttpOptions.timeout is in milliseconds
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
            log.info("Initialized Gemini analyzer with model %s", self.model_name)
        else:
            log.warning("GEMINI_API_KEY is not set; image analysis is disabled")

    def analyze(self, base64_image: str, mime_type: str) -> Dict[str, Any]:
        """
        Analyze a base64-encoded image.

        Args:
            base64_image: Image bytes, base64 encoded
            mime_type: MIME type of the image, e.g. ``image/jpeg``

        Returns:
            Dict with ``description``, ``tags``, ``objects``, ``scenes`` and
            ``colors``.

        Raises:
            AnalysisException: if the model call fails or times out
        """
        if self.client is None:
            raise AnalysisException("Image analysis is not configured")

        image_part = types.Part.from_bytes(data=base64.b64decode(base64_image), mime_type=mime_type)
        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=[ANALYSIS_PROMPT, image_part],
                config=types.GenerateContentConfig(safety_settings=SAFETY_SETTINGS),
            )
            text = response.text
        except Exception as e:
            log.error("Gemini analysis failed: %s", e)
            raise AnalysisException(f"Failed to analyze image: {e}") from e

        return parse_analysis(text)

    def close(self):
        log.info("Closed Gemini analyzer")


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Returns the first well-formed JSON object embedded in ``text``."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def parse_analysis(text: str) -> Dict[str, Any]:
    """
    Turn raw model output into metadata.

    Models often wrap the JSON in prose or markdown fences. When no object
    parses, the raw text (truncated) becomes the description.
    """
    payload = extract_json_object(text or "")
    if payload is None:
        log.warning("No JSON object in analysis response, using raw text")
        return {
            "description": (text or "")[:FALLBACK_DESCRIPTION_LENGTH],
            "tags": [],
            "objects": [],
            "scenes": [],
            "colors": [],
        }

    result = {"description": _as_text(payload.get("description"))}
    for field in SEARCHABLE_LIST_FIELDS:
        result[field] = _as_string_list(payload.get(field))
    return result


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items = []
    for element in value:
        if element is None:
            continue
        element = str(element).strip()
        if element:
            items.append(element)
    return items
