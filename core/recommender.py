"""
Book recommendations from the Claude API.

Flow
────
1. build_prompt(topic, level)
     → librarian prompt conditioned on one of three audience descriptions
2. RecommendationClient.fetch_recommendations(topic, level)
     → exactly one structured-output call (JSON schema, temperature 0.7),
       no retries, bounded by ``settings.request_timeout``
3. parse_response(raw_text)
     → JSON parse + shape check; malformed items are dropped one by one,
       anything worse becomes a single RecommendationFetchError

The Anthropic client is lazy-initialised, but a missing API key is rejected
in the constructor so a misconfigured app fails before the first search.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Union

import anthropic

from core.errors import ConfigurationError, RecommendationFetchError, ValidationError
from core.models import AudienceLevel, BookRecommendation, RecommendationResult

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

#: Upper bound on recommendations kept from one response.
MAX_RECOMMENDATIONS = 5

#: Provider-side field names every recommendation must carry, non-empty.
REQUIRED_BOOK_FIELDS: tuple[str, ...] = (
    "title", "author", "summary", "purchaseLink", "coverImageURL",
)

# ── Audience conditioning ──────────────────────────────────────────────────

AUDIENCE_DESCRIPTIONS: dict[AudienceLevel, str] = {
    AudienceLevel.GENERAL: (
        "general readers with no prior background knowledge. Recommend accessible, "
        "engaging popular histories that explain concepts clearly without assuming expertise."
    ),
    AudienceLevel.UNDERGRADUATE: (
        "undergraduate students with some foundational knowledge. Recommend well-researched "
        "books that balance accessibility with academic rigor, including some scholarly works."
    ),
    AudienceLevel.GRADUATE: (
        "graduate students and academics seeking advanced scholarship. Recommend authoritative "
        "academic works, primary sources, and historiographical texts that engage with "
        "scholarly debates."
    ),
}

SYSTEM_PROMPT = (
    'You are a specialized AI assistant named "Historian\'s Bookshelf", an expert librarian '
    "recommending history books. Return only valid JSON, no commentary, no markdown fences."
)

#: JSON schema passed to the structured-output API.
RECOMMENDATION_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "recommendations": {
            "type": "array",
            "description": "A list of up to 5 book recommendations.",
            "items": {
                "type": "object",
                "properties": {
                    "title": {
                        "type": "string",
                        "description": "The full title of the recommended book.",
                    },
                    "author": {
                        "type": "string",
                        "description": "The full name of the book's author.",
                    },
                    "summary": {
                        "type": "string",
                        "description": (
                            "A short, one-paragraph summary of the book's contents, explaining "
                            "why it is a good recommendation for the topic."
                        ),
                    },
                    "purchaseLink": {
                        "type": "string",
                        "description": (
                            "A URL to a major online bookstore (like Amazon) where the book "
                            "can be purchased."
                        ),
                    },
                    "coverImageURL": {
                        "type": "string",
                        "description": (
                            "A publicly accessible, direct URL to the book's cover image, "
                            "ending in .jpg, .png, or .webp."
                        ),
                    },
                },
                "required": list(REQUIRED_BOOK_FIELDS),
                "additionalProperties": False,
            },
        },
        "relatedTopics": {
            "type": "array",
            "description": "3-4 related historical topics the user might also be interested in.",
            "items": {"type": "string"},
        },
    },
    "required": ["recommendations", "relatedTopics"],
    "additionalProperties": False,
}


def coerce_level(level: Union[AudienceLevel, str]) -> AudienceLevel:
    """Return *level* as an ``AudienceLevel``.

    Raises:
        ValidationError: If *level* is not one of the known levels.
    """
    try:
        return AudienceLevel(level)
    except ValueError:
        raise ValidationError(
            f"Unknown audience level {level!r}; expected one of "
            f"{[lvl.value for lvl in AudienceLevel]}."
        ) from None


def validate_topic(topic: str) -> str:
    """Return *topic* stripped, or raise ``ValidationError`` if it is blank."""
    topic = (topic or "").strip()
    if not topic:
        raise ValidationError("Please enter a historical topic.")
    return topic


def build_prompt(topic: str, level: Union[AudienceLevel, str] = AudienceLevel.GENERAL) -> str:
    """Build the user prompt for one recommendation request."""
    audience = AUDIENCE_DESCRIPTIONS[coerce_level(level)]
    return (
        f"Target audience: your recommendations should be appropriate for {audience}\n\n"
        "Task:\n"
        "1. Based on the user's topic, recommend up to 5 specific, well-regarded history "
        f'books. The user\'s topic is: "{topic}".\n'
        "2. For each book, provide its full title and author.\n"
        "3. For each book, write a short, one-paragraph summary explaining why it is a good "
        "recommendation for this topic, highlighting its key themes or unique perspective.\n"
        "4. For each book, provide a direct URL to a major online bookstore (like Amazon) "
        "where it can be purchased.\n"
        "5. For each book, provide a publicly accessible, direct URL to its cover image "
        "(e.g. from Goodreads, Wikipedia, or an online bookstore).\n"
        "6. Suggest 3-4 related historical topics, different from the original query but "
        "thematically connected.\n"
        "7. Output a single JSON object that strictly follows the provided schema. Do not "
        "include any markdown formatting. If you can't find any relevant books, return an "
        "empty array for 'recommendations' rather than inventing titles."
    )


# ── Response parsing ───────────────────────────────────────────────────────


def _is_complete_book(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    return all(
        isinstance(item.get(name), str) and item[name].strip()
        for name in REQUIRED_BOOK_FIELDS
    )


def parse_response(raw_text: str) -> RecommendationResult:
    """Turn raw provider text into a validated ``RecommendationResult``.

    Incomplete items and repeated titles are dropped silently; the batch is only
    rejected when the text is not a JSON object or ``recommendations`` is not
    a list.

    Raises:
        RecommendationFetchError: On non-JSON output or a schema violation.
    """
    try:
        data = json.loads(raw_text.strip())
    except (json.JSONDecodeError, AttributeError) as exc:
        raise RecommendationFetchError("Provider returned a non-JSON response.") from exc

    if not isinstance(data, dict):
        raise RecommendationFetchError(
            f"Provider returned a JSON {type(data).__name__}, expected an object."
        )

    items = data.get("recommendations") or []
    if not isinstance(items, list):
        raise RecommendationFetchError("Provider field 'recommendations' is not an array.")

    recommendations: list[BookRecommendation] = []
    seen: set[str] = set()
    for item in items:
        if not _is_complete_book(item) or item["title"] in seen:
            continue
        seen.add(item["title"])
        recommendations.append(BookRecommendation.model_validate(item))
    recommendations = recommendations[:MAX_RECOMMENDATIONS]
    dropped = len(items) - len(recommendations)
    if dropped:
        logger.info("Dropped %d incomplete, duplicate or surplus recommendations", dropped)

    topics = data.get("relatedTopics")
    related_topics = [t for t in topics if isinstance(t, str)] if isinstance(topics, list) else []

    return RecommendationResult(recommendations=recommendations, related_topics=related_topics)


# ── Client ─────────────────────────────────────────────────────────────────


class RecommendationClient:
    """Fetches structured book recommendations for a historical topic.

    Each call issues exactly one request: no retries, no streaming, no
    caching. Every failure during the call is reported as a single
    ``RecommendationFetchError`` with the original cause chained.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialise the client.

        Args:
            settings: Application configuration.

        Raises:
            ConfigurationError: If no provider API key is configured.
        """
        if not settings.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY environment variable is not set.")
        self.settings = settings
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self.settings.anthropic_api_key,
                max_retries=0,
                timeout=self.settings.request_timeout,
            )
        return self._client

    def fetch_recommendations(
        self,
        topic: str,
        level: Union[AudienceLevel, str] = AudienceLevel.GENERAL,
    ) -> RecommendationResult:
        """Ask the model for up to five books on *topic* for the given audience.

        Args:
            topic: Free-text historical subject.
            level: Audience level conditioning style and depth.

        Returns:
            A ``RecommendationResult`` with 0–5 books and any related topics.

        Raises:
            ValidationError: If *topic* is blank or *level* unknown.
            RecommendationFetchError: On network, timeout, API or parse failure.
        """
        topic = validate_topic(topic)
        level = coerce_level(level)
        logger.info("Recommendation request topic=%r level=%s", topic, level.value)

        try:
            response = self.client.messages.create(
                model=self.settings.recommendation_model,
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_prompt(topic, level)}],
                output_config={
                    "format": {"type": "json_schema", "schema": RECOMMENDATION_SCHEMA}
                },
            )
        except anthropic.APIError as exc:
            logger.warning("Recommendation request failed for topic=%r: %s", topic, exc)
            raise RecommendationFetchError(
                "Could not retrieve book recommendations from the AI model."
            ) from exc

        if not response.content:
            raise RecommendationFetchError("Provider returned an empty response.")

        block = response.content[0]
        block_type = getattr(block, "type", None)
        if block_type != "text":
            raise RecommendationFetchError(f"Provider returned a {block_type!r} block, expected text.")

        result = parse_response(block.text)
        logger.info(
            "Recommendation response: %d books, %d related topics",
            len(result.recommendations), len(result.related_topics),
        )
        return result
