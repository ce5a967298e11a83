"""
Tests for core/recommender.py

The Anthropic SDK is always mocked; no request leaves the machine.

Run with: pytest tests/test_recommender.py
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest

from core.errors import ConfigurationError, RecommendationFetchError, ValidationError
from core.models import AudienceLevel
from core.recommender import (
    AUDIENCE_DESCRIPTIONS,
    RECOMMENDATION_SCHEMA,
    RecommendationClient,
    build_prompt,
    coerce_level,
    parse_response,
)


def make_settings(**overrides):
    """Return a minimal Settings-like object for testing."""
    settings = MagicMock()
    settings.anthropic_api_key = "test-key"
    settings.recommendation_model = "claude-haiku-4-5"
    settings.request_timeout = 30.0
    settings.temperature = 0.7
    settings.max_tokens = 2048
    for k, v in overrides.items():
        setattr(settings, k, v)
    return settings


def book_payload(title: str, /, **overrides) -> dict:
    payload = {
        "title": title,
        "author": "Peter Frankopan",
        "summary": "A history of the world through the trade routes of Asia.",
        "purchaseLink": "https://www.amazon.com/dp/1101912375",
        "coverImageURL": "https://covers.example.com/silk-roads.jpg",
    }
    payload.update(overrides)
    return payload


def fake_response(text: str) -> MagicMock:
    block = MagicMock()
    block.type = "text"
    block.text = text
    response = MagicMock()
    response.content = [block]
    return response


@pytest.fixture
def mock_anthropic():
    with patch("core.recommender.anthropic.Anthropic") as mock_cls:
        mock_client = MagicMock()
        mock_cls.return_value = mock_client
        yield mock_cls, mock_client


# ── Prompt construction ────────────────────────────────────────────────────


class TestBuildPrompt:
    def test_includes_topic(self):
        assert '"The Silk Road"' in build_prompt("The Silk Road", AudienceLevel.GENERAL)

    @pytest.mark.parametrize("level", list(AudienceLevel))
    def test_includes_audience_description(self, level):
        assert AUDIENCE_DESCRIPTIONS[level] in build_prompt("Rome", level)

    def test_accepts_level_string(self):
        assert AUDIENCE_DESCRIPTIONS[AudienceLevel.GRADUATE] in build_prompt("Rome", "graduate")

    def test_forbids_markdown_and_fabrication(self):
        prompt = build_prompt("Rome")
        assert "markdown" in prompt
        assert "empty array" in prompt

    def test_three_distinct_descriptions(self):
        assert len(set(AUDIENCE_DESCRIPTIONS.values())) == 3


class TestCoerceLevel:
    def test_string_level(self):
        assert coerce_level("undergraduate") is AudienceLevel.UNDERGRADUATE

    def test_unknown_level_raises(self):
        with pytest.raises(ValidationError, match="audience level"):
            coerce_level("postdoc")


class TestSchema:
    def test_book_fields_all_required(self):
        items = RECOMMENDATION_SCHEMA["properties"]["recommendations"]["items"]
        assert set(items["required"]) == {
            "title", "author", "summary", "purchaseLink", "coverImageURL",
        }

    def test_top_level_required(self):
        assert RECOMMENDATION_SCHEMA["required"] == ["recommendations", "relatedTopics"]


# ── Response parsing ───────────────────────────────────────────────────────


class TestParseResponse:
    def test_valid_response(self):
        raw = json.dumps({
            "recommendations": [book_payload("The Silk Roads")],
            "relatedTopics": ["Mongol Empire", "Tang Dynasty", "Sogdian merchants"],
        })
        result = parse_response(raw)
        assert result.recommendations[0].title == "The Silk Roads"
        assert result.recommendations[0].purchase_link == "https://www.amazon.com/dp/1101912375"
        assert result.related_topics == ["Mongol Empire", "Tang Dynasty", "Sogdian merchants"]

    def test_item_missing_author_is_dropped(self):
        incomplete = book_payload("Nameless")
        del incomplete["author"]
        raw = json.dumps({
            "recommendations": [book_payload("The Silk Roads"), incomplete],
            "relatedTopics": [],
        })
        result = parse_response(raw)
        assert [b.title for b in result.recommendations] == ["The Silk Roads"]

    @pytest.mark.parametrize("field", ["title", "summary", "purchaseLink", "coverImageURL"])
    def test_item_with_empty_field_is_dropped(self, field):
        raw = json.dumps({"recommendations": [book_payload("X", **{field: ""})]})
        assert parse_response(raw).recommendations == []

    def test_non_object_items_are_dropped(self):
        raw = json.dumps({"recommendations": ["just a title", None, book_payload("Ok")]})
        assert [b.title for b in parse_response(raw).recommendations] == ["Ok"]

    def test_caps_at_five_recommendations(self):
        raw = json.dumps({"recommendations": [book_payload(f"Book {i}") for i in range(7)]})
        assert len(parse_response(raw).recommendations) == 5

    def test_repeated_title_keeps_first_before_cap(self):
        books = [book_payload("SPQR", author="Mary Beard"), book_payload("SPQR", author="Someone Else")]
        books += [book_payload(f"Book {i}") for i in range(5)]
        result = parse_response(json.dumps({"recommendations": books}))
        assert [b.title for b in result.recommendations] == ["SPQR", "Book 0", "Book 1", "Book 2", "Book 3"]
        assert result.recommendations[0].author == "Mary Beard"

    def test_empty_recommendations(self):
        raw = json.dumps({"recommendations": [], "relatedTopics": ["Byzantium"]})
        result = parse_response(raw)
        assert result.recommendations == []
        assert result.related_topics == ["Byzantium"]

    def test_missing_related_topics_defaults_empty(self):
        raw = json.dumps({"recommendations": [book_payload("A")]})
        assert parse_response(raw).related_topics == []

    def test_malformed_related_topics_defaults_empty(self):
        raw = json.dumps({"recommendations": [], "relatedTopics": "Byzantium"})
        assert parse_response(raw).related_topics == []

    def test_surrounding_whitespace_tolerated(self):
        raw = "\n  " + json.dumps({"recommendations": []}) + "\n"
        assert parse_response(raw).recommendations == []

    def test_non_json_raises(self):
        with pytest.raises(RecommendationFetchError):
            parse_response("Here are some books you might like!")

    def test_markdown_fenced_json_raises(self):
        with pytest.raises(RecommendationFetchError):
            parse_response('```json\n{"recommendations": []}\n```')

    def test_array_top_level_raises(self):
        with pytest.raises(RecommendationFetchError):
            parse_response("[]")

    def test_recommendations_not_a_list_raises(self):
        with pytest.raises(RecommendationFetchError):
            parse_response('{"recommendations": {"title": "SPQR"}}')


# ── Client ─────────────────────────────────────────────────────────────────


class TestClientInit:
    def test_missing_key_fails_fast(self):
        with pytest.raises(ConfigurationError):
            RecommendationClient(make_settings(anthropic_api_key=""))

    def test_sdk_client_is_lazy(self, mock_anthropic):
        mock_cls, _ = mock_anthropic
        RecommendationClient(make_settings())
        mock_cls.assert_not_called()

    def test_sdk_client_has_no_retries_and_timeout(self, mock_anthropic):
        mock_cls, _ = mock_anthropic
        client = RecommendationClient(make_settings(request_timeout=12.5))
        _ = client.client
        mock_cls.assert_called_once_with(api_key="test-key", max_retries=0, timeout=12.5)


class TestFetchRecommendations:
    def test_returns_parsed_result(self, mock_anthropic):
        _, mock_client = mock_anthropic
        mock_client.messages.create.return_value = fake_response(json.dumps({
            "recommendations": [book_payload("A"), book_payload("B"), book_payload("C")],
            "relatedTopics": ["W", "X", "Y", "Z"],
        }))

        result = RecommendationClient(make_settings()).fetch_recommendations(
            "The Silk Road", AudienceLevel.GENERAL,
        )

        assert len(result.recommendations) == 3
        assert len(result.related_topics) == 4

    def test_single_request_with_schema_and_temperature(self, mock_anthropic):
        _, mock_client = mock_anthropic
        mock_client.messages.create.return_value = fake_response('{"recommendations": []}')

        RecommendationClient(make_settings()).fetch_recommendations("Rome", "graduate")

        mock_client.messages.create.assert_called_once()
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0.7
        assert kwargs["output_config"]["format"]["schema"] is RECOMMENDATION_SCHEMA
        assert AUDIENCE_DESCRIPTIONS[AudienceLevel.GRADUATE] in kwargs["messages"][0]["content"]

    def test_blank_topic_makes_no_call(self, mock_anthropic):
        _, mock_client = mock_anthropic
        with pytest.raises(ValidationError):
            RecommendationClient(make_settings()).fetch_recommendations("   ")
        mock_client.messages.create.assert_not_called()

    def test_api_error_becomes_fetch_error(self, mock_anthropic):
        _, mock_client = mock_anthropic
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        mock_client.messages.create.side_effect = anthropic.APIConnectionError(request=request)

        with pytest.raises(RecommendationFetchError) as excinfo:
            RecommendationClient(make_settings()).fetch_recommendations("Rome")

        assert isinstance(excinfo.value.__cause__, anthropic.APIConnectionError)
        mock_client.messages.create.assert_called_once()

    def test_timeout_becomes_fetch_error(self, mock_anthropic):
        _, mock_client = mock_anthropic
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        mock_client.messages.create.side_effect = anthropic.APITimeoutError(request=request)

        with pytest.raises(RecommendationFetchError):
            RecommendationClient(make_settings()).fetch_recommendations("Rome")

    def test_non_json_body_becomes_fetch_error(self, mock_anthropic):
        _, mock_client = mock_anthropic
        mock_client.messages.create.return_value = fake_response("Sorry, I can't help.")

        with pytest.raises(RecommendationFetchError):
            RecommendationClient(make_settings()).fetch_recommendations("Rome")

    def test_empty_content_becomes_fetch_error(self, mock_anthropic):
        _, mock_client = mock_anthropic
        response = MagicMock()
        response.content = []
        mock_client.messages.create.return_value = response

        with pytest.raises(RecommendationFetchError):
            RecommendationClient(make_settings()).fetch_recommendations("Rome")

    def test_non_text_block_becomes_fetch_error(self, mock_anthropic):
        _, mock_client = mock_anthropic
        block = MagicMock()
        block.type = "tool_use"
        response = MagicMock()
        response.content = [block]
        mock_client.messages.create.return_value = response

        with pytest.raises(RecommendationFetchError):
            RecommendationClient(make_settings()).fetch_recommendations("Rome")

    def test_block_without_type_becomes_fetch_error(self, mock_anthropic):
        _, mock_client = mock_anthropic
        response = MagicMock()
        response.content = [object()]
        mock_client.messages.create.return_value = response

        with pytest.raises(RecommendationFetchError):
            RecommendationClient(make_settings()).fetch_recommendations("Rome")
