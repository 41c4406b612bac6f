"""
Unit tests for the LLM client and its JSON response parsing.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from site_extractor.adapters.llm_client import LLMClient, parse_json_object


def _message(text):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=12, output_tokens=3),
    )


class TestParseJsonObject:
    """Test tolerant extraction of a JSON object from model output."""

    def test_plain_object(self):
        assert parse_json_object('{"price": "10"}') == {"price": "10"}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"title": [{"selector": "h1"}]}\n```\nThanks'
        assert parse_json_object(text) == {"title": [{"selector": "h1"}]}

    def test_object_inside_prose(self):
        assert parse_json_object('Result: {"a": 1} done') == {"a": 1}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
    def test_no_object(self, text):
        assert parse_json_object(text) is None


class TestLLMClient:
    """Test the client against a mocked Anthropic SDK."""

    def test_unconfigured_client(self):
        client = LLMClient(api_key=None)
        assert not client.is_available()
        response = asyncio.run(client.complete_json("prompt"))
        assert not response.ok
        assert response.error

    def test_json_answer(self):
        client = LLMClient(api_key="test-key")
        client.client = MagicMock()
        client.client.messages.create = AsyncMock(return_value=_message('```json\n{"a": 1}\n```'))

        response = asyncio.run(client.complete_json("prompt", purpose="test"))

        assert response.ok
        assert response.data == {"a": 1}
        kwargs = client.client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    def test_unparseable_answer(self):
        client = LLMClient(api_key="test-key")
        client.client = MagicMock()
        client.client.messages.create = AsyncMock(return_value=_message("I cannot help with that."))

        response = asyncio.run(client.complete_json("prompt"))

        assert not response.ok
        assert response.raw_text == "I cannot help with that."

    def test_api_error_is_returned(self):
        client = LLMClient(api_key="test-key")
        client.client = MagicMock()
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.client.messages.create = AsyncMock(side_effect=anthropic.APIConnectionError(request=request))

        response = asyncio.run(client.complete_json("prompt"))

        assert not response.ok
        assert response.error.startswith("LLM request failed")
