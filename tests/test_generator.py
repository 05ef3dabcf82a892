"""Tests for context building and the two generator clients (SDK clients mocked)."""
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from archive_rag.errors import GenerationError
from archive_rag.generation.generator import (
    AnthropicGenerator,
    OpenAIGenerator,
    build_context,
    build_system_prompt,
)
from archive_rag.utils.retry import RetryPolicy
from conftest import make_match


def _openai_client(content="The Warren Commission concluded [1].", choices=True):
    client = MagicMock()
    message = SimpleNamespace(content=content)
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=message)] if choices else [],
        usage=SimpleNamespace(prompt_tokens=120, completion_tokens=30),
    )
    return client


def _anthropic_client(text="Per the HSCA report [2]."):
    client = MagicMock()
    client.messages.create.return_value = SimpleNamespace(
        content=[SimpleNamespace(text=text)] if text else [],
        usage=SimpleNamespace(input_tokens=90, output_tokens=15),
    )
    return client


class TestBuildContext:
    def test_numbers_matches_from_one(self, ranked_matches):
        context, sources = build_context(ranked_matches)

        assert context.startswith("[1] (Source: Warren_Report.pdf, chunk 4)\ntext of Warren_Report_chunk_4")
        assert "\n\n[2] (Source: HSCA_Report.pdf, chunk 1)" in context
        assert [(s.index, s.document) for s in sources] == [
            (1, "Warren_Report.pdf"),
            (2, "HSCA_Report.pdf"),
            (3, "Church_Report.pdf"),
        ]

    def test_missing_source_is_labelled_unknown(self):
        match = make_match("x_chunk_0", 0.5, source="")
        context, sources = build_context([match])
        assert "Source: Unknown" in context
        assert sources[0].document == "Unknown"

    def test_system_prompt_names_collection_and_embeds_context(self):
        prompt = build_system_prompt("[1] (Source: a.pdf, chunk 0)\nhello", collection="JFK Archives")
        assert "JFK Archives" in prompt
        assert "[1] (Source: a.pdf, chunk 0)\nhello" in prompt
        assert "don't know" in prompt


class TestOpenAIGenerator:
    def test_generate_sends_system_and_user_messages(self):
        client = _openai_client()
        generator = OpenAIGenerator(client, model="anthropic/claude-3-sonnet", collection="JFK Archives")

        response = generator.generate("Who led the commission?", "[1] (Source: a.pdf, chunk 0)\nEarl Warren")

        assert response.answer == "The Warren Commission concluded [1]."
        assert response.total_tokens == 150
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "anthropic/claude-3-sonnet"
        assert kwargs["messages"][0]["role"] == "system"
        assert "Earl Warren" in kwargs["messages"][0]["content"]
        assert kwargs["messages"][1] == {"role": "user", "content": "Who led the commission?"}

    def test_client_error_becomes_generation_error(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("502 Bad Gateway")
        with pytest.raises(GenerationError, match="502 Bad Gateway"):
            OpenAIGenerator(client).generate("q", "ctx")

    def test_no_choices_is_an_error(self):
        with pytest.raises(GenerationError, match="no choices"):
            OpenAIGenerator(_openai_client(choices=False)).generate("q", "ctx")

    def test_empty_content_is_an_error(self):
        with pytest.raises(GenerationError):
            OpenAIGenerator(_openai_client(content="")).generate("q", "ctx")

    def test_retry_policy_is_applied(self):
        client = _openai_client()
        ok = client.chat.completions.create.return_value
        client.chat.completions.create.side_effect = [RuntimeError("flaky"), ok]
        generator = OpenAIGenerator(client, retry_policy=RetryPolicy(max_attempts=2, initial_wait_s=0, max_wait_s=0))

        assert generator.generate("q", "ctx").answer == "The Warren Commission concluded [1]."
        assert client.chat.completions.create.call_count == 2

    def test_default_is_a_single_attempt(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("flaky")
        with pytest.raises(GenerationError):
            OpenAIGenerator(client).generate("q", "ctx")
        assert client.chat.completions.create.call_count == 1


class TestAnthropicGenerator:
    def test_system_prompt_is_a_separate_parameter(self):
        client = _anthropic_client()
        response = AnthropicGenerator(client).generate("q", "[2] (Source: HSCA.pdf, chunk 3)\ntext")

        assert response.answer == "Per the HSCA report [2]."
        assert response.prompt_tokens == 90
        kwargs = client.messages.create.call_args.kwargs
        assert "HSCA.pdf" in kwargs["system"]
        assert kwargs["messages"] == [{"role": "user", "content": "q"}]

    def test_empty_content_is_an_error(self):
        with pytest.raises(GenerationError):
            AnthropicGenerator(_anthropic_client(text="")).generate("q", "ctx")
