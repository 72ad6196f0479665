"""Provider adapter tests; SDK clients are mocked."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import groq
import httpx
import openai
import pytest

from manzai.tests.mocks import make_settings
from manzai.features.script.generator import (
    GroqGenerator,
    OpenAICompatibleGenerator,
    TextGeneratorError,
    build_text_generator,
)

MESSAGES = [{"role": "user", "content": "漫才を書いて"}]
XAI_REQUEST = httpx.Request("POST", "https://api.x.ai/v1/chat/completions")


def _response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@patch("manzai.features.script.generator.openai.OpenAI")
def test_openai_compatible_forwards_token_budget(mock_openai):
    client = MagicMock()
    client.chat.completions.create.return_value = _response("  A: どうも  ")
    mock_openai.return_value = client

    generator = OpenAICompatibleGenerator(api_key="xai-test", timeout=5)
    text = generator.complete(MESSAGES, temperature=0.8, max_tokens=100)

    assert text == "A: どうも"
    mock_openai.assert_called_once_with(api_key="xai-test", base_url="https://api.x.ai/v1", timeout=5)
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "grok-4-fast-reasoning"
    assert kwargs["max_tokens"] == 100
    assert kwargs["temperature"] == 0.8
    assert kwargs["extra_body"] == {"max_output_tokens": 100}


@patch("manzai.features.script.generator.openai.OpenAI")
def test_openai_compatible_without_extra_body(mock_openai):
    client = MagicMock()
    client.chat.completions.create.return_value = _response("x")
    mock_openai.return_value = client

    OpenAICompatibleGenerator(api_key="k", forward_max_output_tokens=False).complete(MESSAGES, temperature=0.1, max_tokens=10)

    assert client.chat.completions.create.call_args.kwargs["extra_body"] is None


@patch("manzai.features.script.generator.openai.OpenAI")
def test_no_choices_is_empty_text(mock_openai):
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(choices=[])
    mock_openai.return_value = client

    assert OpenAICompatibleGenerator(api_key="k").complete(MESSAGES, temperature=0.1, max_tokens=10) == ""


@patch("manzai.features.script.generator.openai.OpenAI")
def test_status_error_is_wrapped(mock_openai):
    client = MagicMock()
    client.chat.completions.create.side_effect = openai.APIStatusError(
        "bad gateway",
        response=httpx.Response(502, request=XAI_REQUEST),
        body=None,
    )
    mock_openai.return_value = client

    with pytest.raises(TextGeneratorError) as excinfo:
        OpenAICompatibleGenerator(api_key="k").complete(MESSAGES, temperature=0.1, max_tokens=10)
    assert excinfo.value.status == 502


@patch("manzai.features.script.generator.openai.OpenAI")
def test_connection_error_is_wrapped(mock_openai):
    client = MagicMock()
    client.chat.completions.create.side_effect = openai.APIConnectionError(request=XAI_REQUEST)
    mock_openai.return_value = client

    with pytest.raises(TextGeneratorError) as excinfo:
        OpenAICompatibleGenerator(api_key="k").complete(MESSAGES, temperature=0.1, max_tokens=10)
    assert excinfo.value.status is None


def test_missing_key_rejected():
    with pytest.raises(TextGeneratorError):
        OpenAICompatibleGenerator(api_key="")
    with pytest.raises(TextGeneratorError):
        GroqGenerator(api_key="")


@patch("manzai.features.script.generator.groq.Groq")
def test_groq_generator(mock_groq):
    client = MagicMock()
    client.chat.completions.create.return_value = _response("B: なんでやねん")
    mock_groq.return_value = client

    text = GroqGenerator(api_key="gsk-test", model="llama-3.1-8b-instant").complete(MESSAGES, temperature=0.2, max_tokens=50)

    assert text == "B: なんでやねん"
    assert "extra_body" not in client.chat.completions.create.call_args.kwargs


@patch("manzai.features.script.generator.groq.Groq")
def test_groq_error_is_wrapped(mock_groq):
    client = MagicMock()
    client.chat.completions.create.side_effect = groq.APIConnectionError(
        request=httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
    )
    mock_groq.return_value = client

    with pytest.raises(TextGeneratorError):
        GroqGenerator(api_key="gsk-test").complete(MESSAGES, temperature=0.2, max_tokens=50)


def test_empty_messages_rejected():
    with patch("manzai.features.script.generator.openai.OpenAI"):
        with pytest.raises(ValueError):
            OpenAICompatibleGenerator(api_key="k").complete([], temperature=0.1, max_tokens=10)


def test_build_without_key_disables_generation():
    assert build_text_generator(make_settings()) is None
    assert build_text_generator(make_settings(LLM_PROVIDER="groq")) is None


@patch("manzai.features.script.generator.groq.Groq")
@patch("manzai.features.script.generator.openai.OpenAI")
def test_build_picks_provider(mock_openai, mock_groq):
    xai = build_text_generator(make_settings(XAI_API_KEY="xai-test", XAI_MODEL="grok-test"))
    assert isinstance(xai, OpenAICompatibleGenerator)
    assert xai.model == "grok-test"

    grq = build_text_generator(make_settings(LLM_PROVIDER="groq", GROQ_API_KEY="gsk-test"))
    assert isinstance(grq, GroqGenerator)
