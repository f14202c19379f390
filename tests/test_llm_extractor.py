"""Tests for the LLM extractor, with the HTTP endpoint mocked by httpx.MockTransport."""

import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from finrecon.extraction.llm_extractor import (
    ANTHROPIC_URL,
    ANTHROPIC_VERSION,
    DEFAULT_ANTHROPIC_MODEL,
    OPENAI_URL,
    LLMExtractor,
)
from finrecon.utils.config import LLMConfig

TODAY = date(2024, 6, 1)

REPLY = {
    "vendor_name": "Acme Supplies",
    "invoice_number": "INV-42",
    "invoice_date": "2024-03-05",
    "total_amount": 11800.0,
    "vendor_gstin": "29abcde1234f1z5",
    "confidence": 0.9,
}


def _openai_body(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _extractor(handler, config: LLMConfig | None = None) -> LLMExtractor:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return LLMExtractor(config or LLMConfig(), api_key="sk-test", client=client)


class TestAvailability:
    """Tests for is_available and the not-configured path."""

    def test_missing_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("FINRECON_TEST_KEY", raising=False)
        extractor = LLMExtractor(LLMConfig(api_key_env="FINRECON_TEST_KEY"))

        assert extractor.is_available is False
        result = extractor.extract("Invoice text")
        assert not result.success
        assert result.error == "LLM not configured. Set FINRECON_TEST_KEY."

    def test_key_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FINRECON_TEST_KEY", "sk-env")
        extractor = LLMExtractor(LLMConfig(api_key_env="FINRECON_TEST_KEY"))
        assert extractor.is_available is True

    def test_disabled(self) -> None:
        extractor = LLMExtractor(LLMConfig(enabled=False), api_key="sk-test")
        assert extractor.is_available is False


class TestOpenAI:
    """Tests for the OpenAI-compatible chat completions call."""

    def test_success(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_openai_body(json.dumps(REPLY)))

        result = _extractor(handler).extract(
            "Invoice text", candidates={"total_amount": ["11800.00"]}, today=TODAY
        )

        assert result.success
        assert result.provider == "openai"
        assert result.fields.vendor_name == "Acme Supplies"
        assert result.fields.invoice_date == date(2024, 3, 5)
        assert result.fields.total_amount == Decimal("11800.0")
        assert result.fields.vendor_gstin == "29ABCDE1234F1Z5"
        assert result.fields.confidence == 0.9
        assert result.fields.methods == ["llm"]

        assert seen["url"] == OPENAI_URL
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert "- total_amount: 11800.00" in seen["body"]["messages"][1]["content"]

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = _extractor(handler).extract("Invoice text")
        assert result.error == "LLM request timed out"

    def test_http_error(self) -> None:
        result = _extractor(lambda request: httpx.Response(500, text="upstream down")).extract("x")
        assert result.error == "LLM API error: 500 - upstream down"

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = _extractor(handler).extract("Invoice text")
        assert result.error == "LLM request failed: connection refused"

    def test_unexpected_shape(self) -> None:
        result = _extractor(lambda request: httpx.Response(200, json={"id": "x"})).extract("x")
        assert result.error.startswith("Unexpected LLM response")

    def test_custom_base_url(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json=_openai_body("{}"))

        config = LLMConfig(base_url="http://localhost:8080/v1/chat/completions")
        _extractor(handler, config).extract("x")
        assert seen["url"] == "http://localhost:8080/v1/chat/completions"


class TestAnthropic:
    """Tests for the Anthropic messages call."""

    def test_success(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": [{"type": "text", "text": json.dumps(REPLY)}]})

        extractor = _extractor(handler, LLMConfig(provider="anthropic"))
        result = extractor.extract("Invoice text", today=TODAY)

        assert result.success
        assert result.model == DEFAULT_ANTHROPIC_MODEL
        assert seen["url"] == ANTHROPIC_URL
        assert seen["headers"]["x-api-key"] == "sk-test"
        assert seen["headers"]["anthropic-version"] == ANTHROPIC_VERSION
        assert seen["body"]["model"] == DEFAULT_ANTHROPIC_MODEL


class TestParseResponse:
    """Tests for validating the model's reply."""

    def setup_method(self) -> None:
        self.extractor = LLMExtractor(LLMConfig(), api_key="sk-test")

    def test_json_inside_prose(self) -> None:
        result = self.extractor.parse_response(f"Sure! {json.dumps(REPLY)} Hope this helps.", TODAY)
        assert result.fields.invoice_number == "INV-42"

    def test_invalid_values_dropped(self) -> None:
        reply = {
            "vendor_name": "null",
            "invoice_date": "2031-01-01",
            "total_amount": -5,
            "vendor_gstin": "NOT-A-GSTIN",
            "confidence": 4,
        }
        fields = self.extractor.parse_response(json.dumps(reply), TODAY).fields
        assert fields.vendor_name is None
        assert fields.invoice_date is None
        assert fields.total_amount is None
        assert fields.vendor_gstin is None
        assert fields.confidence == 1.0

    def test_amount_string(self) -> None:
        fields = self.extractor.parse_response('{"total_amount": "1,250.50"}', TODAY).fields
        assert fields.total_amount == Decimal("1250.50")
        assert fields.confidence == 0.7

    @pytest.mark.parametrize(
        "content, error",
        [
            ("", "Empty LLM response"),
            ("I could not find anything", "No JSON in LLM response"),
            ("{not json}", "Failed to parse LLM response"),
        ],
    )
    def test_bad_replies(self, content: str, error: str) -> None:
        result = self.extractor.parse_response(content)
        assert not result.success
        assert result.error.startswith(error)

    def test_prompt_truncates_text(self) -> None:
        extractor = LLMExtractor(LLMConfig(max_text_length=10), api_key="sk-test")
        prompt = extractor.build_prompt("x" * 50, {})
        assert "x" * 10 in prompt
        assert "x" * 11 not in prompt
        assert "CANDIDATES" not in prompt
