"""LLM-based invoice field extraction for ambiguous documents.

Only used when rule-based extraction is uncertain. Supports OpenAI-style
chat completions and the Anthropic messages API over httpx. Every failure
mode (missing key, timeout, HTTP error, unparseable reply) is returned as
an ``LLMExtractionResult`` with ``error`` set; nothing is raised.
"""

import json
import os
import re
from datetime import date
from typing import Any

import httpx

from finrecon.utils.config import LLMConfig
from finrecon.utils.errors import sanitize_message
from finrecon.utils.logger import get_logger

from .models import ExtractedInvoiceFields, LLMExtractionResult
from .rule_extractor import is_valid_gstin, parse_amount, parse_invoice_date

logger = get_logger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_ANTHROPIC_MODEL = "claude-3-haiku-20240307"
DEFAULT_CONFIDENCE = 0.7

SYSTEM_PROMPT = "You are a document parsing assistant. Output only valid JSON."

PROMPT_TEMPLATE = """You are an expert at extracting structured data from Indian invoices and receipts.
Extract the following fields from the document text below.

IMPORTANT GUIDELINES:
1. For total_amount: Find the FINAL payable amount (Grand Total, Net Payable, Amount Due).
   Ignore subtotals, tax breakdowns, or item prices.
2. For vendor_name: Find the company/seller name, NOT the buyer.
3. For invoice_date: Use ISO format YYYY-MM-DD.
4. For invoice_number: Find the unique invoice/receipt/order number.
5. For vendor_gstin: Find the seller's GST number (15 characters: 2 digits + 10 chars + 3 chars).
{candidates}
DOCUMENT TEXT:
---
{text}
---

Respond ONLY with valid JSON in this exact format (no explanation):
{{
  "vendor_name": "string or null",
  "invoice_number": "string or null",
  "invoice_date": "YYYY-MM-DD or null",
  "total_amount": number or null,
  "vendor_gstin": "string or null",
  "confidence": 0.0 to 1.0
}}
"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class LLMExtractor:
    """Extracts invoice fields with a hosted language model.

    Args:
        config: Provider, model, limits and the environment variable that
            holds the API key.
        api_key: Explicit API key; overrides the environment.
        client: Preconfigured httpx client (mainly for tests).
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        api_key: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config or LLMConfig()
        self.provider = self.config.provider.lower()
        self.api_key = api_key or os.environ.get(self.config.api_key_env) or None
        self._client = client

    @property
    def is_available(self) -> bool:
        """Enabled in config and an API key is present."""
        return self.config.enabled and bool(self.api_key)

    @property
    def model(self) -> str:
        if self.provider == "anthropic" and self.config.model.startswith("gpt-"):
            return DEFAULT_ANTHROPIC_MODEL
        return self.config.model

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.config.timeout_seconds, connect=10.0)
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def extract(
        self,
        text: str,
        candidates: dict[str, list[Any]] | None = None,
        today: date | None = None,
    ) -> LLMExtractionResult:
        """Ask the model for invoice fields.

        Args:
            text: Document text; truncated to ``max_text_length``.
            candidates: Rule-extracted values offered to the model as hints.
            today: Reference date for validating the returned invoice date.

        Returns:
            Validated fields, or a result with ``error`` set.
        """
        if not self.is_available:
            return LLMExtractionResult(
                error=f"LLM not configured. Set {self.config.api_key_env}.",
                provider=self.provider,
            )

        prompt = self.build_prompt(text, candidates or {})
        try:
            content = self._call(prompt)
        except httpx.TimeoutException:
            logger.warning("LLM request timed out after %.0fs", self.config.timeout_seconds)
            return self._error("LLM request timed out")
        except httpx.HTTPStatusError as exc:
            logger.warning("LLM API error: %s", exc.response.status_code)
            return self._error(
                f"LLM API error: {exc.response.status_code} - {exc.response.text}"
            )
        except httpx.RequestError as exc:
            logger.warning("LLM request failed: %s", exc)
            return self._error(f"LLM request failed: {exc}")
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.warning("Unexpected LLM response shape: %s", exc)
            return self._error(f"Unexpected LLM response: {exc}")

        return self.parse_response(content, today)

    def build_prompt(self, text: str, candidates: dict[str, list[Any]]) -> str:
        return PROMPT_TEMPLATE.format(
            candidates=self._candidates_context(candidates),
            text=(text or "")[: self.config.max_text_length],
        )

    @staticmethod
    def _candidates_context(candidates: dict[str, list[Any]]) -> str:
        lines = [
            f"- {name}: {', '.join(str(v) for v in values)}"
            for name, values in candidates.items()
            if values
        ]
        if not lines:
            return ""
        return "\nCANDIDATES FOUND BY RULES (pick the best one):\n" + "\n".join(lines) + "\n"

    def _call(self, prompt: str) -> str | None:
        if self.provider == "anthropic":
            return self._call_anthropic(prompt)
        return self._call_openai(prompt)

    def _call_openai(self, prompt: str) -> str | None:
        response = self._get_client().post(
            self.config.base_url or OPENAI_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_tokens,
            },
        )
        response.raise_for_status()
        return response.json()["choices"][0]["message"]["content"]

    def _call_anthropic(self, prompt: str) -> str | None:
        response = self._get_client().post(
            self.config.base_url or ANTHROPIC_URL,
            headers={"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION},
            json={
                "model": self.model,
                "max_tokens": self.config.max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        response.raise_for_status()
        return response.json()["content"][0]["text"]

    def parse_response(self, content: str | None, today: date | None = None) -> LLMExtractionResult:
        """Validate the model's JSON reply into invoice fields.

        GSTINs must match the 15-character grammar, dates must parse within
        the accepted range and amounts must lie in (0, 100,000,000); values
        failing validation are dropped rather than trusted.
        """
        if not content or not content.strip():
            return self._error("Empty LLM response")

        match = _JSON_OBJECT.search(content)
        if not match:
            return self._error("No JSON in LLM response")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            return self._error(f"Failed to parse LLM response: {exc}")
        if not isinstance(data, dict):
            return self._error("LLM response is not a JSON object")

        amount = data.get("total_amount")
        raw_date = data.get("invoice_date")
        gstin = _clean_str(data.get("vendor_gstin"))
        if gstin:
            gstin = gstin.upper()

        fields = ExtractedInvoiceFields(
            vendor_name=_clean_str(data.get("vendor_name")),
            invoice_number=_clean_str(data.get("invoice_number")),
            invoice_date=parse_invoice_date(str(raw_date), today) if raw_date else None,
            total_amount=parse_amount(str(amount)) if amount not in (None, "") else None,
            vendor_gstin=gstin if is_valid_gstin(gstin) else None,
            confidence=_confidence(data.get("confidence")),
            methods=["llm"],
        )
        logger.info(
            "LLM extraction (%s) returned %d fields, confidence %.2f",
            self.provider,
            fields.fields_found,
            fields.confidence,
        )
        return LLMExtractionResult(fields=fields, provider=self.provider, model=self.model)

    def _error(self, message: str) -> LLMExtractionResult:
        return LLMExtractionResult(
            error=sanitize_message(message), provider=self.provider, model=self.model
        )


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    return text


def _confidence(value: Any) -> float:
    try:
        confidence = float(value) if value is not None else DEFAULT_CONFIDENCE
    except (TypeError, ValueError):
        confidence = DEFAULT_CONFIDENCE
    return min(max(confidence, 0.0), 1.0)
