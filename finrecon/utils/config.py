"""Configuration management for the reconciliation core.

Loads and validates YAML configuration with defaults for statement
parsing, text quality, OCR, LLM disambiguation, file validation and
invoice matching.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class StatementConfig(BaseModel):
    """Configuration for the bank statement parsers."""

    profiles_dir: str = "configs/bank_profiles"
    header_scan_rows: int = 20
    description_max_length: int = 250
    original_description_max_length: int = 500
    max_spreadsheet_bytes: int = 20 * 1024 * 1024


class TextQualityConfig(BaseModel):
    """Thresholds for deciding whether embedded PDF text needs OCR."""

    min_text_length: int = 200
    ocr_score_threshold: float = 0.4
    min_keyword_hits: int = 2


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR fallback."""

    tesseract_cmd: str | None = None
    languages: str = "eng+hin"
    fallback_language: str = "eng"
    oem: int = 3
    psm: int = 3
    pdf_dpi: int = 300
    max_pages: int = 2
    timeout_seconds: int = 60


class LLMConfig(BaseModel):
    """Configuration for the optional LLM disambiguation stage."""

    enabled: bool = True
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    api_key_env: str = "OPENAI_API_KEY"
    timeout_seconds: float = 30.0
    max_text_length: int = 8000
    max_tokens: int = 500
    temperature: float = 0.1


class ExtractionConfig(BaseModel):
    """Configuration for the extraction orchestrator."""

    ambiguity_threshold: float = 0.3
    rules_confidence_threshold: float = 0.5
    default_currency: str = "INR"
    text_excerpt_length: int = 10_000


class ValidationConfig(BaseModel):
    """Limits applied to uploaded documents before extraction."""

    max_file_size: int = 10 * 1024 * 1024
    allowed_content_types: list[str] = Field(
        default_factory=lambda: [
            "application/pdf",
            "image/png",
            "image/jpeg",
            "image/jpg",
        ]
    )
    reject_active_pdf_content: bool = False


class MatchingConfig(BaseModel):
    """Thresholds and windows for invoice-to-transaction matching."""

    auto_match_threshold: float = 80
    suggest_threshold: float = 40
    max_suggestions: int = 5
    amount_tolerance_pct: float = 0.05
    min_amount_tolerance: float = 10
    date_window_days: int = 7
    fallback_window_days: int = 30
    candidate_limit: int = 50


class AppConfig(BaseModel):
    """Top-level application configuration."""

    statements: StatementConfig = Field(default_factory=StatementConfig)
    text_quality: TextQualityConfig = Field(default_factory=TextQualityConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
