"""Tesseract OCR engine wrapper with a language fallback."""

import re
import unicodedata

import pytesseract
from PIL import Image

from finrecon.utils.logger import get_logger

logger = get_logger(__name__)

_LINE_ENDINGS = re.compile(r"\r\n?")
_SPACES = re.compile(r"[ \t]+")
_BLANK_LINES = re.compile(r"\n{3,}")


class OCRUnavailableError(RuntimeError):
    """The tesseract binary is not installed or not on PATH."""


def clean_ocr_text(text: str) -> str:
    """Remove OCR artifacts: stray control characters and extra whitespace.

    Printable ASCII, newlines, the rupee sign and letters (including
    Devanagari marks) are kept; everything else is dropped.
    """
    text = text.replace("\f", "\n")
    text = _LINE_ENDINGS.sub("\n", text)
    text = _SPACES.sub(" ", text)
    text = _BLANK_LINES.sub("\n\n", text)
    kept = [
        c
        for c in text
        if c == "\n" or c == "₹" or " " <= c <= "~" or unicodedata.category(c)[0] in "LM"
    ]
    return "".join(kept).strip()


class TesseractEngine:
    """Runs Tesseract on page images.

    The primary language set is tried first; if Tesseract fails with it
    (e.g. the Hindi traineddata is missing) the page is retried with the
    fallback language.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        languages: Primary language set, e.g. ``eng+hin``.
        fallback_language: Language used for the retry.
        oem: OCR engine mode (3 = default, LSTM when available).
        psm: Page segmentation mode (3 = fully automatic).
        timeout: Seconds allowed per page; 0 disables the limit.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        languages: str = "eng+hin",
        fallback_language: str = "eng",
        oem: int = 3,
        psm: int = 3,
        timeout: int = 0,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.languages = languages
        self.fallback_language = fallback_language
        self.config = f"--oem {oem} --psm {psm}"
        self.timeout = timeout

    def is_available(self) -> bool:
        try:
            pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError:
            return False
        return True

    def extract_text(self, image: Image.Image) -> tuple[str, str]:
        """OCR one image.

        Args:
            image: Page image.

        Returns:
            ``(cleaned_text, language_used)``.

        Raises:
            OCRUnavailableError: If the tesseract binary cannot be found.
            RuntimeError: If both attempts fail or the call times out.
        """
        try:
            return self._run(image, self.languages), self.languages
        except pytesseract.TesseractNotFoundError as exc:
            raise OCRUnavailableError("Tesseract OCR is not installed") from exc
        except pytesseract.TesseractError as exc:
            logger.warning(
                "OCR with %s failed (%s), retrying with %s",
                self.languages,
                exc,
                self.fallback_language,
            )

        try:
            return self._run(image, self.fallback_language), self.fallback_language
        except pytesseract.TesseractNotFoundError as exc:
            raise OCRUnavailableError("Tesseract OCR is not installed") from exc
        except pytesseract.TesseractError as exc:
            raise RuntimeError(f"Tesseract failed: {exc}") from exc

    def _run(self, image: Image.Image, lang: str) -> str:
        raw = pytesseract.image_to_string(
            image, lang=lang, config=self.config, timeout=self.timeout
        )
        text = clean_ocr_text(raw)
        logger.debug("OCR (%s) produced %d chars", lang, len(text))
        return text
