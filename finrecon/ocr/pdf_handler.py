"""PDF to image conversion for the OCR fallback.

Renders only the leading pages of a PDF; invoice details are almost
always on the first one or two pages.
"""

from pdf2image import convert_from_bytes
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFPopplerTimeoutError,
    PDFSyntaxError,
)
from PIL import Image

from finrecon.utils.logger import get_logger

logger = get_logger(__name__)


class PDFConversionError(RuntimeError):
    """Raised when a PDF cannot be rendered to images."""


class PDFHandler:
    """Converts PDF bytes to PIL images with poppler via pdf2image.

    Args:
        dpi: Rendering resolution. 300 DPI gives good Tesseract accuracy.
        max_pages: Number of leading pages to render.
        timeout: Seconds allowed for the poppler subprocess.
    """

    def __init__(self, dpi: int = 300, max_pages: int = 2, timeout: int | None = None) -> None:
        self.dpi = dpi
        self.max_pages = max_pages
        self.timeout = timeout

    def pdf_to_images(self, content: bytes) -> list[Image.Image]:
        """Render the first ``max_pages`` pages of a PDF.

        Args:
            content: Raw PDF bytes.

        Returns:
            Page images in page order.

        Raises:
            PDFConversionError: If poppler is missing or the PDF is unreadable.
        """
        try:
            images = convert_from_bytes(
                content,
                dpi=self.dpi,
                first_page=1,
                last_page=self.max_pages,
                timeout=self.timeout,
            )
        except PDFInfoNotInstalledError as exc:
            raise PDFConversionError(
                "Failed to convert PDF to images. Install poppler-utils."
            ) from exc
        except PDFPopplerTimeoutError as exc:
            raise PDFConversionError(f"PDF conversion timed out after {self.timeout}s") from exc
        except (PDFPageCountError, PDFSyntaxError, Image.DecompressionBombError) as exc:
            raise PDFConversionError(f"PDF conversion failed: {exc}") from exc

        logger.info("Converted PDF to %d images at %d DPI", len(images), self.dpi)
        return images
