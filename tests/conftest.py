"""Shared test fixtures for the finrecon test suite."""

from pathlib import Path

import pytest

from finrecon.statements.profile import ProfileRegistry


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def registry(config_dir: Path) -> ProfileRegistry:
    """Registry loaded with the bundled bank profiles."""
    return ProfileRegistry(config_dir / "bank_profiles")


@pytest.fixture
def invoice_text() -> str:
    """Embedded text of a typical GST tax invoice."""
    return (
        "Sold By: ACME Supplies Pvt Ltd\n"
        "12 MG Road, Bengaluru\n"
        "GSTIN: 29ABCDE1234F1Z5\n"
        "TAX INVOICE\n"
        "Invoice No: INV-2024-0042\n"
        "Invoice Date: 05/03/2024\n"
        "Bill To: Example Traders\n"
        "Description            Qty    Rate     Amount\n"
        "Office chairs           2   5,000.00  10,000.00\n"
        "Subtotal: 10,000.00\n"
        "CGST 9%: 900.00\n"
        "SGST 9%: 900.00\n"
        "Grand Total: Rs. 11,800.00\n"
        "Thank you for your business\n"
    )
