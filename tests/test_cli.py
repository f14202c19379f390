"""Tests for the command-line interface and CSV export."""

import csv
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml

from finrecon.cli import (
    _find_invoices,
    _print_summary,
    _resolve_profile,
    _write_csv,
    extract_single,
    main,
    process_folder,
    reconcile,
    run_parse_statement,
)
from finrecon.extraction.models import (
    ExtractedInvoiceFields,
    InvoiceExtractionResult,
    InvoiceStatus,
)
from finrecon.utils.config import AppConfig, StatementConfig

AXIS_CSV = (
    "Date,Particulars,DR,CR,BAL\n"
    "01-03-2024,UPI/Zomato Order,450,,4550\n"
    "03-03-2024,NEFT/Salary March,,50000,54550\n"
)


def _extracted(vendor: str = "Zomato", amount: str = "450") -> InvoiceExtractionResult:
    return InvoiceExtractionResult(
        status=InvoiceStatus.EXTRACTED,
        fields=ExtractedInvoiceFields(
            vendor_name=vendor,
            invoice_number="ZOM-1",
            invoice_date=date(2024, 3, 1),
            total_amount=Decimal(amount),
            confidence=0.9,
            methods=["pdf_text", "rules"],
        ),
        metadata={"pages": 1},
    )


def _failed() -> InvoiceExtractionResult:
    return InvoiceExtractionResult(
        status=InvoiceStatus.FAILED, error_message="Unsupported file type"
    )


@pytest.fixture
def app_config(config_dir: Path) -> AppConfig:
    """Config pointing at the bundled bank profiles."""
    return AppConfig(statements=StatementConfig(profiles_dir=str(config_dir / "bank_profiles")))


@pytest.fixture
def config_file(tmp_path: Path, config_dir: Path) -> Path:
    """Config YAML usable with ``--config``."""
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "statements": {"profiles_dir": str(config_dir / "bank_profiles")},
                "log_level": "WARNING",
            }
        )
    )
    return path


@pytest.fixture
def statement(tmp_path: Path) -> Path:
    path = tmp_path / "axis.csv"
    path.write_text(AXIS_CSV)
    return path


class TestFindInvoices:
    """Tests for invoice discovery."""

    def test_supported_extensions(self, tmp_path: Path) -> None:
        for name in ("a.pdf", "b.png", "c.jpg", "d.jpeg", "notes.txt", "data.csv"):
            (tmp_path / name).touch()
        files = _find_invoices(tmp_path)
        assert [f.name for f in files] == ["a.pdf", "b.png", "c.jpg", "d.jpeg"]

    def test_uppercase_extensions(self, tmp_path: Path) -> None:
        (tmp_path / "SCAN.PDF").touch()
        assert len(_find_invoices(tmp_path)) == 1

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert _find_invoices(tmp_path) == []


class TestWriteCsv:
    """Tests for CSV writing."""

    def test_columns_and_extras(self, tmp_path: Path) -> None:
        output = tmp_path / "nested" / "results.csv"
        _write_csv(
            [{"filename": "a.pdf", "status": "extracted", "unused": 1}],
            output,
            ["filename", "status", "error"],
        )

        with open(output) as f:
            rows = list(csv.DictReader(f))
        assert rows == [{"filename": "a.pdf", "status": "extracted", "error": ""}]

    def test_header_only_when_empty(self, tmp_path: Path) -> None:
        output = tmp_path / "results.csv"
        _write_csv([], output, ["filename", "status"])
        assert output.read_text().strip() == "filename,status"


class TestPrintSummary:
    """Tests for summary printing."""

    def test_print_summary(self, capsys: pytest.CaptureFixture[str]) -> None:
        _print_summary(
            "Batch Extraction Complete",
            {"total": 5, "successful": 4, "failed": 1},
            Path("results.csv"),
        )
        out = capsys.readouterr().out
        assert "Batch Extraction Complete" in out
        assert "Total:      5" in out
        assert "Successful: 4" in out
        assert "Failed:     1" in out
        assert "results.csv" in out


class TestParseStatement:
    """Tests for the parse-statement command."""

    def test_writes_transactions_csv(
        self, app_config: AppConfig, statement: Path, tmp_path: Path
    ) -> None:
        output = tmp_path / "out" / "transactions.csv"

        code = run_parse_statement(app_config, statement, "axis", "savings", output)

        assert code == 0
        with open(output) as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 2
        assert rows[0]["transaction_type"] == "debit"
        assert rows[1]["transaction_type"] == "credit"
        assert json.loads(rows[0]["metadata"])["source"] == "statement_import"

    def test_file_level_error(
        self, app_config: AppConfig, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "empty.csv"
        path.write_text("")

        code = run_parse_statement(app_config, path, "axis", "savings")

        assert code == 1
        assert "Error:" in capsys.readouterr().err

    def test_unknown_bank_uses_defaults(self, app_config: AppConfig) -> None:
        profile = _resolve_profile(app_config, "examplebank", "savings", "csv")
        assert profile.bank_code == "examplebank"
        assert profile.column_mappings == {}

    def test_main_prints_to_stdout(
        self, config_file: Path, statement: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(
                [
                    "--config",
                    str(config_file),
                    "parse-statement",
                    str(statement),
                    "--bank",
                    "axis",
                    "--account-type",
                    "savings",
                ]
            )
        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "transaction_date,description" in out
        assert "UPI/Zomato Order" in out


class TestExtract:
    """Tests for single-file and batch extraction."""

    def test_extract_single(self, tmp_path: Path) -> None:
        invoice = tmp_path / "invoice.pdf"
        invoice.write_bytes(b"%PDF-1.4 test")
        orchestrator = MagicMock()
        orchestrator.process.return_value = _extracted()

        result = extract_single(invoice, orchestrator)

        orchestrator.process.assert_called_once_with(
            b"%PDF-1.4 test", filename="invoice.pdf", content_type=None
        )
        assert result["status"] == "extracted"
        assert result["fields"]["total_amount"] == "450"
        assert result["fields"]["extraction_method"] == "pdf_text+rules"
        assert result["pipeline"] == {"pages": 1}

    def test_extract_single_failure(self, tmp_path: Path) -> None:
        invoice = tmp_path / "invoice.png"
        invoice.write_bytes(b"data")
        orchestrator = MagicMock()
        orchestrator.process.return_value = _failed()

        result = extract_single(invoice, orchestrator)

        assert result["fields"] is None
        assert result["error"] == "Unsupported file type"

    @patch("finrecon.cli.ExtractionOrchestrator")
    def test_process_folder(
        self, mock_orchestrator_cls: MagicMock, app_config: AppConfig, tmp_path: Path
    ) -> None:
        mock_orchestrator_cls.return_value.process.side_effect = [_extracted(), _failed()]
        invoices = tmp_path / "invoices"
        invoices.mkdir()
        (invoices / "a.pdf").write_bytes(b"a")
        (invoices / "b.png").write_bytes(b"b")
        output = tmp_path / "results.csv"

        summary = process_folder(app_config, invoices, output)

        assert summary == {"total": 2, "successful": 1, "failed": 1}
        with open(output) as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["vendor_name"] == "Zomato"
        assert rows[1]["error"] == "Unsupported file type"

    @patch("finrecon.cli.ExtractionOrchestrator")
    def test_process_folder_verbose(
        self,
        mock_orchestrator_cls: MagicMock,
        app_config: AppConfig,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_orchestrator_cls.return_value.process.return_value = _extracted()
        (tmp_path / "a.pdf").write_bytes(b"a")

        process_folder(app_config, tmp_path, tmp_path / "out.csv", verbose=True)

        assert "Processing [1/1]: a.pdf" in capsys.readouterr().out

    def test_process_folder_empty(self, app_config: AppConfig, tmp_path: Path) -> None:
        summary = process_folder(app_config, tmp_path, tmp_path / "out.csv")
        assert summary["total"] == 0

    @patch("finrecon.cli.ExtractionOrchestrator")
    def test_main_extract_json(
        self,
        mock_orchestrator_cls: MagicMock,
        config_file: Path,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_orchestrator_cls.return_value.process.return_value = _extracted()
        invoice = tmp_path / "invoice.pdf"
        invoice.write_bytes(b"%PDF")

        main(["--config", str(config_file), "extract", str(invoice)])

        data = json.loads(capsys.readouterr().out)
        assert data["filename"] == "invoice.pdf"
        assert data["fields"]["vendor_name"] == "Zomato"


class TestReconcile:
    """Tests for the reconcile command."""

    @patch("finrecon.cli.ExtractionOrchestrator")
    def test_matches_invoice_to_transaction(
        self,
        mock_orchestrator_cls: MagicMock,
        app_config: AppConfig,
        statement: Path,
        tmp_path: Path,
    ) -> None:
        mock_orchestrator_cls.return_value.process.side_effect = [
            _extracted(),
            _extracted(vendor="Unknown Vendor", amount="99999"),
            _failed(),
        ]
        invoices = tmp_path / "invoices"
        invoices.mkdir()
        for name in ("a.pdf", "b.pdf", "c.pdf"):
            (invoices / name).write_bytes(b"%PDF")
        output = tmp_path / "reconciliation.csv"

        summary = reconcile(app_config, statement, invoices, "axis", "savings", output)

        assert summary == {
            "total": 3,
            "matched": 1,
            "suggested": 0,
            "unmatched": 1,
            "failed": 1,
        }
        with open(output) as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["status"] == "matched"
        assert rows[0]["transaction_description"] == "UPI/Zomato Order"
        assert rows[0]["confidence"] == "1.0"
        assert rows[1]["status"] == "unmatched"
        assert rows[2]["status"] == "failed"

    def test_statement_failure_raises(self, app_config: AppConfig, tmp_path: Path) -> None:
        bad = tmp_path / "empty.csv"
        bad.write_text("")
        with pytest.raises(ValueError):
            reconcile(app_config, bad, tmp_path, "axis", "savings", tmp_path / "out.csv")


class TestCLIMain:
    """Tests for the argument parser and main entry point."""

    def test_no_command_shows_help(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0

    def test_extract_nonexistent_file(
        self, config_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_file), "extract", "/nonexistent/file.pdf"])
        assert exc_info.value.code == 1
        assert "does not exist" in capsys.readouterr().err

    def test_batch_nonexistent_directory(
        self, config_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_file), "batch", "/nonexistent/path"])
        assert exc_info.value.code == 1
        assert "not a directory" in capsys.readouterr().err

    def test_parse_statement_requires_bank(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["parse-statement", "statement.csv"])
        assert exc_info.value.code == 2

    @patch("finrecon.cli.process_folder")
    def test_batch_command(
        self, mock_pf: MagicMock, config_file: Path, tmp_path: Path
    ) -> None:
        mock_pf.return_value = {"total": 1, "successful": 1, "failed": 0}
        output = tmp_path / "out.csv"
        main(["--config", str(config_file), "batch", str(tmp_path), "-o", str(output), "-v"])

        mock_pf.assert_called_once()
        args = mock_pf.call_args.args
        assert args[1:] == (tmp_path, output, True)

    @patch("finrecon.cli.reconcile")
    def test_reconcile_error_exits(
        self,
        mock_reconcile: MagicMock,
        config_file: Path,
        statement: Path,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_reconcile.side_effect = ValueError("Empty file")
        with pytest.raises(SystemExit) as exc_info:
            main(
                [
                    "--config",
                    str(config_file),
                    "reconcile",
                    str(statement),
                    str(tmp_path),
                    "--bank",
                    "axis",
                    "--account-type",
                    "savings",
                ]
            )
        assert exc_info.value.code == 1
        assert "Empty file" in capsys.readouterr().err
