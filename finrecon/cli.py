"""Command-line interface for statement parsing, invoice extraction and reconciliation.

Subcommands:

* ``parse-statement``: parse a bank statement export to CSV.
* ``extract``: extract fields from one invoice to JSON.
* ``batch``: extract every invoice in a folder to CSV.
* ``reconcile``: parse a statement, extract a folder of invoices and match
  them against the statement's transactions.
"""

import argparse
import csv
import json
import sys
import time
from pathlib import Path
from typing import Any

from finrecon.extraction.models import InvoiceStatus
from finrecon.extraction.orchestrator import ExtractionOrchestrator
from finrecon.matching.engine import MatchingEngine
from finrecon.matching.store import InMemoryTransactionStore
from finrecon.statements.profile import BankFormatProfile, ProfileRegistry
from finrecon.statements.readers import file_extension
from finrecon.statements.registry import parse_statement
from finrecon.utils.config import AppConfig, load_config
from finrecon.utils.errors import ProfileNotFoundError
from finrecon.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_INVOICE_PATTERNS = ("*.pdf", "*.png", "*.jpg", "*.jpeg")
_EXTRACT_COLUMNS = [
    "filename",
    "status",
    "processing_time_s",
    "extraction_method",
    "confidence",
    "vendor_name",
    "vendor_gstin",
    "invoice_number",
    "invoice_date",
    "total_amount",
    "currency",
    "error",
]
_RECONCILE_COLUMNS = [
    "filename",
    "status",
    "vendor_name",
    "invoice_date",
    "total_amount",
    "transaction_id",
    "transaction_date",
    "transaction_description",
    "confidence",
    "suggestions",
    "error",
]


def _find_invoices(input_dir: Path) -> list[Path]:
    """Find all supported invoice files in a directory, sorted by name."""
    files: list[Path] = []
    for pattern in _INVOICE_PATTERNS:
        files.extend(input_dir.glob(pattern))
        files.extend(input_dir.glob(pattern.upper()))
    return sorted(set(files))


def _resolve_profile(
    config: AppConfig, bank: str, account_type: str, file_format: str
) -> BankFormatProfile:
    registry = ProfileRegistry(Path(config.statements.profiles_dir))
    try:
        return registry.get(bank, account_type, file_format)
    except ProfileNotFoundError:
        logger.warning(
            "No profile for %s/%s, using parser defaults", bank, account_type
        )
        return BankFormatProfile(
            bank_code=bank, account_type=account_type, file_format=file_format or "csv"
        )


def run_parse_statement(
    config: AppConfig,
    statement: Path,
    bank: str,
    account_type: str,
    output_csv: Path | None = None,
) -> int:
    """Parse one statement and write its transactions as CSV.

    Returns:
        Process exit code: 0 on success, 1 on a file-level failure.
    """
    profile = _resolve_profile(config, bank, account_type, file_extension(statement.name).lstrip("."))
    result = parse_statement(statement.read_bytes(), statement.name, profile, config.statements)

    for warning in result.warnings:
        logger.warning("%s", warning)
    if not result.success:
        for error in result.errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    rows = [_transaction_row(t.to_dict()) for t in result.transactions]
    if output_csv:
        _write_csv(rows, output_csv, list(rows[0]) if rows else [])
        print(f"{len(rows)} transactions written to {output_csv}")
    else:
        writer = csv.DictWriter(sys.stdout, fieldnames=list(rows[0]) if rows else ["transaction_date"])
        writer.writeheader()
        writer.writerows(rows)
    return 0


def _transaction_row(data: dict[str, Any]) -> dict[str, Any]:
    metadata = data.pop("metadata", {})
    data["metadata"] = json.dumps(metadata, sort_keys=True, default=str)
    return data


def extract_single(
    file_path: Path,
    orchestrator: ExtractionOrchestrator,
    content_type: str | None = None,
) -> dict[str, Any]:
    """Run the extraction pipeline on one file.

    Returns:
        Dictionary with status, fields, pipeline metadata and errors.
    """
    result = orchestrator.process(
        file_path.read_bytes(), filename=file_path.name, content_type=content_type
    )
    return {
        "filename": file_path.name,
        "status": result.status.value,
        "fields": result.fields.to_dict() if result.fields else None,
        "error": result.error_message,
        "pipeline": result.metadata,
    }


def process_folder(
    config: AppConfig,
    input_dir: Path,
    output_csv: Path,
    verbose: bool = False,
) -> dict[str, int]:
    """Extract every invoice in a folder and export the fields to CSV.

    Returns:
        Summary dict with total, successful and failed counts.
    """
    orchestrator = ExtractionOrchestrator(config)
    files = _find_invoices(input_dir)
    if not files:
        logger.warning("No invoices found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d invoices to process", len(files))
    results: list[dict[str, Any]] = []
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        result = orchestrator.process(file_path.read_bytes(), filename=file_path.name)
        row: dict[str, Any] = {
            "filename": file_path.name,
            "status": result.status.value,
            "processing_time_s": round(time.time() - start_time, 2),
            "error": result.error_message,
        }
        if result.fields:
            row.update(result.fields.to_dict())
        results.append(row)

        if result.status is InvoiceStatus.EXTRACTED:
            successful += 1
        else:
            failed += 1

    _write_csv(results, output_csv, _EXTRACT_COLUMNS)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary("Batch Extraction Complete", summary, output_csv)
    return summary


def reconcile(
    config: AppConfig,
    statement: Path,
    invoice_dir: Path,
    bank: str,
    account_type: str,
    output_csv: Path,
    owner_id: str = "default",
) -> dict[str, int]:
    """Match a folder of invoices against one statement's transactions.

    Returns:
        Summary dict with total, matched, suggested, unmatched and failed counts.
    """
    profile = _resolve_profile(config, bank, account_type, file_extension(statement.name).lstrip("."))
    parsed = parse_statement(statement.read_bytes(), statement.name, profile, config.statements)
    if not parsed.success:
        raise ValueError("; ".join(parsed.errors))

    store = InMemoryTransactionStore()
    store.add_many(owner_id, parsed.transactions)
    engine = MatchingEngine(store, config=config.matching)
    orchestrator = ExtractionOrchestrator(config)

    summary = {"total": 0, "matched": 0, "suggested": 0, "unmatched": 0, "failed": 0}
    rows: list[dict[str, Any]] = []
    for file_path in _find_invoices(invoice_dir):
        summary["total"] += 1
        extraction = orchestrator.process(file_path.read_bytes(), filename=file_path.name)
        row: dict[str, Any] = {"filename": file_path.name}

        if extraction.fields is None:
            row.update(status=extraction.status.value, error=extraction.error_message)
            summary["failed"] += 1
            rows.append(row)
            continue

        fields = extraction.fields
        row.update(
            vendor_name=fields.vendor_name,
            invoice_date=fields.invoice_date.isoformat() if fields.invoice_date else None,
            total_amount=str(fields.total_amount) if fields.total_amount is not None else None,
        )
        decision = engine.match(file_path.name, owner_id, fields, status=extraction.status)
        row.update(status=decision.status.value, error=decision.error)

        if decision.matched:
            linked = store.get(decision.transaction_id)
            row.update(
                transaction_id=decision.transaction_id,
                transaction_date=linked.transaction_date.isoformat() if linked else None,
                transaction_description=linked.description if linked else None,
                confidence=decision.confidence,
            )
            summary["matched"] += 1
        elif decision.suggestions:
            row["suggestions"] = "; ".join(
                f"{s.transaction_id}:{s.score}" for s in decision.suggestions
            )
            summary["suggested"] += 1
        else:
            summary["unmatched"] += 1
        rows.append(row)

    _write_csv(rows, output_csv, _RECONCILE_COLUMNS)
    _print_summary("Reconciliation Complete", summary, output_csv)
    return summary


def _write_csv(results: list[dict[str, Any]], output_path: Path, columns: list[str]) -> None:
    """Write result rows to a CSV file, creating parent directories."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(title: str, summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print(title)
    print(f"{'=' * 50}")
    for key, value in summary.items():
        print(f"{key.capitalize() + ':':<12}{value}")
    print(f"{'Output:':<12}{output_csv}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="finrecon",
        description="Bank statement parsing, invoice extraction and reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, help="Path to config YAML")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    statement_parser = subparsers.add_parser(
        "parse-statement", help="Parse a bank statement export"
    )
    statement_parser.add_argument("file", type=Path, help="Statement file (CSV or XLSX)")
    statement_parser.add_argument("--bank", required=True, help="Bank code, e.g. icici")
    statement_parser.add_argument(
        "--account-type", required=True, help="Account type, e.g. savings"
    )
    statement_parser.add_argument("-o", "--output", type=Path, help="Output CSV file")

    extract_parser = subparsers.add_parser("extract", help="Extract fields from one invoice")
    extract_parser.add_argument("file", type=Path, help="Invoice file (PDF or image)")
    extract_parser.add_argument("--content-type", help="Declared media type")
    extract_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    batch_parser = subparsers.add_parser("batch", help="Extract a folder of invoices")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory with invoices")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Match a folder of invoices against a statement"
    )
    reconcile_parser.add_argument("statement", type=Path, help="Statement file")
    reconcile_parser.add_argument("invoice_dir", type=Path, help="Directory with invoices")
    reconcile_parser.add_argument("--bank", required=True, help="Bank code, e.g. icici")
    reconcile_parser.add_argument(
        "--account-type", required=True, help="Account type, e.g. savings"
    )
    reconcile_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("reconciliation.csv"),
        help="Output CSV file (default: reconciliation.csv)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "parse-statement":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        code = run_parse_statement(config, args.file, args.bank, args.account_type, args.output)
        sys.exit(code)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        result = extract_single(args.file, ExtractionOrchestrator(config), args.content_type)
        output_str = json.dumps(result, indent=2, default=str)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    elif args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(config, args.input_dir, args.output, args.verbose)
    elif args.command == "reconcile":
        if not args.statement.exists():
            print(f"Error: {args.statement} does not exist", file=sys.stderr)
            sys.exit(1)
        if not args.invoice_dir.is_dir():
            print(f"Error: {args.invoice_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        try:
            reconcile(
                config,
                args.statement,
                args.invoice_dir,
                args.bank,
                args.account_type,
                args.output,
            )
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
