"""Command-line interface for tally sheet extraction and CSV export.

Provides subcommands for processing a single sheet, a folder of sheets,
recognized text that is already on disk, and listing available providers.
"""

import argparse
import csv
import dataclasses
import json
import sys
import time
from pathlib import Path

from src.ocr.errors import AllProvidersExhausted
from src.ocr.orchestrator import ServiceOrchestrator
from src.ocr.sheet_processor import SheetProcessor, SheetResult
from src.utils.config import AppConfig, load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.webp")
_CSV_COLUMNS = [
    "filename",
    "status",
    "row_number",
    "identifier",
    "length_meters",
    "weight_kg",
    "confidence_tag",
    "extraction_method",
    "provider",
    "error",
]


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported image files in a directory.

    Args:
        input_dir: Directory to scan for sheet photos.

    Returns:
        Sorted list of image file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def result_to_dict(result: SheetResult) -> dict[str, object]:
    """Convert a sheet result to JSON-serializable data."""
    data = dataclasses.asdict(result)
    data["has_structured_data"] = result.has_structured_data
    return data


def process_folder(
    input_dir: Path,
    output_csv: Path,
    processor: SheetProcessor,
    timeout: float | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Process all sheet images in a folder and export parsed rows to CSV.

    Args:
        input_dir: Directory containing sheet images.
        output_csv: Path for the output CSV file.
        processor: Sheet processor shared by all files.
        timeout: Seconds allowed for the cloud providers per file.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, failed, and row counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No images found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0, "rows": 0}

    logger.info("Found %d images to process", len(files))

    records: list[dict[str, object]] = []
    successful = 0
    failed = 0
    row_count = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            result = processor.process(file_path.read_bytes(), timeout=timeout)
        except (AllProvidersExhausted, ValueError, OSError) as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc)
            records.append(
                {"filename": file_path.name, "status": "failed", "error": str(exc)}
            )
            failed += 1
            continue

        logger.info(
            "Processed %s in %.2fs", file_path.name, time.time() - start_time
        )
        records.extend(_rows_to_records(file_path.name, result))
        row_count += len(result.rows)
        successful += 1

    _write_csv(records, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {
        "total": len(files),
        "successful": successful,
        "failed": failed,
        "rows": row_count,
    }
    _print_summary(summary, output_csv)
    return summary


def _rows_to_records(filename: str, result: SheetResult) -> list[dict[str, object]]:
    provider = ",".join(result.providers_used)
    if not result.rows:
        return [{"filename": filename, "status": "no_rows", "provider": provider}]
    return [
        {
            "filename": filename,
            "status": "success",
            "row_number": row.row_number,
            "identifier": row.identifier,
            "length_meters": row.length_meters,
            "weight_kg": row.weight_kg,
            "confidence_tag": row.confidence_tag,
            "extraction_method": row.extraction_method,
            "provider": provider,
        }
        for row in result.rows
    ]


def _write_csv(records: list[dict[str, object]], output_path: Path) -> None:
    """Write per-row records to a CSV file.

    Args:
        records: List of row dictionaries.
        output_path: Path for the output CSV file.
    """
    if not records:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(records)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, and failed images and rows.
        output_csv: Path to the output CSV.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Rows:       {summary['rows']}")
    print(f"Output:     {output_csv}")


def _emit_json(data: dict[str, object], output: Path | None) -> None:
    output_str = json.dumps(data, indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str)
        print(f"Output written to {output}")
    else:
        print(output_str)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tally-ocr",
        description="Tally Sheet OCR Processor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML configuration file (default: configs/config.yaml)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    single_parser = subparsers.add_parser("extract", help="Process a single image")
    single_parser.add_argument("file", type=Path, help="Image file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    single_parser.add_argument(
        "--timeout", type=float, default=None, help="Cloud provider time limit (s)"
    )

    batch_parser = subparsers.add_parser("batch", help="Process a folder of images")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with images"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("rows.csv"),
        help="Output CSV file (default: rows.csv)",
    )
    batch_parser.add_argument(
        "--timeout", type=float, default=None, help="Cloud provider time limit (s)"
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    parse_parser = subparsers.add_parser(
        "parse", help="Extract rows from already recognized text"
    )
    parse_parser.add_argument("file", type=Path, help="Text file to parse")
    parse_parser.add_argument(
        "--confidence",
        type=float,
        default=1.0,
        help="Confidence to assume for the text (default: 1.0)",
    )
    parse_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    subparsers.add_parser("providers", help="List enabled recognition providers")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    if args.debug:
        config = config.model_copy(update={"debug": True})
    setup_logging(config.effective_log_level)

    if args.command == "providers":
        _list_providers(config)
    elif args.command == "parse":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        processor = SheetProcessor(config)
        result = processor.process_text(
            args.file.read_text(), args.confidence, providers_used=[]
        )
        _emit_json(result_to_dict(result), args.output)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        processor = SheetProcessor(config)
        try:
            result = processor.process(args.file.read_bytes(), timeout=args.timeout)
        except (AllProvidersExhausted, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        _emit_json(result_to_dict(result), args.output)
    elif args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(
            args.input_dir,
            args.output,
            SheetProcessor(config),
            args.timeout,
            args.verbose,
        )


def _list_providers(config: AppConfig) -> None:
    orchestrator = ServiceOrchestrator.from_config(config)
    if config.ocr.force_provider:
        print(f"Forced provider: {config.ocr.force_provider}")
    for provider_id in orchestrator.available_providers():
        print(provider_id)


if __name__ == "__main__":
    main()
