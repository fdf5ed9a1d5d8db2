#!/usr/bin/env python3
"""
Medical Form Field Analysis - Example Usage
===========================================

This script demonstrates how to run the field analysis pipeline over the
JSON output of a document-analysis service.

Usage:
    python examples/field_analysis_example.py examples/sample_claim_form.json

Input formats:
    - generic: {"pages": [...]} primitive payload (default)
    - azure: Azure Document Intelligence analyzeResult
    - textract: Textract AnalyzeDocument response ({"Blocks": [...]}) or blocks list
"""

import sys
import json
import argparse
import logging
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from medforms.services.field_analysis import (
    AnalysisConfig,
    CoordinateUnit,
    DEFAULT_TABLES,
    FieldAnalysisPipeline,
    MalformedInputError,
    from_azure_layout,
    from_textract_blocks,
    parse_raw_result,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def load_raw(path: Path, input_format: str):
    """Read a JSON file and convert it to a RawAnalysisResult."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if input_format == 'azure':
        # Accept both the full operation response and the bare analyzeResult
        return from_azure_layout(data.get('analyzeResult', data))
    if input_format == 'textract':
        blocks = data.get('Blocks', []) if isinstance(data, dict) else data
        return from_textract_blocks(blocks, page_size=(612.0, 792.0))
    return parse_raw_result(data)


def analyze_file(
    input_path: str,
    input_format: str = 'generic',
    output_path: str = None,
    dpi: float = None,
    font_size: float = None
):
    """
    Analyze a raw result file.

    Args:
        input_path: Path to the JSON file
        input_format: generic, azure or textract
        output_path: Optional path to save JSON output
        dpi: Produce pixel boxes at this DPI
        font_size: Default font size (None estimates from box height)
    """
    input_path = Path(input_path)
    if not input_path.exists():
        logger.error(f"File not found: {input_path}")
        return None

    try:
        raw = load_raw(input_path, input_format)
    except MalformedInputError as e:
        logger.error(f"Malformed input: {e}")
        for detail in e.details:
            logger.error(f"  {detail}")
        return None

    source_unit = raw.declared_unit or CoordinateUnit.INCH
    if dpi and source_unit != CoordinateUnit.PAGE_FRACTION:
        config = AnalysisConfig.for_dpi(dpi, source_unit, default_font_size=font_size)
    else:
        config = AnalysisConfig(scale=1.0, target_unit=source_unit, default_font_size=font_size)

    logger.info(f"Processing: {input_path.name} ({raw.total_primitives} primitives)")

    pipeline = FieldAnalysisPipeline(config)
    result = pipeline.analyze(raw)
    stats = pipeline.get_statistics(result)

    # Print summary
    print("\n" + "=" * 60)
    print("FIELD ANALYSIS RESULTS")
    print("=" * 60)
    print(f"\nInput Hash: {result.input_hash}")
    print(f"Total Fields: {stats['total_fields']}")
    print(f"Document Confidence: {result.document_confidence:.2%}")
    print(f"Completeness: {result.completeness:.2%}")
    print(f"Insurer: {result.profile.insurer or 'unknown'}")
    print(f"Form Type: {result.profile.form_type.value}")

    print("\n" + "-" * 40)
    print("DETECTED FIELDS")
    print("-" * 40)

    for page_number in sorted({f.page_number for f in result.fields}):
        page_fields = result.fields_on_page(page_number)
        print(f"\nPage {page_number}: {len(page_fields)} fields")

        for field in page_fields:
            conf_indicator = "✓" if field.confidence >= 0.7 else "?" if field.confidence >= 0.4 else "✗"
            fit_indicator = ""
            if field.capacity is None:
                fit_indicator = " [no box]"
            elif not field.capacity.fits:
                fit_indicator = f" [overflow {field.capacity.value_length}/{field.capacity.max_characters_per_line}]"

            print(f"  {conf_indicator} [{field.field_type:11}] {field.medical_type:15} "
                  f"{field.display_name[:30]:30} (conf: {field.confidence:.2f}){fit_indicator}")
            if field.value:
                print(f"    └─ Value: \"{field.value[:50]}{'...' if len(field.value) > 50 else ''}\"")

    if result.conflicts:
        print("\n" + "-" * 40)
        print("CONFLICTS")
        print("-" * 40)
        for conflict in result.conflicts:
            print(f"  p{conflict.page_number} {conflict.field_id_a} <-> {conflict.field_id_b}: "
                  f"{conflict.overlap_area_ratio:.0%} {conflict.severity.value} -> {conflict.resolution.value}")

    if result.warnings:
        print("\n" + "-" * 40)
        print("WARNINGS")
        print("-" * 40)
        for warning in result.warnings:
            print(f"  {warning}")

    print("\n" + "-" * 40)
    print("STATISTICS")
    print("-" * 40)
    print(f"Unclassified Rate: {stats['unclassified_rate']:.1%}")
    print(f"Overflowing Fields: {stats['overflow_count']}")

    print("\nMedical Type Distribution:")
    for category, count in sorted(stats['medical_type_distribution'].items(), key=lambda x: -x[1]):
        print(f"  {category}: {count}")

    print("\nCapacity Distribution:")
    for bucket, count in result.summary.capacity_distribution.items():
        print(f"  {bucket}: {count}")

    # Save output if path provided
    if output_path:
        output_path = Path(output_path)
        output_data = result.to_dict()
        output_data['statistics'] = stats

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(output_data, f, indent=2, ensure_ascii=False)

        logger.info(f"Output saved to: {output_path}")

    return result


def show_categories():
    """Print the classification tables."""
    described = DEFAULT_TABLES.describe()

    print("\n" + "=" * 60)
    print("CLASSIFICATION TABLES")
    print("=" * 60)

    print("\nValue validators (first match wins):")
    for index, name in enumerate(described['validators'], 1):
        print(f"  {index:2}. {name}")

    print("\nMedical categories (first match wins):")
    for category, keywords in described['categories'].items():
        print(f"  • {category}: {', '.join(keywords)}")
    print("  • other: (no keyword matched)")


def main():
    parser = argparse.ArgumentParser(
        description='Medical Form Field Analysis',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Analyze a generic payload and print results
    python field_analysis_example.py sample_claim_form.json

    # Analyze an Azure result at 150 DPI and save output to JSON
    python field_analysis_example.py azure.json --format azure --dpi 150 -o results.json

    # Show the classification tables
    python field_analysis_example.py --categories
        """
    )

    parser.add_argument(
        'input_path',
        nargs='?',
        help='Path to JSON file to analyze'
    )

    parser.add_argument(
        '--format',
        choices=['generic', 'azure', 'textract'],
        default='generic',
        help='Input format (default: generic)'
    )

    parser.add_argument(
        '-o', '--output',
        help='Path to save JSON output'
    )

    parser.add_argument(
        '--dpi',
        type=float,
        default=72.0,
        help='Produce pixel boxes at this DPI (default: 72, i.e. points)'
    )

    parser.add_argument(
        '--font-size',
        type=float,
        help='Default font size (estimated from box height when omitted)'
    )

    parser.add_argument(
        '--categories',
        action='store_true',
        help='Show the classification tables and exit'
    )

    args = parser.parse_args()

    if args.categories:
        show_categories()
        return

    if not args.input_path:
        parser.print_help()
        print("\nError: Please provide an input path or use --categories")
        sys.exit(1)

    analyze_file(args.input_path, args.format, args.output, args.dpi, args.font_size)


if __name__ == '__main__':
    main()
