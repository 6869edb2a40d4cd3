#!/usr/bin/env python3
"""
Main script for running dose-response layout detection.
"""

# Pipeline overview:
# 1) Load each CSV page exactly as displayed (no header inference) into a raw grid.
# 2) Locate the header row, concentration column and response columns.
# 3) Concurrently classify the dilution pattern, validate the dataset and run
#    the adaptive pattern detector under a timeout.
# 4) Fuse the evidence into an overall confidence with an uncertainty interval.
# 5) Export a per-file summary, the ranked recommendations and optional QC figures.

import argparse
import dataclasses
import logging
import os
import sys
import time

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dosescope.analysis import create_results_dataframe, process_all_files
from dosescope.config import DEFAULT_CONFIG, ROW_BUDGETS
from dosescope.output import save_results_to_csv
from dosescope.plotting import plot_dilution_ladder
from dosescope.schema import ValidationOptions
from dosescope.validation.concentration import ASSAY_TYPES


def _configure_logging(log_file):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, mode="w"),
        ],
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    """Build command-line parser for module execution."""
    parser = argparse.ArgumentParser(
        description="Detect and validate dose-response layouts in CSV exports."
    )
    parser.add_argument("paths", nargs="+", help="CSV files to analyze.")
    parser.add_argument(
        "--output-dir",
        default="output",
        help="Output directory (default: output).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_CONFIG.timeout_s,
        help="Adaptive detector timeout in seconds.",
    )
    parser.add_argument(
        "--assay-type",
        choices=ASSAY_TYPES,
        default=None,
        help="Known assay category used as a validation hint.",
    )
    parser.add_argument(
        "--default-unit",
        default=DEFAULT_CONFIG.default_unit,
        help="Unit for bare concentration numbers (default: nM).",
    )
    parser.add_argument(
        "--molecular-weight",
        type=float,
        default=None,
        help="Molar mass in g/mol for converting mass concentrations.",
    )
    parser.add_argument(
        "--robustness-level",
        choices=sorted(ROW_BUDGETS),
        default=DEFAULT_CONFIG.robustness_level,
        help="Sets the soft row budget before a performance warning.",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Write a dilution-ladder QC figure per input file.",
    )
    parser.add_argument(
        "--log-file",
        default="dosescope.log",
        help="Log file path (default: dosescope.log).",
    )
    return parser


def main(argv=None):
    """Main execution function with comprehensive technical logging."""
    args = _build_arg_parser().parse_args(argv)
    _configure_logging(args.log_file)

    start_time = time.time()
    logging.info("Initializing dose-response detection pipeline")

    config = dataclasses.replace(
        DEFAULT_CONFIG,
        timeout_s=args.timeout,
        default_unit=args.default_unit,
        molecular_weight=args.molecular_weight,
        robustness_level=args.robustness_level,
    )
    options = ValidationOptions(assay_type=args.assay_type)
    logging.info("Configured %d input files for analysis", len(args.paths))

    step_start = time.time()
    results = process_all_files(args.paths, config, options)
    logging.info("File processing completed in %.2f seconds", time.time() - step_start)

    if not results:
        logging.error("No input file could be loaded. Terminating execution.")
        return 1

    failed = [path for path, res in results if res.error]
    if failed:
        logging.warning("Analysis failed for %d files: %s", len(failed), ", ".join(failed))

    results_df = create_results_dataframe(results)
    logging.info("Results DataFrame shape: %s", results_df.shape)
    for path, res in results:
        logging.info(
            "%s: %s pattern, validation %s, confidence %.2f [%.2f, %.2f]",
            os.path.basename(path),
            res.pattern.type,
            res.validation.level,
            res.confidence.overall,
            res.confidence.uncertainty.lower,
            res.confidence.uncertainty.upper,
        )

    summary_csv, recs_csv = save_results_to_csv(results, args.output_dir)

    figure_paths = []
    if args.plot:
        for path, res in results:
            stem = os.path.splitext(os.path.basename(path))[0]
            figure_paths.append(
                plot_dilution_ladder(res.pattern, os.path.join(args.output_dir, f"{stem}_ladder.png"))
            )

    logging.info("Total execution time: %.2f seconds", time.time() - start_time)
    logging.info("Analysis pipeline completed successfully")
    logging.info("Generated output files:")
    logging.info("  - Detection summary CSV: %s", summary_csv)
    logging.info("  - Recommendations CSV: %s", recs_csv)
    for path in figure_paths:
        logging.info("  - Dilution ladder: %s", path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
