#!/usr/bin/env python3
"""
omicnet command line

Runs the trait network analysis (DESeq2 -> WGCNA -> module/trait correlation ->
network export -> Cytoscape) from a JSON config and/or flags.

Examples:
    # Counts + sample table
    omicnet --counts counts.tsv --metadata samples.tsv --trait-column disease_state \
        --case AD --control control --output-dir results

    # GEO microarray series, already log-scale, t-test for the DEG step
    omicnet --geo GSE48350 --method ttest --no-log-transform --case AD --control control

    # JSON config, flags override the file
    omicnet --config analysis.json --no-cytoscape

    # Search the registered functions
    omicnet --find-function wgcna
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from .bulk import TraitNetwork, TraitNetworkConfig
from .utils import setup_logging, find_function, list_functions

logger = logging.getLogger("omicnet.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="omicnet",
        description=(
            "Trait-associated gene co-expression networks: differential expression, "
            "WGCNA modules, module-trait correlation and Cytoscape export."
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with TraitNetworkConfig fields",
    )
    parser.add_argument("--counts", type=Path, default=None, help="Genes x samples expression table")
    parser.add_argument("--metadata", type=Path, default=None, help="Sample metadata table")
    parser.add_argument("--geo", metavar="GSE", default=None, help="GEO series accession to download")
    parser.add_argument("--geo-file", type=Path, default=None, help="Local GEO SOFT file")
    parser.add_argument("--sample-column", default=None, help="Metadata column with the sample ids")
    parser.add_argument("--trait-column", default=None, help="Metadata column with the case/control trait")
    parser.add_argument("--case", default=None, help="Trait level of the case samples")
    parser.add_argument("--control", default=None, help="Trait level of the control samples (detected from labels such as control, normal or healthy when omitted)")
    parser.add_argument("--output-dir", type=Path, default=None, help="Directory for the results")
    parser.add_argument(
        "--method",
        choices=["DEseq2", "ttest"],
        default=None,
        help="Differential expression method (DEseq2 expects raw counts)",
    )
    parser.add_argument(
        "--no-log-transform",
        action="store_true",
        help="Use the expression values as-is for WGCNA (already log-scale data)",
    )
    parser.add_argument(
        "--modules",
        nargs="+",
        default=None,
        help="Module colours to export (default: modules significant for the trait)",
    )
    parser.add_argument("--no-cytoscape", action="store_true", help="Skip the Cytoscape step")
    parser.add_argument("--cytoscape-url", default=None, help="CyREST base url")
    parser.add_argument(
        "--find-function",
        metavar="QUERY",
        default=None,
        help="Search the registered omicnet functions and exit",
    )
    parser.add_argument("--list-functions", action="store_true", help="List registered functions and exit")
    parser.add_argument("--debug", action="store_true", help="Debug logging")
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    overrides = {
        "counts_path": args.counts,
        "metadata_path": args.metadata,
        "geo_accession": args.geo,
        "geo_file": args.geo_file,
        "sample_column": args.sample_column,
        "trait_column": args.trait_column,
        "case": args.case,
        "control": args.control,
        "output_dir": args.output_dir,
        "deg_method": args.method,
        "export_modules": args.modules,
        "cytoscape_url": args.cytoscape_url,
    }
    if args.no_log_transform:
        overrides["log_transform"] = False
    if args.no_cytoscape:
        overrides["cytoscape"] = False
    return {key: value for key, value in overrides.items() if value is not None}


def main(argv: List[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging("DEBUG" if args.debug else None)

    if args.list_functions:
        list_functions()
        return 0

    if args.find_function:
        found = find_function(args.find_function, verbose=True)
        return 0 if found is not None else 1

    overrides = _overrides(args)
    if args.config is None and not any(k in overrides for k in ("counts_path", "geo_accession", "geo_file")):
        parser.print_help()
        return 0

    try:
        if args.config is not None:
            config = TraitNetworkConfig.from_json(args.config, **overrides)
        else:
            config = TraitNetworkConfig(**overrides)
        outputs = TraitNetwork(config).run()
    except (ValueError, KeyError, FileNotFoundError, RuntimeError) as err:
        logger.debug("Analysis failed", exc_info=True)
        print(f"❌ {err}")
        return 1

    for name, path in outputs.items():
        print(f"- {name}: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
