r"""
Utility functions for data handling, logging and plotting.

Data I/O:
    read_table: Read expression / metadata tables
    read_geo_series: Load a GEO series with GEOparse
    write_table: Write a table, separator chosen from the suffix
    data_downloader: Download a file once
    download_geneid_annotation_pair: Gene id -> symbol tables for Matrix_ID_mapping

Visualization utilities:
    palette, deg_palette, plot_set: Colours and matplotlib defaults
    plot_boxplot, plot_network: Plot helpers shared by bulk classes

Logging:
    setup_logging, enable_debug_logging, disable_debug_logging

Examples:
    >>> import omicnet as onet
    >>> counts = onet.utils.read_table('counts.tsv')
    >>> expr, meta = onet.utils.read_geo_series('GSE48350')
"""

from ._data import (read_table, read_geo_series, geo_sample_metadata, write_table,
                    data_downloader, download_geneid_annotation_pair)
from ._plot import plot_set, palette, deg_palette, plot_boxplot, plot_network, DEG_COLORS
from .logging_config import setup_logging, enable_debug_logging, disable_debug_logging
from .registry import register_function, find_function, list_functions, export_registry
