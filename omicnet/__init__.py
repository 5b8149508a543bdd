r"""
omicnet: trait-associated gene co-expression networks from bulk expression data.

From an expression matrix (RNA-seq counts or a GEO series) and sample metadata,
omicnet finds genes differentially expressed between cases and controls,
groups genes into co-expression modules (WGCNA), correlates the modules with
the trait and exports the relevant module networks to files and to Cytoscape.

Main modules:
    bulk: Preparation, differential expression, WGCNA, network export, Cytoscape, pipeline
    pl: Volcano, soft-threshold, dendrogram and module-trait plots
    utils: Data I/O, plotting helpers, logging and the function registry

Examples:
    >>> import omicnet as onet
    >>> cfg = onet.bulk.TraitNetworkConfig(counts_path='counts.tsv', metadata_path='samples.tsv',
    ...                                    case='AD', control='control')
    >>> outputs = onet.bulk.TraitNetwork(cfg).run()
    >>>
    >>> onet.find_function('cytoscape')
"""

from importlib.metadata import version

from . import utils
from . import pl
from . import bulk

from .utils._plot import palette, plot_set
from .utils.registry import find_function, list_functions, export_registry
from .utils.logging_config import setup_logging

name = "omicnet"
try:
    __version__ = version(name)
except Exception:
    __version__ = "unknown"

from ._settings import settings, generate_reference_table

__all__ = [
    'bulk',
    'pl',
    'utils',
    'settings',
    'generate_reference_table',
    'palette',
    'plot_set',
    'find_function',
    'list_functions',
    'export_registry',
    'setup_logging',
]
