r"""
Bulk expression analysis: from an expression matrix to trait-associated co-expression networks.

- Sample/gene preparation and trait encoding
- Differential expression with DESeq2 (pydeseq2) or a t-test
- Weighted gene co-expression network analysis (WGCNA)
- Module networks exported to files and to a running Cytoscape

Classes:
    pyDEG: Differential expression analysis
    pyWGCNA: Weighted gene co-expression network analysis
    CytoscapeClient: Minimal CyREST client
    TraitNetwork: The whole analysis, configured by TraitNetworkConfig

Examples:
    >>> import omicnet as onet
    >>> dds = onet.bulk.pyDEG(counts)
    >>> dds.deg_analysis(case_samples, control_samples, method='DEseq2')
    >>> dds.foldchange_set(fc_threshold=1, pval_threshold=0.05)
    >>>
    >>> wgcna = onet.bulk.pyWGCNA(np.log2(onet.bulk.deseq2_normalize(counts) + 1))
    >>> wgcna.calculate_soft_threshold()
    >>> wgcna.calculate_adjacency(); wgcna.calculate_tom()
    >>> wgcna.calculate_geneTree(); wgcna.calculate_dynamicMods()
    >>> wgcna.calculate_gene_module(); wgcna.merge_close_modules()
    >>> onet.bulk.push_modules_to_cytoscape(wgcna, ['turquoise'])
"""

from ._prepare import (reorder_samples, fill_missing_median, filter_low_counts, rename_samples,
                       round_counts, symbol_mapping, encode_trait, encode_traits, mad_filtered)
from ._Deseq2 import pyDEG, deseq2_normalize, estimateSizeFactors, Matrix_ID_mapping, data_drop_duplicates_index
from ._Gene_module import (pyWGCNA, labels2colors, adjacency_from_cor, tom_similarity,
                           scale_free_fit, cor_pvalue)
from ._network import module_network, export_network_to_cytoscape, write_network
from ._cytoscape import (CytoscapeClient, CytoscapeError, CytoscapeConnectionError,
                         discrete_mapping, continuous_mapping, push_modules_to_cytoscape)
from ._pipeline import TraitNetwork, TraitNetworkConfig

__all__ = [
    # Preparation
    'reorder_samples',
    'fill_missing_median',
    'filter_low_counts',
    'rename_samples',
    'round_counts',
    'symbol_mapping',
    'encode_trait',
    'encode_traits',
    'mad_filtered',

    # Differential expression
    'pyDEG',
    'deseq2_normalize',
    'estimateSizeFactors',
    'Matrix_ID_mapping',
    'data_drop_duplicates_index',

    # Co-expression network
    'pyWGCNA',
    'labels2colors',
    'adjacency_from_cor',
    'tom_similarity',
    'scale_free_fit',
    'cor_pvalue',

    # Network export
    'module_network',
    'export_network_to_cytoscape',
    'write_network',

    # Cytoscape
    'CytoscapeClient',
    'CytoscapeError',
    'CytoscapeConnectionError',
    'discrete_mapping',
    'continuous_mapping',
    'push_modules_to_cytoscape',

    # Pipeline
    'TraitNetwork',
    'TraitNetworkConfig',
]
