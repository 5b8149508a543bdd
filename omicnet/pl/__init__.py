r"""
Plotting functions for differential expression and co-expression results.

    volcano: DEG volcano plot
    soft_threshold: scale-free fit / mean connectivity against power
    module_tree: gene dendrogram with module colours
    module_trait_heatmap: eigengene-trait correlations with p-values
"""

from ._bulk import volcano, soft_threshold, module_tree, module_trait_heatmap
