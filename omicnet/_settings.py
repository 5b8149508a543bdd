import os


class omicnetConfig:

    def __init__(self, mode='cpu'):
        self.mode = mode
        self.cytoscape_url = os.getenv('OMICNET_CYTOSCAPE_URL', 'http://127.0.0.1:1234/v1')
        self.cytoscape_timeout = float(os.getenv('OMICNET_CYTOSCAPE_TIMEOUT', '30'))
        self.n_cpus = int(os.getenv('OMICNET_N_CPUS', str(min(os.cpu_count() or 1, 8))))
        self.random_state = 0
        self.figure_dpi = 300
        self.save_path = os.getenv('OMICNET_SAVE_PATH', '.')

    def set_cytoscape(self, url=None, timeout=None):
        r"""Point the package at a running Cytoscape instance.

        Arguments:
            url: CyREST base url, e.g. ``http://127.0.0.1:1234/v1``.
            timeout: Seconds to wait for each request.
        """
        if url is not None:
            self.cytoscape_url = url.rstrip('/')
        if timeout is not None:
            self.cytoscape_timeout = float(timeout)

    def __repr__(self):
        return (f"omicnetConfig(mode={self.mode!r}, cytoscape_url={self.cytoscape_url!r}, "
                f"n_cpus={self.n_cpus}, random_state={self.random_state}, save_path={self.save_path!r})")


def check_reference_key(store):
    if 'REFERENCE_MANU' not in store:
        store['REFERENCE_MANU'] = {}


def add_reference(store, reference_name, reference_content):
    r"""Record that a method was used, in a dict-like ``store`` (e.g. ``pyWGCNA.uns``)."""
    check_reference_key(store)
    store['REFERENCE_MANU']['omicnet'] = 'This analysis is performed with omicnet.'
    store['REFERENCE_MANU'][reference_name] = reference_content


reference_dict = {
    'pyDEseq2': 'Muzellec, B., Teleńczuk, M., Cabeli, V., & Andreux, M. (2023). PyDESeq2: a python package for bulk RNA-seq differential expression analysis. Bioinformatics, 39(9), btad547.',
    'DESeq2': 'Love, M. I., Huber, W., & Anders, S. (2014). Moderated estimation of fold change and dispersion for RNA-seq data with DESeq2. Genome biology, 15(12), 550.',
    'WGCNA': 'Langfelder, P., & Horvath, S. (2008). WGCNA: an R package for weighted correlation network analysis. BMC bioinformatics, 9(1), 559.',
    'dynamicTreeCut': 'Langfelder, P., Zhang, B., & Horvath, S. (2008). Defining clusters from a hierarchical cluster tree: the Dynamic Tree Cut package for R. Bioinformatics, 24(5), 719-720.',
    'TOM': 'Zhang, B., & Horvath, S. (2005). A general framework for weighted gene co-expression network analysis. Statistical applications in genetics and molecular biology, 4(1).',
    'Cytoscape': 'Shannon, P., Markiel, A., Ozier, O., Baliga, N. S., Wang, J. T., Ramage, D., ... & Ideker, T. (2003). Cytoscape: a software environment for integrated models of biomolecular interaction networks. Genome research, 13(11), 2498-2504.',
    'CyREST': 'Ono, K., Muetze, T., Kolishovski, G., Shannon, P., & Demchak, B. (2015). CyREST: turbocharging Cytoscape access for external tools via a RESTful API. F1000Research, 4, 478.',
    'GEOparse': 'Gumienny, R. (2016). GEOparse: Python library to access Gene Expression Omnibus Database (GEO).',
    'T-test': 'Kim, T. K. (2015). T test as a parametric statistic. Korean journal of anesthesiology, 68(6), 540-546.',
    'BH': 'Benjamini, Y., & Hochberg, Y. (1995). Controlling the false discovery rate: a practical and powerful approach to multiple testing. Journal of the Royal statistical society: series B, 57(1), 289-300.',
}


def generate_reference_table(store):
    """
    Generate a table of references for the methods recorded in ``store``.
    """
    import pandas as pd
    if 'REFERENCE_MANU' not in store:
        return None
    rows = []
    for ref, content in store['REFERENCE_MANU'].items():
        rows.append({'method': ref,
                     'content': content,
                     'reference': reference_dict.get(ref, '')})
    return pd.DataFrame(rows, columns=['method', 'content', 'reference'])


EMOJI = {
    "start":        "🔍",
    "done":         "✅",
    "error":        "❌",
    "warning":      "⚠️",
    "network":      "🕸️",
}


settings = omicnetConfig()
