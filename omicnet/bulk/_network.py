import json
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import pandas as pd
import networkx as nx

from ..utils.registry import register_function

logger = logging.getLogger(__name__)


def _clean_value(value):
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating, float)):
        value = float(value)
        return None if np.isnan(value) else value
    if isinstance(value, np.bool_):
        return bool(value)
    return value


@register_function(
    aliases=["模块网络", "module_network", "coexpression_network", "wgcna_network"],
    category="bulk",
    description="Build a networkx graph of WGCNA module genes with module, connectivity and DEG attributes",
    examples=[
        "G = onet.bulk.module_network(wgcna, ['turquoise'], threshold=0.1)",
        "G = onet.bulk.module_network(wgcna, ['blue', 'brown'], deg_result=dds.result)",
    ],
    related=["bulk.export_network_to_cytoscape", "bulk.write_network", "bulk.push_modules_to_cytoscape"]
)
def module_network(wgcna, modules: list, threshold: float = 0.1, weight: str = 'TOM',
                   deg_result: Optional[pd.DataFrame] = None,
                   keep_isolated: bool = False) -> nx.Graph:
    r"""Co-expression network of the genes in some modules.

    Arguments:
        wgcna: A ``pyWGCNA`` object with modules and adjacency/TOM computed.
        modules: Module colours or labels to include.
        threshold: Minimum edge weight. (0.1)
        weight: ``'TOM'`` or ``'adjacency'``. ('TOM')
        deg_result: DEG table (``pyDEG.result``); adds ``log2FC``, ``padj`` and ``sig`` to the genes it contains.
        keep_isolated: Keep module genes without an edge above the threshold. (False)

    Returns:
        G: Graph whose nodes carry ``name``, ``module``, ``color`` and ``kWithin``.
    """
    G = wgcna.get_sub_network(modules, threshold, weight=weight, keep_isolated=keep_isolated)
    mol = wgcna.get_sub_module(modules).set_index('name')
    if getattr(wgcna, 'connectivity', None) is None:
        wgcna.intramodular_connectivity()
    k_within = wgcna.connectivity['kWithin']

    for node in G.nodes:
        attrs = {'name': str(node),
                 'module': mol.loc[node, 'module_color'],
                 'color': mol.loc[node, 'color'],
                 'kWithin': _clean_value(k_within.get(node, np.nan))}
        if deg_result is not None and node in deg_result.index:
            row = deg_result.loc[node]
            fc_col = 'log2FC' if 'log2FC' in deg_result.columns else 'log2FoldChange'
            attrs['log2FC'] = _clean_value(row[fc_col])
            attrs['padj'] = _clean_value(row['padj'] if 'padj' in deg_result.columns else row['qvalue'])
            if 'sig' in deg_result.columns:
                attrs['sig'] = row['sig']
        G.nodes[node].update({key: value for key, value in attrs.items() if value is not None})
    logger.info("Module network %s: %d nodes, %d edges", modules, G.number_of_nodes(), G.number_of_edges())
    return G


def export_network_to_cytoscape(G: nx.Graph, edge_file: Optional[str] = None,
                                node_file: Optional[str] = None,
                                node_attr: str = 'module') -> Tuple[pd.DataFrame, pd.DataFrame]:
    r"""Edge and node tables in the layout of WGCNA's ``exportNetworkToCytoscape``.

    Arguments:
        G: Weighted graph, e.g. from ``module_network``.
        edge_file: Tab-separated edge table to write (``fromNode``, ``toNode``, ``weight``, ``direction``, ...).
        node_file: Tab-separated node table to write (``nodeName``, ``altName``, ``nodeAttr``, ...).
        node_attr: Node attribute written as ``nodeAttr``. ('module')

    Returns:
        edges: The edge table.
        nodes: The node table.
    """
    edges = pd.DataFrame(
        [{'fromNode': u, 'toNode': v, 'weight': data.get('weight', 1.0), 'direction': 'undirected',
          'fromAltName': G.nodes[u].get('name', u), 'toAltName': G.nodes[v].get('name', v)}
         for u, v, data in G.edges(data=True)],
        columns=['fromNode', 'toNode', 'weight', 'direction', 'fromAltName', 'toAltName'])

    rows = []
    for node, data in G.nodes(data=True):
        row = {'nodeName': node, 'altName': data.get('name', node), 'nodeAttr': data.get(node_attr)}
        row.update({key: value for key, value in data.items() if key not in ('name', node_attr)})
        rows.append(row)
    nodes = pd.DataFrame(rows)
    if nodes.empty:
        nodes = pd.DataFrame(columns=['nodeName', 'altName', 'nodeAttr'])

    if edge_file is not None:
        Path(edge_file).parent.mkdir(parents=True, exist_ok=True)
        edges.to_csv(edge_file, sep='\t', index=False)
        print(f"......edges saved to {edge_file}")
    if node_file is not None:
        Path(node_file).parent.mkdir(parents=True, exist_ok=True)
        nodes.to_csv(node_file, sep='\t', index=False)
        print(f"......nodes saved to {node_file}")
    return edges, nodes


def write_network(G: nx.Graph, path: Union[str, Path]) -> str:
    r"""Write a graph for Cytoscape: GraphML (``.graphml``) or Cytoscape JSON (``.cyjs``/``.json``).

    Arguments:
        G: The graph.
        path: Output file; the format follows the suffix.

    Returns:
        path: The written file.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == '.graphml':
        nx.write_graphml(G, path)
    elif suffix in ('.cyjs', '.json'):
        path.write_text(json.dumps(nx.cytoscape_data(G), default=_clean_value))
    else:
        raise ValueError(f"Unsupported network format '{suffix}'; use .graphml, .cyjs or .json")
    logger.info("Network written to %s", path)
    return str(path)
