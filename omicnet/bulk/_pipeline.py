"""
End-to-end trait network analysis.

Expression + sample metadata -> DESeq2 (case vs control) -> WGCNA modules ->
module/trait correlation -> network files -> Cytoscape.

    cfg = TraitNetworkConfig(counts_path="counts.tsv", metadata_path="samples.tsv",
                             trait_column="disease_state", case="AD", control="control")
    TraitNetwork(cfg).run()
"""

import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import numpy as np
import pandas as pd

from .._settings import settings, EMOJI
from ..utils import read_table, read_geo_series, write_table
from ..utils.registry import register_function
from ._prepare import reorder_samples, fill_missing_median, filter_low_counts, round_counts, encode_trait
from ._Deseq2 import pyDEG, data_drop_duplicates_index, deseq2_normalize
from ._Gene_module import pyWGCNA
from ._network import module_network, export_network_to_cytoscape, write_network
from ._cytoscape import CytoscapeClient, CytoscapeConnectionError, push_modules_to_cytoscape

logger = logging.getLogger(__name__)

_PATH_FIELDS = ('counts_path', 'metadata_path', 'geo_file', 'geo_destdir', 'output_dir')


@dataclass
class TraitNetworkConfig:
    # Inputs: either counts + metadata tables, or a GEO series
    counts_path: Optional[Path] = None
    metadata_path: Optional[Path] = None
    geo_accession: Optional[str] = None
    geo_file: Optional[Path] = None
    geo_destdir: Path = Path("data")
    sample_column: Optional[str] = None        # metadata column holding matrix sample ids (index when None)

    # Trait
    trait_column: str = "disease_state"
    case: Optional[str] = None
    control: Optional[str] = None

    output_dir: Path = Path("omicnet_results")

    # Filtering
    min_count: float = 10
    min_samples: Optional[int] = None

    # Differential expression
    deg_method: Literal["DEseq2", "ttest"] = "DEseq2"
    alpha: float = 0.05
    lfc_threshold: float = 1.0

    # WGCNA
    log_transform: bool = True
    wgcna_genes: int = 5000
    network_type: Literal["unsigned", "signed", "signed hybrid"] = "unsigned"
    powers: Optional[List[int]] = None
    r2_cut: float = 0.85
    min_module_size: int = 30
    deep_split: int = 2
    tree_cut: Literal["hybrid", "static"] = "hybrid"
    tree_cut_height: Optional[float] = None
    merge_cut_height: float = 0.25

    # Network export
    edge_weight: Literal["TOM", "adjacency"] = "TOM"
    edge_threshold: float = 0.1
    export_modules: Optional[List[str]] = None  # modules significant for the trait when None

    # Cytoscape
    cytoscape: bool = True
    cytoscape_url: Optional[str] = None
    cytoscape_style: Literal["module", "deg"] = "module"
    cytoscape_layout: str = "force-directed"

    n_cpus: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        for name in _PATH_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                setattr(self, name, Path(value))

    @classmethod
    def from_json(cls, path, **overrides) -> "TraitNetworkConfig":
        r"""Load a config from JSON; ``overrides`` that are not None win over the file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"No such config file: {path}")
        values = json.loads(path.read_text())
        values.update({k: v for k, v in overrides.items() if v is not None})
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        out = dataclasses.asdict(self)
        for name in _PATH_FIELDS:
            if out[name] is not None:
                out[name] = str(out[name])
        return out


@register_function(
    aliases=["性状网络流程", "TraitNetwork", "pipeline", "trait_network", "deg_wgcna_cytoscape"],
    category="bulk",
    description="Pipeline: load data, DESeq2 case vs control, WGCNA modules, module-trait correlation, network export and Cytoscape",
    examples=[
        "cfg = onet.bulk.TraitNetworkConfig(geo_accession='GSE48350', trait_column='disease_state', case='AD', control='control', deg_method='ttest', log_transform=False)",
        "outputs = onet.bulk.TraitNetwork(cfg).run()",
    ],
    related=["bulk.pyDEG", "bulk.pyWGCNA", "bulk.push_modules_to_cytoscape"]
)
class TraitNetwork:
    """
    Runs the steps in order; each step can also be called on its own once the
    previous ones have run.
    """

    def __init__(self, config: Optional[TraitNetworkConfig] = None):
        self.cfg = config or TraitNetworkConfig()
        self.out = Path(self.cfg.output_dir)
        self.out.mkdir(parents=True, exist_ok=True)
        self.outputs: Dict[str, str] = {}
        self.expression = None
        self.metadata = None
        self.counts = None
        self.dds = None
        self.wgcna = None

    @property
    def is_count_data(self) -> bool:
        r"""True unless the input is already log-scale (``ttest`` with ``log_transform=False``)."""
        return self.cfg.deg_method == 'DEseq2' or self.cfg.log_transform

    def _require(self, attr: str, step: str) -> None:
        if getattr(self, attr, None) is None:
            raise RuntimeError(f"TraitNetwork.{step}() must be run first")

    def _write(self, key: str, data: pd.DataFrame, name: str, **kwargs) -> None:
        self.outputs[key] = write_table(data, self.out / name, **kwargs)

    # ---------- Load ----------
    def load(self):
        cfg = self.cfg
        if cfg.counts_path is not None:
            if cfg.metadata_path is None:
                raise ValueError("metadata_path is required together with counts_path")
            self.expression = read_table(cfg.counts_path)
            self.metadata = read_table(cfg.metadata_path)
        elif cfg.geo_accession is not None or cfg.geo_file is not None:
            self.expression, self.metadata = read_geo_series(
                accession=cfg.geo_accession,
                filepath=None if cfg.geo_file is None else str(cfg.geo_file),
                destdir=str(cfg.geo_destdir))
        else:
            raise ValueError("Provide counts_path + metadata_path, geo_accession or geo_file")
        logger.info("Loaded expression %s and metadata %s", self.expression.shape, self.metadata.shape)
        return self.expression, self.metadata

    # ---------- Prepare ----------
    def prepare(self) -> pd.DataFrame:
        self._require('expression', 'load')
        cfg = self.cfg
        metadata = self.metadata
        if cfg.sample_column is not None:
            metadata = metadata.set_index(metadata[cfg.sample_column].astype(str))
        metadata.index = metadata.index.astype(str)

        trait = encode_trait(metadata, cfg.trait_column, case=cfg.case, control=cfg.control)
        dropped = trait.index[trait.isna()].tolist()
        if dropped:
            logger.warning("%d samples are neither case nor control and are dropped", len(dropped))
        trait = trait.dropna()
        metadata = metadata.loc[trait.index]

        data = reorder_samples(self.expression, metadata)
        data = fill_missing_median(data)
        data = data_drop_duplicates_index(data)

        self.case_samples = trait.index[trait == 1].tolist()
        self.control_samples = trait.index[trait == 0].tolist()
        if not self.case_samples or not self.control_samples:
            raise ValueError(f"Need both case and control samples, got {len(self.case_samples)} and {len(self.control_samples)}")
        print(f"{EMOJI['start']} {len(self.case_samples)} case vs {len(self.control_samples)} control samples")

        if cfg.deg_method == 'DEseq2':
            data = round_counts(data)
        if self.is_count_data:
            data = filter_low_counts(data, min_count=cfg.min_count, min_samples=cfg.min_samples,
                                     groups=[self.case_samples, self.control_samples])
        else:
            logger.info("Expression is already log-scale; low-count filter skipped")
        self.metadata = metadata
        self.trait = trait.rename(cfg.trait_column)
        self.counts = data
        return data

    # ---------- Differential expression ----------
    def deg(self) -> pd.DataFrame:
        self._require('counts', 'prepare')
        cfg = self.cfg
        data = self.counts if cfg.deg_method == 'DEseq2' else self._expression_scale()
        self.dds = pyDEG(data)
        self.dds.deg_analysis(self.case_samples, self.control_samples, method=cfg.deg_method,
                              alpha=cfg.alpha, n_cpus=cfg.n_cpus or settings.n_cpus,
                              log_scale=cfg.deg_method == 'ttest')
        self.dds.foldchange_set(fc_threshold=cfg.lfc_threshold, pval_threshold=cfg.alpha)
        up, down = (self.dds.result['sig'] == 'up').sum(), (self.dds.result['sig'] == 'down').sum()
        logger.info("DEGs: %d up, %d down", up, down)
        self._write('deg_results', self.dds.result, 'deg_results.csv')
        return self.dds.result

    def _expression_scale(self) -> pd.DataFrame:
        data = self.counts
        if self.cfg.deg_method == 'DEseq2':
            data = deseq2_normalize(data)
        if self.cfg.log_transform:
            data = np.log2(data.clip(lower=0) + 1)
        return data

    # ---------- WGCNA ----------
    def run_wgcna(self) -> pd.DataFrame:
        self._require('counts', 'prepare')
        cfg = self.cfg
        wgcna = pyWGCNA(self._expression_scale(), save_path=str(self.out))
        wgcna.mad_filtered(cfg.wgcna_genes)
        wgcna.good_samples_genes()
        wgcna.calculate_soft_threshold(powers=cfg.powers, network_type=cfg.network_type, r2_cut=cfg.r2_cut)
        wgcna.calculate_adjacency()
        wgcna.calculate_tom()
        wgcna.calculate_geneTree()
        wgcna.calculate_dynamicMods(minClusterSize=cfg.min_module_size, deepSplit=cfg.deep_split,
                                    method=cfg.tree_cut, cut_height=cfg.tree_cut_height)
        wgcna.calculate_gene_module()
        wgcna.calculate_module_eigengenes()
        wgcna.merge_close_modules(cut_height=cfg.merge_cut_height)
        self.wgcna = wgcna
        self._write('module_genes', wgcna.mol, 'module_genes.csv', index=False)
        self._write('module_eigengenes', wgcna.MEs, 'module_eigengenes.csv')
        return wgcna.mol

    # ---------- Trait correlation ----------
    def trait_correlation(self):
        self._require('wgcna', 'run_wgcna')
        wgcna = self.wgcna
        cor, pvalue = wgcna.analysis_meta_correlation(self.trait.to_frame())
        gs = wgcna.gene_significance(self.trait)
        connectivity = wgcna.intramodular_connectivity()
        genes = wgcna.mol.set_index('name').join(gs).join(connectivity.drop(columns=['module_color']))
        if self.dds is not None:
            genes = genes.join(self.dds.result[['log2FC', 'padj', 'sig']])
        self._write('module_genes', genes, 'module_genes.csv')
        self._write('module_trait_cor', cor, 'module_trait_cor.csv')
        self._write('module_trait_pvalue', pvalue, 'module_trait_pvalue.csv')
        return cor, pvalue

    def selected_modules(self) -> List[str]:
        r"""Modules to export: configured ones, else those significantly correlated with the trait."""
        if self.cfg.export_modules:
            return list(self.cfg.export_modules)
        self._require('wgcna', 'run_wgcna')
        cor = getattr(self.wgcna, 'module_trait_cor', None)
        if cor is None:
            raise RuntimeError("TraitNetwork.trait_correlation() must be run first")
        trait = self.cfg.trait_column
        pvalue = self.wgcna.module_trait_pvalue[trait].drop('MEgrey', errors='ignore')
        modules = [me[2:] for me in pvalue.index[pvalue < self.cfg.alpha]]
        if not modules:
            strength = cor[trait].drop('MEgrey', errors='ignore').abs().dropna()
            if strength.empty:
                reason = ('every gene is in the grey module' if cor.index.difference(['MEgrey']).empty
                          else f'no module eigengene has a defined correlation with {trait}')
                raise ValueError(f"No module to export: {reason}. Set export_modules or revisit the WGCNA settings.")
            strongest = strength.idxmax()
            logger.warning("No module reaches p < %s for %s; exporting the strongest (%s)",
                           self.cfg.alpha, trait, strongest)
            modules = [strongest[2:]]
        return modules

    # ---------- Network export ----------
    def export(self):
        self._require('wgcna', 'run_wgcna')
        cfg = self.cfg
        modules = self.selected_modules()
        deg_result = None if self.dds is None else self.dds.result
        G = module_network(self.wgcna, modules, threshold=cfg.edge_threshold, weight=cfg.edge_weight,
                           deg_result=deg_result)
        edges_path, nodes_path = self.out / 'network_edges.tsv', self.out / 'network_nodes.tsv'
        export_network_to_cytoscape(G, edges_path, nodes_path)
        self.outputs['network_edges'] = str(edges_path)
        self.outputs['network_nodes'] = str(nodes_path)
        self.outputs['network'] = write_network(G, self.out / 'network.graphml')
        self.graph = G
        self.modules = modules
        return G

    # ---------- Cytoscape ----------
    def cytoscape(self) -> Dict[str, int]:
        cfg = self.cfg
        if not cfg.cytoscape:
            logger.info("Cytoscape step disabled")
            return {}
        self._require('wgcna', 'run_wgcna')
        client = CytoscapeClient(base_url=cfg.cytoscape_url)
        try:
            suids = push_modules_to_cytoscape(
                self.wgcna, getattr(self, 'modules', None) or self.selected_modules(), client=client,
                threshold=cfg.edge_threshold, weight=cfg.edge_weight,
                deg_result=None if self.dds is None else self.dds.result,
                layout=cfg.cytoscape_layout, style=cfg.cytoscape_style,
                image_dir=str(self.out / 'cytoscape'))
        except CytoscapeConnectionError as err:
            logger.warning("Skipping Cytoscape: %s", err)
            print(f"{EMOJI['warning']} Cytoscape is not reachable; network files are in {self.out}")
            return {}
        self.cytoscape_networks = suids
        return suids

    def run(self) -> Dict[str, str]:
        r"""Run every step.

        Returns:
            outputs: ``{name: path}`` of the written files.
        """
        print(f"{EMOJI['start']} Trait network analysis -> {self.out}")
        self.load()
        self.prepare()
        self.deg()
        self.run_wgcna()
        self.trait_correlation()
        self.export()
        self.cytoscape()
        (self.out / 'config.json').write_text(json.dumps(self.cfg.to_dict(), indent=2))
        print(f"{EMOJI['done']} Trait network analysis finished: {len(self.outputs)} files written")
        return self.outputs
