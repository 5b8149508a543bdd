r"""
Case/control differential expression for bulk expression matrices.

``pyDEG`` wraps pydeseq2 for raw counts and a Student t-test for data that is
already normalised (e.g. log-scale microarray values). Both methods return one
table with the same columns, so fold-change classification, plotting and the
network attributes do not care which one produced it.
"""

import logging

import numpy as np
import pandas as pd

import matplotlib
from typing import Tuple, Optional, Any
from packaging import version

from .._settings import settings, add_reference
from ..utils import plot_boxplot, DEG_COLORS
from ..utils.registry import register_function
from ..pl import volcano

logger = logging.getLogger(__name__)


@register_function(
    aliases=["基因ID转换", "Matrix_ID_mapping", "ensembl_to_symbol", "probe_to_symbol"],
    category="bulk",
    description="Rename the genes of an expression matrix from a gene id -> symbol table",
    examples=[
        "onet.utils.download_geneid_annotation_pair(['pair_GRCh38'])",
        "counts = onet.bulk.Matrix_ID_mapping(counts, 'genesets/pair_GRCh38.tsv')",
        "counts = onet.bulk.Matrix_ID_mapping(counts, 'gene_ref.tsv', keep_unmapped=False)",
    ],
    related=["bulk.symbol_mapping", "utils.download_geneid_annotation_pair"]
)
def Matrix_ID_mapping(data:pd.DataFrame,gene_ref_path:str,keep_unmapped:bool=True)->pd.DataFrame:
    r"""Rename genes from ids to symbols.

    Arguments:
        data: Genes x samples matrix indexed by gene id.
        gene_ref_path: Tab-separated table indexed by gene id with a ``symbol`` column.
        keep_unmapped: Keep genes without a symbol under their id; drop them when False. (True)

    Returns:
        data: The matrix indexed by symbol. Duplicated symbols are kept; see ``data_drop_duplicates_index``.
    """
    symbols=pd.read_csv(gene_ref_path,sep='\t',index_col=0)['symbol'].dropna()
    symbols=symbols[~symbols.index.duplicated(keep='first')]
    mapped=data.index.isin(symbols.index)
    if not keep_unmapped:
        data=data.loc[mapped]
    data=data.copy()
    data.index=[symbols.get(gene,gene) for gene in data.index]

    action='kept with original IDs' if keep_unmapped else 'removed'
    print(f"......Mapped {int(mapped.sum())} genes to symbols, {int((~mapped).sum())} unmapped genes {action}")
    return data


def deseq2_normalize(data:pd.DataFrame)->pd.DataFrame:
    r"""Median-of-ratios normalisation.

    Arguments:
        data: Genes x samples count matrix.

    Returns:
        data: Counts divided by each sample's size factor.
    """
    return data/estimateSizeFactors(data)


def estimateSizeFactors(data:pd.DataFrame)->pd.Series:
    r"""DESeq2 size factors.

    Each sample's factor is the median ratio of its counts to the per-gene
    geometric mean, using only genes counted in every sample.

    Arguments:
        data: Genes x samples count matrix.

    Returns:
        scale: One size factor per sample.

    Examples:
        >>> import pandas as pd
        >>> import numpy as np
        >>> import omicnet as onet
        >>> data = pd.DataFrame(np.random.poisson(10, size=(100, 6)), columns=list('abcdef'))
        >>> size_factors = onet.bulk.estimateSizeFactors(data)
    """
    counts=data.astype(float)
    expressed=counts.loc[(counts>0).all(axis=1)]
    if expressed.empty:
        raise ValueError("Every gene has a zero count in at least one sample; size factors are undefined.")
    log_counts=np.log(expressed)
    ratios=log_counts.sub(log_counts.mean(axis=1),axis=0)
    return np.exp(ratios.median(axis=0))


def data_drop_duplicates_index(data:pd.DataFrame)->pd.DataFrame:
    r"""Keep one row per gene id, the one with the highest total.

    Arguments:
        data: Genes x samples matrix, possibly with repeated ids (e.g. several probes per symbol).

    Returns:
        data: The matrix with a unique index.
    """
    order=np.argsort(-data.sum(axis=1,numeric_only=True).to_numpy(),kind='stable')
    data=data.iloc[order]
    return data.loc[~data.index.duplicated(keep='first')]


def _check_groups(data:pd.DataFrame,group1:list,group2:list)->None:
    if len(group1)==0 or len(group2)==0:
        raise ValueError("Both sample groups must contain at least one sample.")
    missing=[s for s in list(group1)+list(group2) if s not in data.columns]
    if missing:
        raise ValueError(f"Samples not found in the expression matrix: {missing}")
    overlap=set(group1)&set(group2)
    if overlap:
        raise ValueError(f"Samples present in both groups: {sorted(overlap)}")


def _annotate_result(result:pd.DataFrame)->pd.DataFrame:
    # baseMean/log2FoldChange/pvalue/padj in, the column names used across omicnet out
    result['qvalue']=result['padj']
    result['log2FC']=result['log2FoldChange']
    result['abs(log2FC)']=result['log2FC'].abs()
    result['BaseMean']=result['baseMean']
    result['log2(BaseMean)']=np.log2(result['baseMean'].clip(lower=0)+1)
    with np.errstate(divide='ignore'):
        result['-log(pvalue)']=-np.log10(result['pvalue'])
        result['-log(qvalue)']=-np.log10(result['qvalue'])
    return result


@register_function(
    aliases=["差异表达分析", "DEG", "differential_expression", "差异基因分析", "pyDEG", "deseq2"],
    category="bulk",
    description="Differential expression between case and control samples (pydeseq2 or t-test)",
    examples=[
        "# Initialize with raw count data",
        "dds = onet.bulk.pyDEG(raw_count_data)",
        "dds.drop_duplicates_index()",
        "# case samples first, control samples second",
        "dds.deg_analysis(case_samples, control_samples, method='DEseq2')",
        "dds.foldchange_set(fc_threshold=1, pval_threshold=0.05)",
        "up = dds.get_deg('up')",
        "dds.plot_volcano(title='AD vs control')",
    ],
    related=["bulk.deseq2_normalize", "pl.volcano", "bulk.TraitNetwork"]
)
class pyDEG(object):

    def __init__(self,raw_data:pd.DataFrame) -> None:
        r"""Differential expression of one case/control comparison.

        Arguments:
            raw_data: Genes x samples matrix. Raw counts for ``DEseq2``.
        """
        self.raw_data=raw_data
        self.data=raw_data.copy()
        self.result=None
        self.uns={}

    def drop_duplicates_index(self)->pd.DataFrame:
        self.data=data_drop_duplicates_index(self.data)
        return self.data

    def normalize(self)->pd.DataFrame:
        r"""Replace ``self.data`` by median-of-ratios normalised values.

        Returns:
            data: The normalised matrix.
        """
        self.size_factors=estimateSizeFactors(self.data)
        self.data=self.data/self.size_factors
        return self.data

    def _require_result(self,step:str)->None:
        if self.result is None:
            raise RuntimeError(f"deg_analysis must be run before {step}")

    def _require_thresholds(self,step:str)->None:
        self._require_result(step)
        if not hasattr(self,'fc_max'):
            raise RuntimeError(f"foldchange_set must be run before {step}")

    def deg_analysis(self,group1:list,group2:list,
                 method:str='DEseq2',alpha:float=0.05,
                 multipletests_method:str='fdr_bh',n_cpus:Optional[int]=None,
                 cooks_filter:bool=True, independent_filter:bool=True,
                 log_scale:bool=False)->pd.DataFrame:
        r"""
        Differential expression analysis of ``group1`` (case) against ``group2`` (control).

        Positive ``log2FC`` means higher in the case samples.

        Arguments:
            group1: Case samples (e.g. disease).
            group2: Control samples.
            method: The method to be used for differential expression analysis.
                - `DEseq2`: negative binomial GLM via pydeseq2 (raw counts)
                - `ttest`: Student two-sample t-test (normalised or log-scale data)
            alpha: Significance level on the adjusted p-value.
            multipletests_method: statsmodels correction used by ``ttest``
                (`fdr_bh`, `fdr_by`, `bonferroni`, `holm`, ...).
            n_cpus: Worker processes for pydeseq2. ``settings.n_cpus`` when None.
            cooks_filter: Filter outliers by Cook's distance (DEseq2).
            independent_filter: Independent filtering of low-mean genes (DEseq2).
            log_scale: The matrix is already log2 (e.g. microarray or log2(count+1)); ``ttest``
                then reports ``log2FC`` as the difference of group means.

        Returns
            result: One row per tested gene with ``baseMean``, ``log2FC``, ``pvalue``,
                ``padj``/``qvalue`` and ``sig`` (``'sig'`` when padj < alpha).
        """
        _check_groups(self.data,group1,group2)
        group1,group2=list(group1),list(group2)
        print(f"⚙️ You are using {method} method for differential expression analysis.")
        if method=='ttest':
            result=self._ttest(group1,group2,alpha,multipletests_method,log_scale)
        elif method=='DEseq2':
            n_cpus=settings.n_cpus if n_cpus is None else n_cpus
            result=self._deseq2(group1,group2,alpha,n_cpus,cooks_filter,independent_filter)
        else:
            raise ValueError(f"Unknown method '{method}'. Choose from 'DEseq2' or 'ttest'.")

        result=_annotate_result(result)
        result['sig']=np.where(result['qvalue'].lt(alpha),'sig','normal')
        self.result=result
        self.alpha=alpha
        logger.info("%s: %d genes tested, %d with padj < %s", method, len(result),
                    int((result['sig']=='sig').sum()), alpha)
        print(f"✅ Differential expression analysis completed.")
        return result

    def _ttest(self,group1,group2,alpha,multipletests_method,log_scale=False)->pd.DataFrame:
        from scipy.stats import ttest_ind
        from statsmodels.stats.multitest import multipletests

        case=self.data[group1].astype(float)
        control=self.data[group2].astype(float)
        case_mean,control_mean=case.mean(axis=1),control.mean(axis=1)
        base_mean=(case_mean+control_mean)/2
        if log_scale:
            log2fc=case_mean-control_mean
        else:
            # pseudo-count: smallest positive mean, keeps genes absent from one group finite
            pseudo=base_mean[base_mean>0].min()
            log2fc=np.log2((case_mean+pseudo)/(control_mean+pseudo))
        stat,pvalue=ttest_ind(case.values,control.values,axis=1)
        result=pd.DataFrame({
            'baseMean':base_mean,
            'log2FoldChange':log2fc,
            'stat':stat,
            'pvalue':pvalue,
        },index=self.data.index).dropna(subset=['pvalue'])
        print(f"⏰ Start to calculate qvalue...")
        result['padj']=multipletests(result['pvalue'].values,alpha=alpha,method=multipletests_method)[1]
        return result

    def _deseq2(self,group1,group2,alpha,n_cpus,cooks_filter,independent_filter)->pd.DataFrame:
        import pydeseq2
        from pydeseq2.dds import DeseqDataSet
        from pydeseq2.ds import DeseqStats

        counts=self.data[group1+group2]
        if not np.allclose(counts.values,np.round(counts.values)) or (counts.values<0).any():
            raise ValueError("DEseq2 needs non-negative integer counts; use bulk.round_counts or method='ttest'.")
        samples=pd.DataFrame({'condition':['Treatment']*len(group1)+['Control']*len(group2)},
                             index=group1+group2)
        print(f"⏰ Start to create DeseqDataSet...")

        # constructor arguments changed in pydeseq2 0.4 (inference) and 0.5 (formula design)
        pydeseq2_version=version.parse(pydeseq2.__version__)
        logger.debug("pydeseq2 %s, n_cpus=%s", pydeseq2_version, n_cpus)
        dds_kwargs={'counts':counts.round().astype(int).T,'refit_cooks':True}
        stats_kwargs={'contrast':['condition','Treatment','Control'],'alpha':alpha,
                      'cooks_filter':cooks_filter,'independent_filter':independent_filter}
        if pydeseq2_version < version.parse('0.4.0'):
            dds_kwargs.update(clinical=samples,design_factors='condition',
                              ref_level=['condition','Control'],n_cpus=n_cpus)
        else:
            from pydeseq2.default_inference import DefaultInference
            inference=DefaultInference(n_cpus=n_cpus)
            dds_kwargs.update(metadata=samples,inference=inference)
            stats_kwargs['inference']=inference
            if pydeseq2_version < version.parse('0.5.0'):
                dds_kwargs['design_factors']='condition'
            else:
                dds_kwargs['design']='~condition'

        self.dds=DeseqDataSet(**dds_kwargs)
        self.dds.deseq2()
        self.stat_res=DeseqStats(self.dds,**stats_kwargs)
        self.stat_res.summary()
        add_reference(self.uns,'pyDEseq2','differential expression analysis with pyDEseq2')
        return self.stat_res.results_df.copy()

    def foldchange_set(self, fc_threshold: float = -1, pval_threshold: float = 0.05, logp_max: int = 6, fold_threshold: int = 0) -> None:
        r"""Classify genes as ``up``, ``down`` or ``normal``.

        A gene is up (down) when its adjusted p-value is below ``pval_threshold``
        and its log2FC is above ``fc_threshold`` (below ``-fc_threshold``). Genes
        whose adjusted p-value is NaN (removed by independent filtering) stay ``normal``.

        Arguments:
            fc_threshold: Absolute log2FC cut. -1 takes the midpoint of the
                ``fold_threshold``-th positive bin of the log2FC histogram. (-1)
            pval_threshold: Adjusted p-value cut. (0.05)
            logp_max: Cap applied to ``-log(qvalue)`` for plotting. (6)
            fold_threshold: Histogram bin used when ``fc_threshold`` is -1. (0)
        """
        self._require_result('foldchange_set')
        if fc_threshold==-1:
            _,edges=np.histogram(self.result['log2FC'].dropna())
            positive=edges[edges>0]
            if len(positive)<fold_threshold+2:
                raise ValueError("Not enough positive histogram bins to derive a fold-change threshold; pass fc_threshold.")
            fc_threshold=(positive[fold_threshold]+positive[fold_threshold+1])/2
        print('... Fold change threshold: %s'%fc_threshold)
        self.fc_max,self.fc_min=fc_threshold,-fc_threshold
        self.pval_threshold=pval_threshold
        self.logp_max=logp_max

        significant=self.result['qvalue'].lt(pval_threshold)
        self.result['sig']=np.select(
            [significant&(self.result['log2FC']>self.fc_max),significant&(self.result['log2FC']<self.fc_min)],
            ['up','down'],default='normal')
        self.result['-log(qvalue)']=self.result['-log(qvalue)'].clip(upper=logp_max)

    def get_deg(self,direction:Optional[str]=None)->pd.DataFrame:
        r"""Return the significant genes after ``foldchange_set``.

        Arguments:
            direction: ``'up'``, ``'down'`` or None for both.

        Returns:
            result: Rows of ``self.result`` ordered by adjusted p-value.
        """
        self._require_thresholds('get_deg')
        if direction is None:
            mask=self.result['sig'].isin(['up','down'])
        elif direction in ('up','down'):
            mask=self.result['sig']==direction
        else:
            raise ValueError("direction must be 'up', 'down' or None")
        return self.result.loc[mask].sort_values('qvalue')

    def plot_volcano(self, pval_name: str = 'qvalue', fc_name: str = 'log2FC',
                     **kwargs: Any) -> matplotlib.axes.Axes:
        r"""Volcano plot with the thresholds of the last ``foldchange_set``.

        Arguments:
            pval_name: Column with the adjusted p-value. ('qvalue')
            fc_name: Column with the log2 fold change. ('log2FC')
            **kwargs: Passed to ``onet.pl.volcano`` (figsize, title, colours, plot_genes, ax, ...).

        Returns:
            ax: The axes.
        """
        self._require_thresholds('plot_volcano')
        for key,value in (('pval_threshold',self.pval_threshold),('fc_max',self.fc_max),
                          ('fc_min',self.fc_min),('pval_max',self.logp_max)):
            kwargs.setdefault(key,value)
        return volcano(self.result.dropna(subset=[pval_name]),pval_name=pval_name,fc_name=fc_name,**kwargs)

    def plot_boxplot(self, genes: list, treatment_groups: list, control_groups: list,
                     log: bool = True,
                     treatment_name: str = 'Treatment', control_name: str = 'Control',
                     figsize: tuple = (4, 3), palette: Optional[list] = None,
                     title: str = 'Gene Expression', fontsize: int = 12,
                     **kwarg: Any) -> Tuple[matplotlib.figure.Figure, matplotlib.axes.Axes]:
        r"""
        Expression of a few genes in the case and control samples.

        Arguments:
            genes: Genes to show.
            treatment_groups: Case samples.
            control_groups: Control samples.
            log: Plot ``log1p`` values. (True)
            treatment_name: Legend label of the case samples. ('Treatment')
            control_name: Legend label of the control samples. ('Control')
            palette: Case and control colours; the up/down DEG colours when None.
            **kwarg: Passed to ``utils.plot_boxplot``.

        Returns:
            fig: The figure of the plot.
            ax: The axis of the plot.
        """
        expr=self.data.loc[list(genes),list(treatment_groups)+list(control_groups)].astype(float)
        if log:
            expr=np.log1p(expr)
        long=expr.T.rename_axis('sample').reset_index().melt(id_vars='sample',var_name='Gene',value_name='Value')
        group={**{s:treatment_name for s in treatment_groups},**{s:control_name for s in control_groups}}
        long['Type']=long['sample'].map(group)
        if palette is None:
            palette=[DEG_COLORS['up'],DEG_COLORS['down']]
        return plot_boxplot(long,hue='Type',x_value='Gene',y_value='Value',palette=palette,
                            figsize=figsize,fontsize=fontsize,title=title,**kwarg)

    def ranking2gsea(self,rank_max:int=200,rank_min:int=274)->pd.DataFrame:
        r"""
        Rank genes by signed ``-log10(pvalue)`` for pre-ranked GSEA.

        Genes with a p-value of 0 get finite scores above ``rank_max`` (up) or
        below ``-rank_min`` (down), keeping their order.

        Arguments:
            rank_max: Base score of up genes with p = 0. (200)
            rank_min: Base score of down genes with p = 0. (274)

        Returns:
            rnk: Table with ``gene_name`` and ``rnk`` sorted decreasingly.
        """
        self._require_result('ranking2gsea')
        result=self.result.dropna(subset=['pvalue'])
        with np.errstate(divide='ignore'):
            score=-np.log10(result['pvalue'])*np.sign(result['log2FC'])
        rnk=pd.DataFrame({'gene_name':result.index,'rnk':score.values})
        rnk=rnk.sort_values('rnk',ascending=False).reset_index(drop=True)
        pos_inf=np.isposinf(rnk['rnk'].values)
        neg_inf=np.isneginf(rnk['rnk'].values)
        n_pos=int(pos_inf.sum())
        rnk.loc[pos_inf,'rnk']=rank_max+np.arange(n_pos-1,-1,-1)
        rnk.loc[neg_inf,'rnk']=-(rank_min+n_pos+np.arange(1,int(neg_inf.sum())+1))
        return rnk
