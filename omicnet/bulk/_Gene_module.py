import logging
from typing import Union, Tuple, Optional, List

import numpy as np
import pandas as pd
import networkx as nx
import matplotlib
import matplotlib.pyplot as plt
import statsmodels.api as sm
from scipy import stats
from scipy.cluster.hierarchy import linkage, fcluster, leaves_list
from scipy.spatial.distance import pdist, squareform

from .._settings import add_reference, settings
from ..utils import plot_network
from ..utils.registry import register_function
from ._prepare import encode_traits, mad_filtered

logger = logging.getLogger(__name__)


# WGCNA standardColors(); label 0 is always grey
module_colors = [
    'turquoise', 'blue', 'brown', 'yellow', 'green', 'red', 'black', 'pink', 'magenta',
    'purple', 'greenyellow', 'tan', 'salmon', 'cyan', 'midnightblue', 'lightcyan',
    'lightgreen', 'lightyellow', 'royalblue', 'darkred', 'darkgreen', 'darkturquoise',
    'darkgrey', 'orange', 'darkorange', 'white', 'skyblue', 'saddlebrown', 'steelblue',
    'paleturquoise', 'violet', 'darkolivegreen', 'darkmagenta',
]


def labels2colors(labels) -> List[str]:
    r"""Convert integer module labels to WGCNA colour names (0 -> grey).

    Labels beyond the palette wrap around with a numeric suffix, e.g. ``turquoise.2``.
    """
    colors = []
    n = len(module_colors)
    for label in labels:
        label = int(label)
        if label <= 0:
            colors.append('grey')
        else:
            base = module_colors[(label - 1) % n]
            cycle = (label - 1) // n
            colors.append(base if cycle == 0 else f'{base}.{cycle + 1}')
    return colors


def color2hex(color: str) -> str:
    return matplotlib.colors.to_hex(color.split('.')[0])


def _center(values: np.ndarray) -> np.ndarray:
    centered = values - values.mean(axis=1, keepdims=True)
    return centered


def cor_with_vector(data: np.ndarray, vector: np.ndarray) -> np.ndarray:
    r"""Pearson correlation of each row of ``data`` with ``vector``."""
    x = _center(np.asarray(data, dtype=float))
    y = np.asarray(vector, dtype=float) - np.mean(vector)
    denom = np.linalg.norm(x, axis=1) * np.linalg.norm(y)
    with np.errstate(invalid='ignore', divide='ignore'):
        return (x @ y) / denom


def cor_pvalue(r, n: int):
    r"""Student asymptotic p-value of a Pearson correlation, ``t = r*sqrt((n-2)/(1-r^2))``."""
    r = np.asarray(r, dtype=float)
    if n < 3:
        return np.full(r.shape, np.nan)
    with np.errstate(divide='ignore', invalid='ignore'):
        t = r * np.sqrt((n - 2) / (1 - r ** 2))
    return 2 * stats.t.sf(np.abs(t), n - 2)


def scale_free_fit(k, n_breaks: int = 10) -> Tuple[float, float, float]:
    r"""Scale-free topology fit of a connectivity vector.

    Connectivities are binned into ``n_breaks`` intervals and ``log10(p(k))`` is
    regressed on ``log10(mean k)`` of each bin.

    Returns:
        r2: R² of the linear fit.
        slope: Slope of the linear fit.
        truncated_r2: Adjusted R² of the fit with an extra exponential term.
    """
    k = np.asarray(k, dtype=float)
    df = pd.DataFrame({'k': k, 'bin': pd.cut(k, n_breaks)})
    grouped = df.groupby('bin', observed=False)['k']
    dk = grouped.mean().values
    p_dk = grouped.size().values / len(k)
    edges = np.linspace(k.min(), k.max(), n_breaks + 1)
    mids = 0.5 * (edges[1:] + edges[:-1])
    replace = np.isnan(dk) | (dk == 0)
    dk[replace] = mids[replace]
    dk[dk <= 0] = np.finfo(float).tiny
    log_dk = np.log10(dk)
    log_p_dk = np.log10(p_dk + 1e-09)

    fit = sm.OLS(log_p_dk, sm.add_constant(log_dk, has_constant='add')).fit()
    truncated = sm.OLS(log_p_dk, sm.add_constant(np.column_stack([log_dk, dk]), has_constant='add')).fit()
    return float(fit.rsquared), float(fit.params[1]), float(truncated.rsquared_adj)


def adjacency_from_cor(cor: np.ndarray, power: float, network_type: str = 'unsigned') -> np.ndarray:
    r"""Weighted adjacency from a correlation matrix.

    Arguments:
        cor: Gene x gene correlation matrix.
        power: Soft-thresholding power.
        network_type: ``'unsigned'`` ``|cor|^p``, ``'signed'`` ``((1+cor)/2)^p`` or
            ``'signed hybrid'`` ``max(cor,0)^p``.
    """
    if network_type == 'unsigned':
        adj = np.abs(cor) ** power
    elif network_type == 'signed':
        adj = ((1 + cor) / 2) ** power
    elif network_type == 'signed hybrid':
        adj = np.clip(cor, 0, None) ** power
    else:
        raise ValueError("network_type must be 'unsigned', 'signed' or 'signed hybrid'")
    np.fill_diagonal(adj, 1.0)
    return adj


def tom_similarity(adj: np.ndarray, tom_type: str = 'unsigned', tom_denom: str = 'min') -> np.ndarray:
    r"""Topological overlap matrix of an adjacency matrix.

    ``TOM_ij = (sum_u a_iu a_uj + a_ij) / (f(k_i, k_j) + 1 - a_ij)`` with ``f`` the
    minimum (``'min'``) or mean (``'mean'``) connectivity. The diagonal is 1.
    """
    if tom_type not in ('unsigned', 'signed'):
        raise ValueError("tom_type must be 'unsigned' or 'signed'")
    if tom_denom not in ('min', 'mean'):
        raise ValueError("tom_denom must be 'min' or 'mean'")
    a = np.array(adj, dtype=float)
    np.nan_to_num(a, copy=False, nan=0.0)
    np.fill_diagonal(a, 0.0)
    shared = a @ a
    k = np.abs(a).sum(axis=1) if tom_type == 'signed' else a.sum(axis=1)
    if tom_denom == 'min':
        denom = np.minimum.outer(k, k)
    else:
        denom = np.add.outer(k, k) / 2
    denom = denom + 1 - np.abs(a)
    tom = (shared + a) / denom
    if tom_type == 'signed':
        tom = np.abs(tom)
    tom = np.clip(tom, 0.0, 1.0)
    np.fill_diagonal(tom, 1.0)
    return tom


@register_function(
    aliases=["WGCNA", "共表达网络", "pyWGCNA", "co-expression", "gene_module", "基因模块"],
    category="bulk",
    description="Weighted gene co-expression network analysis: soft threshold, TOM, modules, eigengenes and module-trait correlation",
    examples=[
        "wgcna = onet.bulk.pyWGCNA(expr)",
        "wgcna.calculate_soft_threshold()",
        "wgcna.calculate_adjacency(); wgcna.calculate_tom()",
        "wgcna.calculate_geneTree(); wgcna.calculate_dynamicMods(minClusterSize=30)",
        "wgcna.calculate_gene_module(); wgcna.calculate_module_eigengenes()",
        "wgcna.merge_close_modules(cut_height=0.25)",
        "cor, p = wgcna.analysis_meta_correlation(traits)",
    ],
    related=["bulk.module_network", "bulk.push_modules_to_cytoscape", "pl.module_trait_heatmap"]
)
class pyWGCNA(object):
    r"""
        pyWGCNA: Weighted correlation network analysis in Python
    """
    def __init__(self,data:pd.DataFrame,save_path:str=''):
        r"""Initialize the pyWGCNA module

        Arguments:
            data: Genes x samples expression matrix (normalised, e.g. log or VST scale)
            save_path: The path to save the results
        """
        self.data=data.copy()
        self.save_path=save_path
        self.soft=None
        self.uns={}
        add_reference(self.uns,'WGCNA','weighted gene co-expression network analysis')

    @property
    def data_len(self)->int:
        return len(self.data)

    @property
    def data_index(self)->pd.Index:
        return self.data.index

    def _require(self,attr:str,step:str)->None:
        if getattr(self,attr,None) is None:
            raise RuntimeError(f"{step} must be run first")

    def _savefig(self,fig,name:str)->None:
        if self.save_path:
            fig.savefig(f"{self.save_path}/{name}",dpi=settings.figure_dpi,bbox_inches='tight')

    def mad_filtered(self,gene_num:int=5000):
        """
        Filter genes by MAD to construct a scale-free network

        Arguments:
            gene_num: The number of genes to be saved

        """
        self.data=mad_filtered(self.data,gene_num)
        print(f"...{len(self.data)} genes kept by MAD")

    def good_samples_genes(self,min_fraction:float=0.5)->Tuple[list,list]:
        r"""Remove genes and samples with too many missing values, and zero-variance genes.

        Remaining missing values are filled with each gene's mean.

        Arguments:
            min_fraction: Minimum fraction of non-missing values a gene or sample needs. (0.5)

        Returns:
            removed_genes: Dropped genes.
            removed_samples: Dropped samples.
        """
        present=self.data.notna()
        good_samples=present.mean(axis=0)>=min_fraction
        data=self.data.loc[:,good_samples]
        good_genes=(data.notna().mean(axis=1)>=min_fraction)&(data.var(axis=1,skipna=True)>0)
        removed_genes=data.index[~good_genes].tolist()
        removed_samples=self.data.columns[~good_samples].tolist()
        data=data.loc[good_genes]
        self.data=data.T.fillna(data.mean(axis=1)).T
        print(f"...removed {len(removed_genes)} genes and {len(removed_samples)} samples")
        if removed_samples:
            logger.info("Samples removed for missing data: %s",removed_samples)
        return removed_genes,removed_samples

    def sample_tree(self,cut_height:Optional[float]=None)->list:
        r"""Cluster samples to detect outliers.

        Arguments:
            cut_height: Height at which to cut the sample tree. Samples outside the largest
                cluster are removed when given.

        Returns:
            outliers: Removed samples (empty without ``cut_height``).
        """
        print('...sample tree is being calculated')
        self.sampleTree=linkage(pdist(self.data.T.values,'euclidean'),'average')
        if cut_height is None:
            return []
        clusters=fcluster(self.sampleTree,t=cut_height,criterion='distance')
        largest=pd.Series(clusters).value_counts().index[0]
        keep=clusters==largest
        outliers=self.data.columns[~keep].tolist()
        self.data=self.data.loc[:,keep]
        print(f"...{len(outliers)} outlier samples removed")
        return outliers

    def _correlation(self)->np.ndarray:
        values=self.data.values.astype(float)
        if np.isnan(values).any():
            logger.warning("Missing values found; filling with gene means (run good_samples_genes to control this)")
            values=self.data.T.fillna(self.data.mean(axis=1)).T.values.astype(float)
        with np.errstate(invalid='ignore',divide='ignore'):
            cor=np.corrcoef(values)
        return np.nan_to_num(cor,nan=0.0)

    def calculate_soft_threshold(self,powers:Optional[list]=None,network_type:str='unsigned',
                                 r2_cut:float=0.85,n_breaks:int=10,
                                 plot:bool=False,figsize:tuple=(6,3))->pd.DataFrame:
        """Pick the soft-thresholding power from the scale-free topology fit.

        Arguments:
            powers: Candidate powers. Defaults to 1..10 and 12..20 by 2.
            network_type: 'unsigned', 'signed' or 'signed hybrid'
            r2_cut: Desired signed R² of the scale-free fit (0.85)
            n_breaks: Number of connectivity bins (10)
            plot: Whether to plot the result

        Returns:
            The fit table with Power, SFT.R.sq, slope, truncated R.sq, mean(k), median(k) and max(k)
        """

        print('...soft_threshold is being calculated')
        if powers is None:
            powers=list(range(1,11))+list(range(12,21,2))
        cor=self._correlation()
        rows=[]
        for power in powers:
            adj=adjacency_from_cor(cor,power,network_type)
            k=adj.sum(axis=0)-1
            r2,slope,truncated=scale_free_fit(k,n_breaks)
            rows.append({'Power':power,
                         'SFT.R.sq':-np.sign(slope)*r2,
                         'slope':slope,
                         'truncated R.sq':truncated,
                         'mean(k)':float(np.mean(k)),
                         'median(k)':float(np.median(k)),
                         'max(k)':float(np.max(k))})
        sft=pd.DataFrame(rows)
        passing=sft.loc[sft['SFT.R.sq']>=r2_cut,'Power']
        if len(passing):
            soft=int(passing.iloc[0])
        else:
            soft=int(sft.loc[sft['SFT.R.sq'].idxmax(),'Power'])
            logger.warning("No power reaches a signed R^2 of %s; using the best fit (power %s)",r2_cut,soft)
        self.sft=sft
        self.soft=soft
        self.network_type=network_type
        print('...appropriate soft_thresholds:',soft)
        if plot:
            from ..pl import soft_threshold
            fig,ax=soft_threshold(sft,soft=soft,r2_cut=r2_cut,figsize=figsize)
            self._savefig(fig,'soft_threshold.png')
        return sft

    def calculate_adjacency(self,network_type:Optional[str]=None,power:Optional[float]=None)->pd.DataFrame:
        """calculate the weighted adjacency matrix

        Arguments:
            network_type: 'unsigned', 'signed' or 'signed hybrid'. The soft-threshold choice when None.
            power: Soft-thresholding power. ``self.soft`` when None.
        """
        if power is None:
            self._require('soft','calculate_soft_threshold')
            power=self.soft
        if network_type is None:
            network_type=getattr(self,'network_type','unsigned')
        print('...adjacency matrix is being calculated')
        adj=adjacency_from_cor(self._correlation(),power,network_type)
        self.soft=power
        self.network_type=network_type
        self.adjacency=pd.DataFrame(adj,index=self.data.index,columns=self.data.index)
        return self.adjacency

    def calculate_tom(self,tom_type:str='unsigned',tom_denom:str='min')->pd.DataFrame:
        """calculate the topological overlap matrix and its dissimilarity

        Arguments:
            tom_type: 'unsigned' or 'signed'
            tom_denom: 'min' (standard) or 'mean'
        """
        self._require('adjacency','calculate_adjacency')
        print('...TOM is being calculated')
        tom=tom_similarity(self.adjacency.values,tom_type,tom_denom)
        self.TOM=pd.DataFrame(tom,index=self.adjacency.index,columns=self.adjacency.columns)
        self.dissTOM=1-self.TOM
        add_reference(self.uns,'TOM','topological overlap matrix')
        return self.TOM

    def calculate_geneTree(self,linkage_method:str='average'):
        """
        calculate the geneTree

        Arguments:
            linkage_method: The method to calculate the geneTree, it can be found in `scipy.cluster.hierarchy.linkage`
        """
        self._require('dissTOM','calculate_tom')
        print("...geneTree have being calculated")
        diss=self.dissTOM.values.copy()
        np.fill_diagonal(diss,0.0)
        diss=(diss+diss.T)/2
        self.distances=squareform(diss,checks=False)
        self.geneTree=linkage(self.distances,linkage_method)

    def calculate_dynamicMods(self,minClusterSize:int=30,
                  deepSplit:int=2,method:str='hybrid',cut_height:Optional[float]=None):
        """calculate the dynamicMods

        Arguments:
            minClusterSize: The minimum size of cluster
            deepSplit: The deep of split (hybrid only)
            method: 'hybrid' (dynamicTreeCut) or 'static' (fixed height cut)
            cut_height: Height for the static cut, or the maximum joining height for hybrid.
                Defaults to 99% of the tree height for the static cut.
        """
        self._require('geneTree','calculate_geneTree')
        print("...dynamicMods have being calculated")
        if method=='hybrid':
            from dynamicTreeCut import cutreeHybrid
            mods=cutreeHybrid(self.geneTree,self.distances,cutHeight=cut_height,
                              minClusterSize=minClusterSize,deepSplit=deepSplit,
                              pamRespectsDendro=False,verbose=0)
            labels=np.asarray(mods['labels'],dtype=int)
            add_reference(self.uns,'dynamicTreeCut','module detection with the hybrid dynamic tree cut')
        elif method=='static':
            if cut_height is None:
                cut_height=0.99*self.geneTree[:,2].max()
            clusters=fcluster(self.geneTree,t=cut_height,criterion='distance')
            sizes=pd.Series(clusters).value_counts()
            big=[c for c in sizes.index if sizes[c]>=minClusterSize]
            relabel={c:i+1 for i,c in enumerate(big)}
            labels=np.array([relabel.get(c,0) for c in clusters],dtype=int)
        else:
            raise ValueError("method must be 'hybrid' or 'static'")
        self.dynamicMods={'labels':labels}
        print("...total:",len(set(labels)))

    def calculate_gene_module(self,plot:bool=False,figsize:tuple=(12,5))->pd.DataFrame:
        """calculate the gene module table

        Modules are renumbered by size so that the largest is 1 (turquoise); 0 is grey.

        Arguments:
            plot: Whether to draw the dendrogram with module colours
            figsize: The size of figure

        Returns:
            The dataframe of gene module with ivl, name, module, module_color and color
        """
        self._require('dynamicMods','calculate_dynamicMods')
        labels=pd.Series(self.dynamicMods['labels'],index=self.dissTOM.index)
        sizes=labels[labels>0].value_counts()
        order={old:new+1 for new,old in enumerate(sizes.index)}
        labels=labels.map(lambda x: order.get(x,0)).astype(int)

        ivl=leaves_list(self.geneTree)
        mol=pd.DataFrame({'ivl':ivl,
                          'name':labels.index[ivl],
                          'module':labels.values[ivl]})
        mol['module_color']=labels2colors(mol['module'])
        mol['color']=[color2hex(c) for c in mol['module_color']]
        self.mol=mol
        print(f"...{len(sizes)} modules detected, {int((labels==0).sum())} genes unassigned (grey)")
        if plot:
            self.plot_module_tree(figsize=figsize)
        return mol

    @property
    def module_colors(self)->pd.Series:
        r"""Module colour of each gene, in the order of ``self.data``."""
        self._require('mol','calculate_gene_module')
        return self.mol.set_index('name')['module_color'].reindex(self.data.index)

    def calculate_module_eigengenes(self)->pd.DataFrame:
        r"""Module eigengenes: first principal component of each module's standardised expression.

        Each eigengene is scaled to unit variance and its sign chosen so it correlates
        positively with the module's average standardised expression.

        Returns:
            MEs: Samples x ``ME<color>`` table. ``self.varExplained`` holds the explained variance.
        """
        from sklearn.decomposition import PCA
        self._require('mol','calculate_gene_module')
        print("...module eigengenes are being calculated")
        colors=self.module_colors
        MEs={}
        var_explained={}
        for color in sorted(colors.dropna().unique(),key=lambda c: (c=='grey',c)):
            genes=colors.index[colors==color]
            x=self.data.loc[genes].T.astype(float)
            std=x.std(axis=0,ddof=1)
            x=x.loc[:,std>0]
            if x.shape[1]==0:
                continue
            z=(x-x.mean(axis=0))/x.std(axis=0,ddof=1)
            pca=PCA(n_components=1,random_state=settings.random_state)
            pc=pca.fit_transform(z.values)[:,0]
            average=z.mean(axis=1).values
            if np.corrcoef(pc,average)[0,1]<0:
                pc=-pc
            sd=pc.std(ddof=1)
            MEs[f'ME{color}']=pc/sd if sd>0 else pc
            var_explained[f'ME{color}']=float(pca.explained_variance_ratio_[0])
        self.MEs=pd.DataFrame(MEs,index=self.data.columns)
        self.varExplained=pd.Series(var_explained,name='varExplained')
        return self.MEs

    def merge_close_modules(self,cut_height:float=0.25,max_iter:int=10)->pd.DataFrame:
        r"""Merge modules whose eigengenes are highly correlated.

        Eigengenes are clustered by ``1 - cor`` with average linkage and cut at ``cut_height``;
        merged modules take the colour of their largest member. Repeats until stable.

        Arguments:
            cut_height: Eigengene dissimilarity below which modules merge. (0.25)
            max_iter: Maximum number of merge rounds. (10)

        Returns:
            mol: The updated module table.
        """
        if getattr(self,'MEs',None) is None:
            self.calculate_module_eigengenes()
        print('...close modules are being merged')
        history=[]
        for _ in range(max_iter):
            MEs=self.MEs.drop(columns=['MEgrey'],errors='ignore')
            if MEs.shape[1]<2:
                break
            diss=(1-MEs.corr()).clip(lower=0).values
            np.fill_diagonal(diss,0.0)
            tree=linkage(squareform((diss+diss.T)/2,checks=False),'average')
            groups=fcluster(tree,t=cut_height,criterion='distance')
            if len(set(groups))==MEs.shape[1]:
                break
            sizes=self.mol['module_color'].value_counts()
            mapping={}
            for group in set(groups):
                members=[c[2:] for c,g in zip(MEs.columns,groups) if g==group]
                if len(members)<2:
                    continue
                keep=max(members,key=lambda c: sizes.get(c,0))
                for color in members:
                    if color!=keep:
                        mapping[color]=keep
            history.append(mapping)
            logger.info("Merging modules: %s",mapping)
            label_of=self.mol.drop_duplicates('module_color').set_index('module_color')['module']
            merged=self.mol['module_color'].map(lambda c: mapping.get(c,c))
            self.mol['module']=merged.map(label_of).astype(int)
            self.mol['module_color']=merged
            self.mol['color']=[color2hex(c) for c in merged]
            self.calculate_module_eigengenes()
        self.merge_history=history
        print(f"...{self.mol.loc[self.mol['module']>0,'module_color'].nunique()} modules after merging")
        return self.mol

    def analysis_meta_correlation(self,meta_data:pd.DataFrame)->Tuple[pd.DataFrame,pd.DataFrame]:
        """Correlate module eigengenes with sample traits

        Arguments:
            meta_data: Sample traits (index = samples). Numeric columns are used as-is,
                categorical columns are one-hot encoded.

        Returns:
            meta_cor: Signed Pearson correlation, ``ME<color>`` x trait
            meta_p: Student p-values
        """
        if getattr(self,'MEs',None) is None:
            self.calculate_module_eigengenes()
        print("...co-analysis have being done")
        traits=encode_traits(meta_data if isinstance(meta_data,pd.DataFrame) else meta_data.to_frame())
        traits=traits.reindex(self.MEs.index)
        if traits.notna().sum().sum()==0:
            raise ValueError("No trait values match the expression samples")
        cor=pd.DataFrame(index=self.MEs.columns,columns=traits.columns,dtype=float)
        pvalue=pd.DataFrame(index=self.MEs.columns,columns=traits.columns,dtype=float)
        for trait in traits.columns:
            mask=traits[trait].notna().values
            n=int(mask.sum())
            values=traits[trait].values[mask]
            if n<3 or np.std(values)==0:
                continue
            r=cor_with_vector(self.MEs.values[mask].T,values)
            cor[trait]=r
            pvalue[trait]=cor_pvalue(r,n)
        self.module_trait_cor=cor
        self.module_trait_pvalue=pvalue
        return cor,pvalue

    def gene_significance(self,trait:Union[pd.Series,str],meta_data:Optional[pd.DataFrame]=None)->pd.DataFrame:
        r"""Gene significance: correlation of each gene with a trait.

        Arguments:
            trait: Numeric trait series indexed by sample, or a column name of ``meta_data``.
            meta_data: Trait table used when ``trait`` is a column name.

        Returns:
            GS: Genes x [``GS``, ``p.GS``].
        """
        if isinstance(trait,str):
            if meta_data is None:
                raise ValueError("meta_data is required when trait is a column name")
            trait=meta_data[trait]
        trait=pd.to_numeric(trait.reindex(self.data.columns),errors='coerce')
        mask=trait.notna().values
        r=cor_with_vector(self.data.values[:,mask],trait.values[mask])
        GS=pd.DataFrame({'GS':r,'p.GS':cor_pvalue(r,int(mask.sum()))},index=self.data.index)
        self.GS=GS
        return GS

    def module_membership(self)->pd.DataFrame:
        r"""Module membership (kME): correlation of each gene with each eigengene.

        Returns:
            MM: Genes x ``MM<color>``; p-values are kept in ``self.MMPvalue``.
        """
        if getattr(self,'MEs',None) is None:
            self.calculate_module_eigengenes()
        values=self.data.values.astype(float)
        MM={}
        for me in self.MEs.columns:
            MM['MM'+me[2:]]=cor_with_vector(values,self.MEs[me].values)
        self.MM=pd.DataFrame(MM,index=self.data.index)
        self.MMPvalue=self.MM.apply(lambda col: pd.Series(cor_pvalue(col.values,self.data.shape[1]),index=col.index))
        return self.MM

    def intramodular_connectivity(self)->pd.DataFrame:
        r"""Whole-network and intramodular connectivity from the adjacency.

        Returns:
            connectivity: Genes x [``kTotal``, ``kWithin``, ``kOut``, ``kDiff``, ``module_color``].
        """
        self._require('adjacency','calculate_adjacency')
        colors=self.module_colors.reindex(self.adjacency.index)
        adj=self.adjacency.values
        k_total=adj.sum(axis=1)-1
        k_within=np.zeros(len(colors))
        for color in colors.dropna().unique():
            idx=np.where((colors==color).values)[0]
            k_within[idx]=adj[np.ix_(idx,idx)].sum(axis=1)-1
        connectivity=pd.DataFrame({'kTotal':k_total,
                                   'kWithin':k_within,
                                   'kOut':k_total-k_within,
                                   'kDiff':2*k_within-k_total,
                                   'module_color':colors.values},index=self.adjacency.index)
        self.connectivity=connectivity
        return connectivity

    def _module_mask(self,mod_list:list)->pd.Series:
        return self.mol['module'].isin(mod_list)|self.mol['module_color'].isin([str(m) for m in mod_list])

    def get_hub_genes(self,module:Union[int,str],n:int=10,by:str='kWithin')->pd.DataFrame:
        r"""Most connected genes of a module.

        Arguments:
            module: Module label or colour.
            n: Number of genes. (10)
            by: ``'kWithin'`` (intramodular connectivity) or ``'MM'`` (module membership).

        Returns:
            hubs: The top genes with their score.
        """
        genes=self.get_sub_module([module])['name'].tolist()
        if not genes:
            raise KeyError(f"Module {module!r} not found")
        color=self.mol.loc[self._module_mask([module]),'module_color'].iloc[0]
        if by=='kWithin':
            if getattr(self,'connectivity',None) is None:
                self.intramodular_connectivity()
            score=self.connectivity.loc[genes,'kWithin']
        elif by=='MM':
            if getattr(self,'MM',None) is None:
                self.module_membership()
            score=self.MM.loc[genes,'MM'+color]
        else:
            raise ValueError("by must be 'kWithin' or 'MM'")
        hubs=score.sort_values(ascending=False).iloc[:n].to_frame(by)
        hubs['module_color']=color
        return hubs

    def get_sub_module(self,mod_list:list)->pd.DataFrame:
        '''
        Get the genes of some modules

        Arguments:
            mod_list: module labels or colours

        Returns:
            sub_module: rows of ``mol`` in those modules
        '''
        self._require('mol','calculate_gene_module')
        return self.mol[self._module_mask(mod_list)]

    def get_sub_network(self,mod_list:list,correlation_threshold:float=0.1,
                        weight:str='adjacency',keep_isolated:bool=False)->nx.Graph:
        '''
        Get sub-network of some modules

        Arguments:
            mod_list: module labels or colours
            correlation_threshold: minimum edge weight
            weight: 'adjacency' or 'TOM'
            keep_isolated: keep genes without any edge above the threshold

        Returns:
            sub_network: undirected weighted graph
        '''
        if weight=='adjacency':
            self._require('adjacency','calculate_adjacency')
            matrix=self.adjacency
        elif weight=='TOM':
            self._require('TOM','calculate_tom')
            matrix=self.TOM
        else:
            raise ValueError("weight must be 'adjacency' or 'TOM'")
        genes=self.get_sub_module(mod_list)['name'].tolist()
        sub=matrix.loc[genes,genes].values
        rows,cols=np.triu_indices(len(genes),k=1)
        keep=sub[rows,cols]>correlation_threshold

        G = nx.Graph()
        if keep_isolated:
            G.add_nodes_from(genes)
        G.add_weighted_edges_from((genes[i],genes[j],float(sub[i,j])) for i,j in zip(rows[keep],cols[keep]))
        return G

    def plot_soft_threshold(self,r2_cut:float=0.85,figsize:tuple=(6,3)):
        self._require('sft','calculate_soft_threshold')
        from ..pl import soft_threshold
        fig,ax=soft_threshold(self.sft,soft=self.soft,r2_cut=r2_cut,figsize=figsize)
        self._savefig(fig,'soft_threshold.png')
        return fig,ax

    def plot_module_tree(self,figsize:tuple=(12,5)):
        self._require('mol','calculate_gene_module')
        from ..pl import module_tree
        colors=self.mol.sort_values('ivl')['module_color'].tolist()
        fig,ax=module_tree(self.geneTree,colors,figsize=figsize)
        self._savefig(fig,'module_tree.png')
        return fig,ax

    def plot_sub_network(self,mod_list:list,
                         correlation_threshold:float=0.1,
                         plot_genes=None,
                         plot_gene_num:int=5,**kwargs)->Tuple[matplotlib.figure.Figure,matplotlib.axes.Axes]:
        '''
        plot sub-network of some modules

        Arguments:
            mod_list: module labels or colours
            correlation_threshold: minimum adjacency of an edge
            plot_genes: genes to label. If None, the hub genes of each module are labelled
            plot_gene_num: number of hub genes to label per module

        Returns:
            fig: figure
            ax: axis
        '''
        members=self.get_sub_module(mod_list)
        G=self.get_sub_network(mod_list,correlation_threshold)
        types=dict(zip(members['name'],members['module_color']))
        colors=dict(zip(members['name'],members['color']))
        if plot_genes is None:
            degree=pd.Series(dict(G.degree()),dtype=float)
            plot_genes=[]
            for _,genes in members.groupby('module_color',sort=False)['name']:
                plot_genes+=degree.reindex(genes).dropna().nlargest(plot_gene_num).index.tolist()
        return plot_network(G,types,colors,plot_node=plot_genes,**kwargs)

    def plot_meta_correlation(self,cor_matrix:Optional[tuple]=None,**kwargs)->matplotlib.axes.Axes:
        """Plot the module-trait relationship heatmap

        Arguments:
            cor_matrix: (correlation, p-value) from analysis_meta_correlation; the stored result when None

        Returns:
            ax: axis
        """
        from ..pl import module_trait_heatmap
        if cor_matrix is None:
            self._require('module_trait_cor','analysis_meta_correlation')
            cor_matrix=(self.module_trait_cor,self.module_trait_pvalue)
        ax=module_trait_heatmap(cor_matrix[0],cor_matrix[1],**kwargs)
        self._savefig(ax.figure,'module_trait.png')
        return ax
