import numpy as np
import pandas as pd
import matplotlib
import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import seaborn as sns
from scipy.cluster import hierarchy
from packaging import version

from ..utils import DEG_COLORS
from ..utils.registry import register_function


def _adjust_labels(texts):
    import adjustText
    from adjustText import adjust_text
    # adjustText 1.0 changed the meaning of only_move
    if version.parse(adjustText.__version__)<=version.parse('0.8'):
        adjust_text(texts,only_move={'text':'xy'},arrowprops=dict(arrowstyle='->',color='grey'))
    else:
        adjust_text(texts,only_move={'text':'xy','static':'xy','explode':'xy','pull':'xy'},
                    arrowprops=dict(arrowstyle='->',color='grey'))


@register_function(
    aliases=["火山图", "volcano", "volcano_plot"],
    category="pl",
    description="Volcano plot of a differential expression result with labelled top genes",
    examples=["onet.pl.volcano(dds.result, pval_threshold=0.05, fc_max=1, fc_min=-1)"],
    related=["bulk.pyDEG.plot_volcano"]
)
def volcano(result,pval_name='qvalue',fc_name='log2FC',pval_max=None,FC_max=None,
            figsize:tuple=(4,4),title:str='',titlefont:dict=None,
            colors:dict=None,legend_bbox:tuple=(0.8, -0.2),legend_ncol:int=2,legend_fontsize:int=12,
            plot_genes:list=None,plot_genes_num:int=10,plot_genes_fontsize:int=10,
            ticks_fontsize:int=12,pval_threshold:float=0.05,fc_max:float=1.5,fc_min:float=-1.5,
            ax=None):
    r"""Volcano plot of a DEG table carrying a ``sig`` column (up/down/normal).

    Arguments:
        result: DEG result, e.g. ``pyDEG.result`` after ``foldchange_set``.
        pval_name: Column with the (adjusted) p-value. ('qvalue')
        fc_name: Column with the log2 fold change. ('log2FC')
        pval_max: Cap for ``-log10(p)``. (None)
        FC_max: Cap for ``|log2FC|``. (None)
        colors: ``{'up': ..., 'down': ..., 'normal': ...}``; ``utils.DEG_COLORS`` when None.
        pval_threshold: Horizontal guide line. (0.05)
        fc_max: Right vertical guide line. (1.5)
        fc_min: Left vertical guide line. (-1.5)
        plot_genes: Genes to label; the ``plot_genes_num`` most significant up and down genes when None.
        ax: Existing axes. (None)

    Returns:
        ax: The axes.
    """
    colors={**DEG_COLORS,**(colors or {})}
    titlefont=titlefont or {'weight':'normal','size':14}
    with np.errstate(divide='ignore'):
        y=-np.log10(result[pval_name].astype(float))
    x=result[fc_name].astype(float)
    if pval_max is not None:
        y=y.clip(upper=pval_max)
    if FC_max is not None:
        x=x.clip(-FC_max,FC_max)
    sig=result['sig'] if 'sig' in result.columns else pd.Series('normal',index=result.index)

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    for kind in ('normal','up','down'):
        mask=sig==kind
        ax.scatter(x[mask],y[mask],color=colors[kind],alpha=.5,s=12,linewidths=0)

    finite=y[np.isfinite(y)]
    ax.axhline(-np.log10(pval_threshold),linewidth=1.5,linestyle='--',color='black')
    for line in (fc_max,fc_min):
        ax.axvline(line,linewidth=1.5,linestyle='--',color='black')
    if len(finite):
        ax.set_ylim(bottom=min(0,finite.min()))
    ax.set_ylabel(r'$-log_{10}(qvalue)$',titlefont)
    ax.set_xlabel(r'$log_{2}FC$',titlefont)
    ax.set_title(title,titlefont)

    counts=sig.value_counts()
    handles=[mpatches.Patch(color=colors[kind],label=f"{kind}:{int(counts.get(kind,0))}") for kind in ('up','down')]
    ax.legend(handles=handles,bbox_to_anchor=legend_bbox,ncol=legend_ncol,fontsize=legend_fontsize)

    if plot_genes is not None:
        labelled=[g for g in plot_genes if g in result.index]
    else:
        order=result[pval_name].sort_values().index
        labelled=[g for kind in ('up','down') for g in order[(sig.loc[order]==kind).to_numpy()][:plot_genes_num//2]]
    texts=[ax.text(x[g],y[g],g,fontsize=plot_genes_fontsize,fontweight='bold',
                   color=colors.get(sig[g],colors['normal'])) for g in labelled]
    if texts:
        _adjust_labels(texts)

    ax.tick_params(axis='both',labelsize=ticks_fontsize)
    ax.grid(False)
    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)
    ax.spines['left'].set_position(('outward', 10))
    ax.spines['bottom'].set_position(('outward', 10))
    return ax


def soft_threshold(sft:pd.DataFrame,soft:int=None,r2_cut:float=0.85,figsize:tuple=(6,3)):
    r"""Scale-free fit and mean connectivity against the soft-threshold power.

    Arguments:
        sft: Table from ``pyWGCNA.calculate_soft_threshold``.
        soft: Chosen power, highlighted in red.
        r2_cut: Horizontal guide line on the fit panel. (0.85)
        figsize: Figure size. ((6,3))

    Returns:
        fig: The figure.
        ax: The two axes.
    """
    fig, ax = plt.subplots(1,2,figsize=figsize)
    colors=['red' if p==soft else 'black' for p in sft['Power']]
    ax[0].scatter(sft['Power'],sft['SFT.R.sq'],c=colors)
    for p,r2 in zip(sft['Power'],sft['SFT.R.sq']):
        ax[0].text(p,r2,str(p),fontsize=8,ha='center',va='bottom')
    ax[0].axhline(r2_cut,c='r',ls='--')
    ax[0].set_ylabel('Scale free topology fit, signed R²')
    ax[0].set_xlabel('Soft threshold (power)')
    ax[0].set_title('Scale independence')

    ax[1].scatter(sft['Power'],sft['mean(k)'],c=colors)
    ax[1].set_ylabel('Mean connectivity')
    ax[1].set_xlabel('Soft threshold (power)')
    ax[1].set_title('Mean connectivity')
    fig.tight_layout()
    return fig,ax


def module_tree(geneTree:np.ndarray,colors,figsize:tuple=(12,5),title:str='Gene dendrogram and module colors'):
    r"""Gene dendrogram with a module colour band underneath.

    Arguments:
        geneTree: Linkage matrix.
        colors: Module colour of each gene, in the original (not dendrogram) order.
        figsize: Figure size. ((12,5))

    Returns:
        fig: The figure.
        ax: Dendrogram and colour-band axes.
    """
    fig=plt.figure(figsize=figsize)
    grid=plt.GridSpec(4, 1, hspace=0.05)
    ax0=fig.add_subplot(grid[0:3,0])
    hierarchy.set_link_color_palette(['#000000'])
    dn=hierarchy.dendrogram(geneTree,color_threshold=0,above_threshold_color='black',
                            no_labels=True,ax=ax0)
    ax0.set_title(title)
    ax0.set_ylabel('Height')
    ax0.spines['top'].set_visible(False)
    ax0.spines['right'].set_visible(False)
    ax0.spines['bottom'].set_visible(False)

    ax1=fig.add_subplot(grid[3,0])
    ordered=[matplotlib.colors.to_rgb(colors[int(i)]) for i in dn['leaves']]
    ax1.imshow(np.array([ordered]),aspect='auto',interpolation='nearest')
    ax1.set_yticks([0],['Module colors'])
    ax1.set_xticks([])
    for spine in ax1.spines.values():
        spine.set_visible(False)
    return fig,[ax0,ax1]


@register_function(
    aliases=["模块性状热图", "module_trait_heatmap", "plot_meta_correlation", "trait_heatmap"],
    category="pl",
    description="Heatmap of module eigengene / trait correlations annotated with p-values",
    examples=["onet.pl.module_trait_heatmap(cor, pvalue)"],
    related=["bulk.pyWGCNA.analysis_meta_correlation"]
)
def module_trait_heatmap(cor:pd.DataFrame,pvalue:pd.DataFrame,figsize:tuple=None,
                         cmap:str='RdBu_r',fontsize:int=9,ax=None):
    r"""Module-trait relationship heatmap in the WGCNA manner.

    Arguments:
        cor: Eigengene x trait correlations (signed).
        pvalue: Matching p-values.
        figsize: Figure size, scaled to the table when None.
        cmap: Diverging colormap, centred on 0. ('RdBu_r')
        fontsize: Annotation font size. (9)
        ax: Existing axes. (None)

    Returns:
        ax: The heatmap axes.
    """
    if figsize is None:
        figsize=(1.5+1.2*cor.shape[1],1+0.45*cor.shape[0])
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    annot=cor.round(2).astype(str)+'\n('+pvalue.apply(lambda col: col.map(lambda p: '%.1e'%p if pd.notna(p) else 'NA'))+')'
    sns.heatmap(cor.astype(float),vmin=-1,vmax=1,center=0,cmap=cmap,annot=annot.values,fmt='',
                annot_kws={'size':fontsize},linewidths=0.5,cbar_kws={'label':'Correlation'},ax=ax)
    ax.set_xlabel('')
    ax.set_ylabel('')
    ax.set_title('Module-trait relationships')
    return ax
