r"""
Plot defaults and drawing helpers shared by the bulk classes.
"""

from typing import Optional, Union

import networkx as nx
import seaborn as sns
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
from matplotlib import rcParams

from .registry import register_function
from .._settings import settings, EMOJI


GROUP_COLORS = ['#a64d79', '#674ea7', '#3d85c6', '#6aa84f', '#e69138', '#cc4125',
                '#45818e', '#bf9000', '#8e7cc3', '#76a5af', '#c27ba0', '#93c47d',
                '#f6b26b', '#6fa8dc', '#e06666', '#b4a7d6', '#38761d', '#741b47',
                '#0b5394', '#b45f06', '#a2c4c9', '#d5a6bd', '#999999', '#351c75']

# up/down/unchanged genes in volcano plots and Cytoscape node colours
DEG_COLORS = {'up': '#E25D5D', 'down': '#7388C1', 'normal': '#D7D7D7'}


@register_function(
    aliases=["绘图设置", "plot_set", "plot_settings", "matplotlib_setup"],
    category="utils",
    description="Configure matplotlib defaults (dpi, fonts, background) for omicnet figures",
    examples=[
        "onet.utils.plot_set()",
        "onet.utils.plot_set(dpi=100, fontsize=12)",
    ],
    related=["pl.volcano", "utils.palette"]
)
def plot_set(dpi: int = 80,
             facecolor: str = 'white',
             dpi_save: int = 300,
             transparent: bool = None,
             fontsize: int = 14,
             figsize: Union[int, None] = None,
             ):
    r"""Set matplotlib defaults for omicnet figures.

    ``dpi_save`` also becomes ``settings.figure_dpi``, used when analysis
    classes save their figures.

    Arguments:
        dpi: Screen resolution. (80)
        facecolor: Figure and axes background. ('white')
        dpi_save: Resolution of saved figures. (300)
        transparent: Transparent background when saving. (None)
        fontsize: Base font size. (14)
        figsize: Side of a square default figure. (None)
    """
    print(f"{EMOJI['start']} Starting plot initialization...")
    optional = {
        "figure.dpi": dpi,
        "savefig.dpi": dpi_save,
        "savefig.transparent": transparent,
        "figure.facecolor": facecolor,
        "axes.facecolor": facecolor,
        "figure.figsize": None if figsize is None else (figsize, figsize),
    }
    rcParams.update({key: value for key, value in optional.items() if value is not None})
    rcParams.update({
        "font.size": fontsize,
        "axes.spines.top": False,
        "axes.spines.right": False,
        "pdf.fonttype": 42,
    })
    if dpi_save is not None:
        settings.figure_dpi = dpi_save
    print(f"{EMOJI['done']} plot_set complete.")


def palette(n: Optional[int] = None) -> list:
    r"""Categorical colours for sample groups.

    Arguments:
        n: Number of colours. The full list when None; longer requests are
            filled with evenly spaced hues.

    Returns:
        colors: Hex colour codes.
    """
    if n is None or n <= len(GROUP_COLORS):
        return list(GROUP_COLORS[:n])
    return list(GROUP_COLORS) + sns.color_palette('husl', n - len(GROUP_COLORS)).as_hex()


def deg_palette() -> dict:
    return dict(DEG_COLORS)


def plot_boxplot(data, hue, x_value, y_value, width=0.6, title='',
                 figsize=(6, 3), palette=None, fontsize=10,
                 legend_bbox=(1, 0.55), legend_ncol=1, max_points: int = 20, ax=None):
    r"""Grouped boxplot with a jittered subset of the points on top.

    Arguments:
        data: Long table, one row per observation.
        hue: Column with the group (e.g. case/control).
        x_value: Column with the x categories (e.g. gene).
        y_value: Column with the values.
        width: Box width. (0.6)
        title: Axes title. ('')
        palette: One colour per group, ``utils.palette()`` when None.
        max_points: Points drawn per box. (20)
        ax: Existing axes. (None)

    Returns:
        fig: The figure.
        ax: The axes.
    """
    groups = list(dict.fromkeys(data[hue]))
    order = list(dict.fromkeys(data[x_value]))
    colors = list(palette) if palette is not None else GROUP_COLORS
    colors = colors[:len(groups)]
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    layout = dict(x=x_value, y=y_value, hue=hue, order=order, hue_order=groups, palette=colors, ax=ax)
    sns.boxplot(data=data, width=width, showfliers=False, linewidth=1.2, **layout)
    shown = (data.sample(frac=1, random_state=settings.random_state)
             .groupby([x_value, hue], sort=False).head(max_points))
    sns.stripplot(data=shown, dodge=True, jitter=0.15, size=3, alpha=0.5, **layout)

    if ax.get_legend() is not None:
        ax.get_legend().remove()
    handles = [mpatches.Patch(color=color, label=str(group)) for group, color in zip(groups, colors)]
    ax.legend(handles=handles, bbox_to_anchor=legend_bbox, ncol=legend_ncol, fontsize=fontsize)
    ax.set_xlabel('')
    ax.tick_params(axis='x', labelsize=fontsize)
    ax.set_title(title, fontsize=fontsize + 1)
    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)
    return fig, ax


def plot_network(G: nx.Graph, G_type_dict: dict, G_color_dict: dict, pos_type: str = 'spring',
                 figsize: tuple = (4, 4), pos_scale: int = 10, pos_k=None, edge_alpha: float = 0.4,
                 node_size: int = 50, node_alpha: float = 0.8,
                 plot_node=None, plot_node_num: int = 20, label_fontsize: int = 12,
                 legend_bbox: tuple = (0.7, 0.05), legend_ncol: int = 3, legend_fontsize: int = 12,
                 seed=None, ax=None):
    r"""Draw a gene network coloured by node type.

    Node size grows with degree and edge width with the ``weight`` edge attribute.

    Arguments:
        G: The network.
        G_type_dict: Node -> type shown in the legend (e.g. module colour name).
        G_color_dict: Node -> colour.
        pos_type: 'spring' or 'kamada_kawai'. ('spring')
        plot_node: Nodes to label; the ``plot_node_num`` highest-degree nodes when None.
        seed: Seed of the spring layout. (None)
        ax: Existing axes. (None)

    Returns:
        fig: The figure.
        ax: The axes.
    """
    layouts = {
        'spring': lambda: nx.spring_layout(G, scale=pos_scale, k=pos_k, seed=seed),
        'kamada_kawai': lambda: nx.kamada_kawai_layout(G, scale=pos_scale),
    }
    if pos_type not in layouts:
        raise ValueError(f"pos_type must be one of {sorted(layouts)}")
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure
    pos = layouts[pos_type]()
    degree = dict(G.degree())
    nodes = list(G.nodes)

    widths = [0.5 + 2 * data.get('weight', 0.5) for _, _, data in G.edges(data=True)]
    nx.draw_networkx_edges(G, pos, width=widths, alpha=edge_alpha, edge_color='#9a9a9a', ax=ax)
    nx.draw_networkx_nodes(G, pos, nodelist=nodes,
                           node_size=[max(degree[n], 1) * node_size for n in nodes],
                           node_color=[G_color_dict[n] for n in nodes],
                           alpha=node_alpha, edgecolors='white', linewidths=1, ax=ax)

    if plot_node is not None:
        labelled = [n for n in plot_node if n in pos]
    else:
        labelled = sorted(nodes, key=degree.get, reverse=True)[:plot_node_num]
    texts = [ax.text(pos[n][0], pos[n][1], n, fontsize=label_fontsize, fontweight='bold') for n in labelled]
    if texts:
        from adjustText import adjust_text
        adjust_text(texts, ax=ax, arrowprops=dict(arrowstyle='-', color='grey', lw=0.5))
    ax.axis('off')

    legend = {}
    for n in nodes:
        legend.setdefault(G_type_dict[n], G_color_dict[n])
    handles = [mpatches.Patch(color=color, label=str(kind)) for kind, color in legend.items()]
    ax.legend(handles=handles, bbox_to_anchor=legend_bbox, ncol=legend_ncol,
              fontsize=legend_fontsize, frameon=False)
    return fig, ax
