"""
Smoke tests for plotting helpers (onet.utils and onet.pl).
"""

import pytest
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import networkx as nx
import omicnet as onet


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


def test_plot_set_updates_rcparams():
    onet.plot_set(dpi=72, fontsize=9)
    assert plt.rcParams['figure.dpi'] == 72
    assert plt.rcParams['font.size'] == 9
    onet.plot_set()


def test_palettes():
    assert len(onet.palette()) > 20
    assert len(onet.palette(3)) == 3
    assert len(set(onet.palette(30))) == 30
    assert set(onet.utils.deg_palette()) == {'up', 'down', 'normal'}


def test_plot_boxplot():
    data = pd.DataFrame({'value': np.random.normal(size=40),
                         'gene': ['APP', 'MAPT'] * 20,
                         'group': ['AD'] * 20 + ['control'] * 20})
    fig, ax = onet.utils.plot_boxplot(data, hue='group', x_value='gene', y_value='value')
    assert [t.get_text() for t in ax.get_xticklabels()] == ['APP', 'MAPT']


class TestPlotNetwork:

    @pytest.fixture
    def graph(self):
        G = nx.path_graph(['A', 'B', 'C', 'D'])
        types = {n: 'blue' if n in 'AB' else 'brown' for n in G}
        colors = {n: '#0000ff' if n in 'AB' else '#a52a2a' for n in G}
        return G, types, colors

    def test_spring(self, graph):
        G, types, colors = graph
        fig, ax = onet.utils.plot_network(G, types, colors, plot_node=['B'], seed=0)
        assert len(ax.get_legend().get_texts()) == 2

    def test_bad_layout(self, graph):
        G, types, colors = graph
        with pytest.raises(ValueError):
            onet.utils.plot_network(G, types, colors, pos_type='circle')


def test_soft_threshold_plot():
    sft = pd.DataFrame({'Power': [1, 2, 3], 'SFT.R.sq': [0.2, 0.7, 0.9], 'mean(k)': [40.0, 12.0, 5.0]})
    fig, ax = onet.pl.soft_threshold(sft, soft=3)
    assert ax[0].get_title() == 'Scale independence'


def test_module_trait_heatmap():
    cor = pd.DataFrame({'disease_state': [0.8, -0.1]}, index=['MEturquoise', 'MEblue'])
    pvalue = pd.DataFrame({'disease_state': [1e-5, np.nan]}, index=['MEturquoise', 'MEblue'])
    ax = onet.pl.module_trait_heatmap(cor, pvalue)
    texts = [t.get_text() for t in ax.texts]
    assert any('1.0e-05' in t for t in texts)
    assert any('NA' in t for t in texts)


def test_volcano_labels_top_genes():
    result = pd.DataFrame({
        'log2FC': [3.0, -2.5, 0.1, 0.2],
        'qvalue': [1e-6, 1e-4, 0.5, 0.9],
        'sig': ['up', 'down', 'normal', 'normal'],
    }, index=['APP', 'GFAP', 'ACTB', 'GAPDH'])
    ax = onet.pl.volcano(result, fc_max=1, fc_min=-1, plot_genes_num=2)
    labels = {t.get_text() for t in ax.texts if t.get_text()}
    assert labels == {'APP', 'GFAP'}


def test_wgcna_sub_network_plot(fitted_wgcna):
    fig, ax = fitted_wgcna.plot_sub_network(['brown'], correlation_threshold=0.3, plot_gene_num=2, seed=0)
    assert ax.get_legend() is not None
