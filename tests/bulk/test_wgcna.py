"""
Tests for weighted gene co-expression network analysis (omicnet.bulk.pyWGCNA).
"""

import pytest
import numpy as np
import pandas as pd
import omicnet as onet
from omicnet.bulk import adjacency_from_cor, tom_similarity, labels2colors, scale_free_fit, cor_pvalue


class TestNetworkMath:

    def test_adjacency_types(self):
        cor = np.array([[1.0, -0.5], [-0.5, 1.0]])
        assert adjacency_from_cor(cor, 2, 'unsigned')[0, 1] == pytest.approx(0.25)
        assert adjacency_from_cor(cor, 1, 'signed')[0, 1] == pytest.approx(0.25)
        assert adjacency_from_cor(cor, 2, 'signed hybrid')[0, 1] == pytest.approx(0.0)
        with pytest.raises(ValueError):
            adjacency_from_cor(cor, 2, 'weird')

    def test_tom_matches_formula(self):
        adj = np.array([[1.0, 0.8, 0.5],
                        [0.8, 1.0, 0.2],
                        [0.5, 0.2, 1.0]])
        tom = tom_similarity(adj)
        # l_12 = a_13 * a_32 = 0.1, k_1 = 1.3, k_2 = 1.0
        assert tom[0, 1] == pytest.approx((0.1 + 0.8) / (1.0 + 1 - 0.8))
        assert np.allclose(tom, tom.T)
        assert np.allclose(np.diag(tom), 1)

    def test_labels2colors(self):
        assert labels2colors([0, 1, 2, 3]) == ['grey', 'turquoise', 'blue', 'brown']
        wrapped = labels2colors([len(onet.bulk._Gene_module.module_colors) + 1])
        assert wrapped == ['turquoise.2']

    def test_scale_free_fit_on_power_law(self):
        rng = np.random.RandomState(0)
        k = rng.pareto(2.0, 2000) + 1
        r2, slope, _ = scale_free_fit(k)
        assert slope < 0
        assert 0 <= r2 <= 1

    def test_cor_pvalue(self):
        assert cor_pvalue(np.array([0.0]), 30)[0] == pytest.approx(1.0)
        assert cor_pvalue(np.array([0.9]), 30)[0] < 1e-6
        assert np.isnan(cor_pvalue(np.array([0.5]), 2)).all()


class TestModuleDetection:

    def test_soft_threshold_table(self, module_expression):
        data, _, _ = module_expression
        wgcna = onet.bulk.pyWGCNA(data)
        sft = wgcna.calculate_soft_threshold(powers=[1, 2, 4, 6, 8])
        assert list(sft['Power']) == [1, 2, 4, 6, 8]
        assert {'SFT.R.sq', 'slope', 'mean(k)'} <= set(sft.columns)
        assert wgcna.soft in [1, 2, 4, 6, 8]
        assert sft['mean(k)'].is_monotonic_decreasing

    def test_steps_in_order(self, module_expression):
        data, _, _ = module_expression
        wgcna = onet.bulk.pyWGCNA(data)
        with pytest.raises(RuntimeError):
            wgcna.calculate_adjacency()
        with pytest.raises(RuntimeError):
            wgcna.calculate_tom()
        with pytest.raises(RuntimeError):
            wgcna.calculate_gene_module()

    def test_static_cut_recovers_planted_modules(self, fitted_wgcna, module_expression):
        _, _, truth = module_expression
        mol = fitted_wgcna.mol.set_index('name')
        for planted in ['trait', 'second', 'third']:
            genes = truth.index[truth == planted]
            colors = mol.loc[genes, 'module_color']
            assert colors.nunique() == 1
            assert colors.iloc[0] != 'grey'
        # modules are numbered by size: the 40-gene module is turquoise
        assert mol.loc['trait_0', 'module_color'] == 'turquoise'
        assert (mol.loc[truth.index[truth == 'noise'], 'module_color'] == 'grey').mean() > 0.8

    def test_hybrid_cut(self, module_expression):
        pytest.importorskip('dynamicTreeCut')
        data, _, _ = module_expression
        wgcna = onet.bulk.pyWGCNA(data)
        wgcna.calculate_adjacency(power=6)
        wgcna.calculate_tom()
        wgcna.calculate_geneTree()
        wgcna.calculate_dynamicMods(minClusterSize=10, deepSplit=2)
        mol = wgcna.calculate_gene_module()
        assert mol.loc[mol['module'] > 0, 'module'].nunique() >= 2
        assert 'dynamicTreeCut' in wgcna.uns['REFERENCE_MANU']

    def test_unknown_cut_method(self, fitted_wgcna):
        with pytest.raises(ValueError):
            fitted_wgcna.calculate_dynamicMods(method='kmeans')

    def test_eigengenes(self, fitted_wgcna):
        MEs = fitted_wgcna.MEs
        assert {'MEturquoise', 'MEblue', 'MEbrown'} <= set(MEs.columns)
        assert np.allclose(MEs.std(ddof=1), 1)
        assert (fitted_wgcna.varExplained > 0.5).loc[['MEturquoise', 'MEblue', 'MEbrown']].all()

    def test_merge_keeps_distinct_modules(self, fitted_wgcna):
        before = set(fitted_wgcna.mol['module_color'])
        fitted_wgcna.merge_close_modules(cut_height=0.25)
        assert set(fitted_wgcna.mol['module_color']) == before

    def test_merge_joins_everything_at_high_cut(self, fitted_wgcna):
        fitted_wgcna.merge_close_modules(cut_height=2.0)
        colors = set(fitted_wgcna.mol['module_color']) - {'grey'}
        assert len(colors) == 1
        assert fitted_wgcna.merge_history


class TestTraitRelationship:

    def test_module_trait_correlation(self, fitted_wgcna, module_expression):
        _, metadata, _ = module_expression
        trait = onet.bulk.encode_trait(metadata, 'disease_state', case='AD', control='control')
        cor, pvalue = fitted_wgcna.analysis_meta_correlation(trait.to_frame())
        assert cor.loc['MEturquoise', 'disease_state'] > 0.6
        assert pvalue.loc['MEturquoise', 'disease_state'] < 0.01
        assert pvalue.loc['MEblue', 'disease_state'] > pvalue.loc['MEturquoise', 'disease_state']

    def test_meta_correlation_one_hot(self, fitted_wgcna, module_expression):
        _, metadata, _ = module_expression
        cor, _ = fitted_wgcna.analysis_meta_correlation(metadata)
        assert {'age', 'disease_state_AD', 'disease_state_control'} <= set(cor.columns)
        # the two indicator columns are mirror images
        assert np.allclose(cor['disease_state_AD'], -cor['disease_state_control'])

    def test_unmatched_traits(self, fitted_wgcna):
        traits = pd.DataFrame({'x': [1.0, 2.0]}, index=['other1', 'other2'])
        with pytest.raises(ValueError):
            fitted_wgcna.analysis_meta_correlation(traits)

    def test_gene_significance(self, fitted_wgcna, module_expression):
        _, metadata, truth = module_expression
        trait = onet.bulk.encode_trait(metadata, 'disease_state', case='AD', control='control')
        gs = fitted_wgcna.gene_significance(trait)
        assert gs.loc[truth.index[truth == 'trait'], 'GS'].mean() > 0.5
        assert gs.loc[truth.index[truth == 'trait'], 'p.GS'].max() < 0.05
        with pytest.raises(ValueError):
            fitted_wgcna.gene_significance('disease_state')

    def test_module_membership_and_hubs(self, fitted_wgcna):
        MM = fitted_wgcna.module_membership()
        turquoise = fitted_wgcna.get_sub_module(['turquoise'])['name']
        assert (MM.loc[turquoise, 'MMturquoise'] > 0.8).all()
        hubs = fitted_wgcna.get_hub_genes('turquoise', n=5)
        assert len(hubs) == 5
        assert set(hubs.index) <= set(turquoise)
        hubs_mm = fitted_wgcna.get_hub_genes(1, n=3, by='MM')
        assert (hubs_mm['module_color'] == 'turquoise').all()
        with pytest.raises(KeyError):
            fitted_wgcna.get_hub_genes('no_such_module')
        with pytest.raises(ValueError):
            fitted_wgcna.get_hub_genes('turquoise', by='degree')

    def test_connectivity(self, fitted_wgcna):
        k = fitted_wgcna.intramodular_connectivity()
        assert np.allclose(k['kTotal'], k['kWithin'] + k['kOut'])
        gene = fitted_wgcna.get_sub_module(['turquoise'])['name'].iloc[0]
        assert k.loc[gene, 'kWithin'] > k.loc[gene, 'kOut']

    def test_sub_network(self, fitted_wgcna):
        G = fitted_wgcna.get_sub_network(['turquoise'], 0.1, weight='TOM')
        assert G.number_of_nodes() == 40
        assert all(0.1 < d['weight'] <= 1 for _, _, d in G.edges(data=True))
        with pytest.raises(ValueError):
            fitted_wgcna.get_sub_network(['turquoise'], weight='pearson')

    def test_plots(self, fitted_wgcna, module_expression):
        _, metadata, _ = module_expression
        fitted_wgcna.analysis_meta_correlation(metadata[['age']])
        ax = fitted_wgcna.plot_meta_correlation()
        assert ax.get_title() == 'Module-trait relationships'
        fig, axes = fitted_wgcna.plot_module_tree()
        assert len(axes) == 2


class TestSampleQC:

    def test_good_samples_genes(self, module_expression):
        data, _, _ = module_expression
        data = data.copy()
        data.loc['trait_0', :] = np.nan
        data.loc['noise_0', :] = 5.0
        data.iloc[:, 0] = np.nan
        data.loc['trait_1', 'S05'] = np.nan
        wgcna = onet.bulk.pyWGCNA(data)
        genes, samples = wgcna.good_samples_genes()
        assert set(genes) == {'trait_0', 'noise_0'}
        assert samples == ['S00']
        assert not wgcna.data.isna().any().any()

    def test_sample_tree_removes_outliers(self, module_expression):
        data, _, _ = module_expression
        data = data.copy()
        data['S23'] = data['S23'] + 50
        wgcna = onet.bulk.pyWGCNA(data)
        assert wgcna.sample_tree() == []
        assert wgcna.sample_tree(cut_height=100) == ['S23']
        assert 'S23' not in wgcna.data.columns

    def test_mad_filtered(self, module_expression):
        data, _, _ = module_expression
        wgcna = onet.bulk.pyWGCNA(data)
        wgcna.mad_filtered(50)
        assert len(wgcna.data) == 50
