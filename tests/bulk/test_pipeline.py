"""
End-to-end tests of the trait network pipeline and the command line.
"""

import json

from types import SimpleNamespace

import pytest
import requests
import pandas as pd
import omicnet as onet
from omicnet.bulk import TraitNetwork, TraitNetworkConfig
from omicnet.cli import main


@pytest.fixture
def input_files(module_expression, tmp_path):
    data, metadata, _ = module_expression
    counts_path = tmp_path / 'expression.tsv'
    metadata_path = tmp_path / 'samples.csv'
    data.to_csv(counts_path, sep='\t')
    metadata.to_csv(metadata_path)
    return counts_path, metadata_path


@pytest.fixture
def config(input_files, temp_output_dir):
    counts_path, metadata_path = input_files
    return TraitNetworkConfig(
        counts_path=counts_path,
        metadata_path=metadata_path,
        trait_column='disease_state',
        case='AD',
        control='control',
        output_dir=temp_output_dir,
        deg_method='ttest',
        log_transform=False,
        powers=[6],
        min_module_size=10,
        tree_cut='static',
        tree_cut_height=0.8,
        cytoscape=False,
    )


class TestConfig:

    def test_paths_are_converted(self):
        cfg = TraitNetworkConfig(counts_path='a.tsv', output_dir='out')
        assert cfg.counts_path.name == 'a.tsv'
        assert cfg.output_dir.name == 'out'

    def test_from_json_with_overrides(self, tmp_path):
        path = tmp_path / 'cfg.json'
        path.write_text(json.dumps({'counts_path': 'x.tsv', 'metadata_path': 'm.tsv', 'case': 'AD'}))
        cfg = TraitNetworkConfig.from_json(path, case=None, control='healthy')
        assert cfg.case == 'AD'
        assert cfg.control == 'healthy'
        assert json.loads(json.dumps(cfg.to_dict()))['counts_path'] == 'x.tsv'

    def test_from_json_unknown_key(self, tmp_path):
        path = tmp_path / 'cfg.json'
        path.write_text(json.dumps({'softpower': 6}))
        with pytest.raises(ValueError, match='softpower'):
            TraitNetworkConfig.from_json(path)

    def test_from_json_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TraitNetworkConfig.from_json(tmp_path / 'nope.json')


class TestTraitNetwork:

    def test_needs_an_input(self, temp_output_dir):
        with pytest.raises(ValueError):
            TraitNetwork(TraitNetworkConfig(output_dir=temp_output_dir)).load()

    def test_steps_in_order(self, config):
        pipeline = TraitNetwork(config)
        with pytest.raises(RuntimeError):
            pipeline.prepare()
        with pytest.raises(RuntimeError):
            pipeline.deg()
        with pytest.raises(RuntimeError):
            pipeline.export()

    def test_prepare_groups(self, config, module_expression):
        _, metadata, _ = module_expression
        pipeline = TraitNetwork(config)
        pipeline.load()
        data = pipeline.prepare()
        assert len(pipeline.case_samples) == 12
        assert len(pipeline.control_samples) == 12
        assert list(data.columns) == list(metadata.index)

    def test_other_levels_are_dropped(self, config, input_files):
        _, metadata_path = input_files
        metadata = pd.read_csv(metadata_path, index_col=0)
        metadata.iloc[0, metadata.columns.get_loc('disease_state')] = 'MCI'
        metadata.to_csv(metadata_path)
        pipeline = TraitNetwork(config)
        pipeline.load()
        data = pipeline.prepare()
        assert data.shape[1] == 23
        assert 'S00' not in pipeline.case_samples

    def test_log_scale_input_keeps_genes(self, config, module_expression):
        data, _, _ = module_expression
        pipeline = TraitNetwork(config)
        pipeline.load()
        assert not pipeline.is_count_data
        assert pipeline.prepare().shape == data.shape

    def test_count_filter_on_counts(self, config):
        config.log_transform = True
        config.min_count = 100
        pipeline = TraitNetwork(config)
        pipeline.load()
        assert pipeline.prepare().empty

    def test_ttest_fold_change_direction(self, config):
        pipeline = TraitNetwork(config)
        pipeline.load()
        pipeline.prepare()
        result = pipeline.deg()
        trait_genes = [f"trait_{g}" for g in range(40)]
        assert 1.2 < result.loc[trait_genes, 'log2FC'].mean() < 2.4
        assert (result.loc[trait_genes, 'sig'] == 'up').sum() >= 35

    @pytest.mark.integration
    def test_run(self, config, temp_output_dir):
        pipeline = TraitNetwork(config)
        outputs = pipeline.run()
        for key in ['deg_results', 'module_genes', 'module_eigengenes', 'module_trait_cor',
                    'module_trait_pvalue', 'network_edges', 'network_nodes', 'network']:
            assert key in outputs
        assert 'turquoise' in pipeline.modules
        cor = pd.read_csv(outputs['module_trait_cor'], index_col=0)
        assert cor.loc['MEturquoise', 'disease_state'] > 0.6
        genes = pd.read_csv(outputs['module_genes'], index_col=0)
        assert {'module_color', 'GS', 'kWithin', 'log2FC'} <= set(genes.columns)
        nodes = pd.read_csv(outputs['network_nodes'], sep='\t')
        assert 'turquoise' in set(nodes['nodeAttr'])
        saved = json.loads((temp_output_dir / 'config.json').read_text())
        assert saved['deg_method'] == 'ttest'

    def test_configured_modules(self, config):
        config.export_modules = ['blue']
        pipeline = TraitNetwork(config)
        assert pipeline.selected_modules() == ['blue']

    def test_no_module_to_export(self, config):
        pipeline = TraitNetwork(config)
        pipeline.wgcna = SimpleNamespace(
            module_trait_cor=pd.DataFrame({'disease_state': [0.2]}, index=['MEgrey']),
            module_trait_pvalue=pd.DataFrame({'disease_state': [0.4]}, index=['MEgrey']))
        with pytest.raises(ValueError, match='grey'):
            pipeline.selected_modules()
        undefined = pd.DataFrame({'disease_state': [0.2, float('nan')]}, index=['MEgrey', 'MEblue'])
        pipeline.wgcna = SimpleNamespace(module_trait_cor=undefined, module_trait_pvalue=undefined)
        with pytest.raises(ValueError, match='defined correlation'):
            pipeline.selected_modules()

    def test_strongest_module_fallback(self, config):
        pipeline = TraitNetwork(config)
        pipeline.wgcna = SimpleNamespace(
            module_trait_cor=pd.DataFrame({'disease_state': [0.9, 0.1, -0.3]}, index=['MEgrey', 'MEblue', 'MEbrown']),
            module_trait_pvalue=pd.DataFrame({'disease_state': [0.01, 0.6, 0.2]}, index=['MEgrey', 'MEblue', 'MEbrown']))
        assert pipeline.selected_modules() == ['brown']

    @pytest.mark.integration
    def test_unreachable_cytoscape_is_skipped(self, config, monkeypatch):
        class Refused:
            def request(self, *args, **kwargs):
                raise requests.ConnectionError('refused')

        real_client = onet.bulk.CytoscapeClient
        monkeypatch.setattr('omicnet.bulk._pipeline.CytoscapeClient',
                            lambda base_url=None: real_client(base_url, session=Refused()))
        config.cytoscape = True
        pipeline = TraitNetwork(config)
        pipeline.run()
        assert pipeline.cytoscape() == {}


class TestCommandLine:

    def test_help_without_input(self, capsys):
        assert main([]) == 0
        assert 'usage' in capsys.readouterr().out

    def test_missing_file(self, tmp_path):
        code = main(['--counts', str(tmp_path / 'missing.tsv'), '--metadata', str(tmp_path / 'm.tsv'),
                     '--no-cytoscape', '--output-dir', str(tmp_path / 'out')])
        assert code == 1

    def test_list_functions(self, capsys):
        assert main(['--list-functions']) == 0
        assert 'pyWGCNA' in capsys.readouterr().out

    @pytest.mark.integration
    def test_run_from_config(self, config, tmp_path):
        cfg = config.to_dict()
        cfg['cytoscape'] = True
        path = tmp_path / 'analysis.json'
        path.write_text(json.dumps(cfg))
        out = tmp_path / 'cli_out'
        assert main(['--config', str(path), '--no-cytoscape', '--output-dir', str(out)]) == 0
        assert (out / 'network_edges.tsv').exists()
        assert json.loads((out / 'config.json').read_text())['cytoscape'] is False
