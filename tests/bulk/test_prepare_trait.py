"""
Tests for sample/gene preparation and trait encoding in omicnet.bulk.
"""

from unittest import mock

import pytest
import numpy as np
import pandas as pd
import omicnet as onet


class TestReorderSamples:

    def test_orders_like_metadata(self, module_expression):
        data, metadata, _ = module_expression
        shuffled = data[data.columns[::-1]]
        out = onet.bulk.reorder_samples(shuffled, metadata)
        assert list(out.columns) == list(metadata.index)

    def test_sample_column(self, module_expression):
        data, metadata, _ = module_expression
        meta = metadata.reset_index().rename(columns={'index': 'gsm'})
        out = onet.bulk.reorder_samples(data, meta, sample_col='gsm')
        assert list(out.columns) == list(meta['gsm'])

    def test_missing_sample_raises(self, module_expression):
        data, metadata, _ = module_expression
        with pytest.raises(ValueError, match="missing"):
            onet.bulk.reorder_samples(data.drop(columns=['S00']), metadata)

    def test_extra_columns_dropped(self, module_expression):
        data, metadata, _ = module_expression
        out = onet.bulk.reorder_samples(data, metadata.iloc[:5])
        assert out.shape[1] == 5


class TestMissingAndFiltering:

    def test_fill_missing_median(self):
        data = pd.DataFrame({'a': [1.0, np.nan, np.nan], 'b': [3.0, 2.0, np.nan], 'c': [5.0, 4.0, np.nan]},
                            index=['g1', 'g2', 'g3'])
        out = onet.bulk.fill_missing_median(data)
        assert 'g3' not in out.index
        assert out.loc['g1', 'a'] == 1.0
        assert out.loc['g2', 'a'] == 3.0
        assert not out.isna().any().any()

    def test_fill_missing_bad_axis(self):
        with pytest.raises(ValueError):
            onet.bulk.fill_missing_median(pd.DataFrame({'a': [1.0]}), axis=2)

    def test_filter_low_counts_groups(self):
        data = pd.DataFrame([[20, 20, 0, 0], [20, 0, 20, 0], [0, 0, 0, 1]],
                            index=['g1', 'g2', 'g3'], columns=list('abcd'))
        out = onet.bulk.filter_low_counts(data, min_count=10, groups=[['a', 'b'], ['c', 'd']])
        assert list(out.index) == ['g1', 'g2']

    def test_filter_low_counts_row_sum(self):
        data = pd.DataFrame([[5, 6], [1, 1]], index=['g1', 'g2'], columns=['a', 'b'])
        out = onet.bulk.filter_low_counts(data, min_count=10)
        assert list(out.index) == ['g1']

    def test_round_counts(self):
        out = onet.bulk.round_counts(pd.DataFrame({'a': [1.4, 2.6]}))
        assert out['a'].tolist() == [1, 3]
        with pytest.raises(ValueError):
            onet.bulk.round_counts(pd.DataFrame({'a': [-1.0]}))

    def test_rename_samples(self, module_expression):
        data, metadata, _ = module_expression
        metadata = metadata.assign(title=[f"patient_{i}" for i in range(len(metadata))])
        out = onet.bulk.rename_samples(data, metadata=metadata, column='title')
        assert out.columns[0] == 'patient_0'
        with pytest.raises(KeyError):
            onet.bulk.rename_samples(data, metadata=metadata, column='nope')
        with pytest.raises(ValueError):
            onet.bulk.rename_samples(data)

    def test_mad_filtered_keeps_most_variable(self):
        data = pd.DataFrame({'a': [0, 0, 5], 'b': [1, 0, -5], 'c': [2, 0, 5], 'd': [3, 0, -5]},
                            index=['slope', 'flat', 'swing'], dtype=float)
        out = onet.bulk.mad_filtered(data, gene_num=1)
        assert list(out.index) == ['swing']


class TestEncodeTrait:

    def test_explicit_levels(self, module_expression):
        _, metadata, _ = module_expression
        trait = onet.bulk.encode_trait(metadata, 'disease_state', case='AD', control='control')
        assert trait.name == 'disease_state'
        assert trait.iloc[0] == 1.0 and trait.iloc[-1] == 0.0

    def test_two_levels_control_detected(self):
        meta = pd.DataFrame({'state': ['AD', 'control', 'AD']})
        trait = onet.bulk.encode_trait(meta, 'state')
        assert trait.tolist() == [1.0, 0.0, 1.0]
        meta = pd.DataFrame({'state': ['normal tissue', 'tumor', 'tumor']})
        assert onet.bulk.encode_trait(meta, 'state').tolist() == [0.0, 1.0, 1.0]

    def test_two_levels_without_control_label(self):
        meta = pd.DataFrame({'state': ['tumor', 'metastasis', 'tumor']})
        with pytest.raises(ValueError):
            onet.bulk.encode_trait(meta, 'state')

    def test_other_levels_become_nan(self):
        meta = pd.DataFrame({'state': ['AD', 'control', 'MCI']})
        trait = onet.bulk.encode_trait(meta, 'state', case='AD', control='control')
        assert np.isnan(trait.iloc[2])

    def test_infer_case_from_control(self):
        meta = pd.DataFrame({'state': ['AD', 'control', 'AD']})
        trait = onet.bulk.encode_trait(meta, 'state', control='control')
        assert trait.tolist() == [1.0, 0.0, 1.0]

    def test_errors(self):
        meta = pd.DataFrame({'state': ['AD', 'control', 'MCI']})
        with pytest.raises(KeyError):
            onet.bulk.encode_trait(meta, 'missing')
        with pytest.raises(ValueError):
            onet.bulk.encode_trait(meta, 'state')
        with pytest.raises(ValueError):
            onet.bulk.encode_trait(meta, 'state', case='PD', control='control')

    def test_numeric_column_passthrough(self, module_expression):
        _, metadata, _ = module_expression
        trait = onet.bulk.encode_trait(metadata, 'age')
        assert trait.dtype == float

    def test_encode_traits_one_hot(self, module_expression):
        _, metadata, _ = module_expression
        traits = onet.bulk.encode_traits(metadata)
        assert 'age' in traits.columns
        assert 'disease_state_AD' in traits.columns
        assert set(traits['disease_state_AD'].unique()) == {0.0, 1.0}

    def test_encode_traits_missing_level_is_nan(self):
        meta = pd.DataFrame({'state': ['AD', None, 'control']}, index=['a', 'b', 'c'])
        traits = onet.bulk.encode_traits(meta)
        assert traits.loc['a', 'state_AD'] == 1.0
        assert traits.loc['c', 'state_control'] == 1.0
        assert traits.loc['b'].isna().all()


class TestSymbolMapping:

    def test_unmapped_ids_keep_their_name(self):
        fake = mock.MagicMock()
        fake.querymany.return_value = {'out': [
            {'query': 'ENSG00000141510', 'symbol': 'TP53'},
            {'query': 'ENSG_UNKNOWN', 'notfound': True},
        ]}
        with mock.patch('mygene.MyGeneInfo', return_value=fake):
            mapping = onet.bulk.symbol_mapping(['ENSG00000141510', 'ENSG_UNKNOWN'])
        assert mapping['ENSG00000141510'] == 'TP53'
        assert mapping['ENSG_UNKNOWN'] == 'ENSG_UNKNOWN'
        fake.querymany.assert_called_once()
