"""
Shared pytest configuration and fixtures for the omicnet test suite.

The synthetic expression data has three co-expression modules driven by
independent latent factors plus unstructured noise genes; the first module
follows the case/control trait.
"""

import logging

import pytest
import numpy as np
import pandas as pd


@pytest.fixture
def random_seed():
    """
    Provides a consistent random seed for reproducible tests.
    """
    return 42


@pytest.fixture(autouse=True)
def reset_random_state(random_seed):
    """
    Automatically reset random state before each test for reproducibility.
    """
    np.random.seed(random_seed)


@pytest.fixture
def temp_output_dir(tmp_path):
    """
    Provides a temporary directory for test outputs.
    """
    output_dir = tmp_path / "test_output"
    output_dir.mkdir(exist_ok=True)
    return output_dir


@pytest.fixture
def mock_env_vars(monkeypatch):
    """
    Fixture to safely mock environment variables in tests.
    Usage:
        def test_something(mock_env_vars):
            mock_env_vars({"OMICNET_N_CPUS": "2"})
    """
    def _set_env_vars(env_dict):
        for key, value in env_dict.items():
            monkeypatch.setenv(key, value)
    return _set_env_vars


@pytest.fixture(scope='session', autouse=True)
def configure_matplotlib():
    """
    Use the non-interactive backend so plots never open a window.
    """
    import matplotlib
    matplotlib.use('Agg')


@pytest.fixture(autouse=True)
def reset_omicnet_logging():
    """
    Drop handlers added by setup_logging so no test writes to a closed capture stream.
    """
    yield
    logger = logging.getLogger("omicnet")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def pytest_configure(config):
    """
    Register custom pytest markers for better test organization.
    """
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_network: marks tests that require network access"
    )


MODULE_SIZES = {'trait': 40, 'second': 30, 'third': 20}
N_NOISE = 30


def _module_expression(n_case=12, n_control=12, seed=0):
    rng = np.random.RandomState(seed)
    n = n_case + n_control
    samples = [f"S{i:02d}" for i in range(n)]
    trait = np.array([1.0] * n_case + [0.0] * n_control)
    factors = {
        'trait': 1.5 * (trait - trait.mean()) + rng.normal(0, 0.5, n),
        'second': rng.normal(0, 1, n),
        'third': rng.normal(0, 1, n),
    }
    rows, index, truth = [], [], {}
    for name, size in MODULE_SIZES.items():
        f = (factors[name] - factors[name].mean()) / factors[name].std()
        for g in range(size):
            gene = f"{name}_{g}"
            rows.append(8 + f + rng.normal(0, 0.3, n))
            index.append(gene)
            truth[gene] = name
    for g in range(N_NOISE):
        gene = f"noise_{g}"
        rows.append(8 + rng.normal(0, 1, n))
        index.append(gene)
        truth[gene] = 'noise'
    data = pd.DataFrame(np.vstack(rows), index=index, columns=samples)
    metadata = pd.DataFrame({
        'disease_state': ['AD'] * n_case + ['control'] * n_control,
        'age': rng.randint(60, 90, n),
    }, index=samples)
    return data, metadata, pd.Series(truth)


@pytest.fixture
def module_expression():
    """
    Log-scale genes x samples matrix with three planted modules.

    Returns (data, metadata, truth) where ``truth`` maps each gene to its planted module.
    """
    return _module_expression()


@pytest.fixture
def count_data():
    """
    Raw counts, 60 genes x 8 samples; the first 10 genes are 8-fold up in the first 4 samples.
    """
    rng = np.random.RandomState(1)
    means = rng.uniform(50, 500, 60)
    counts = rng.poisson(np.repeat(means[:, None], 8, axis=1))
    counts[:10, :4] = rng.poisson(8 * np.repeat(means[:10, None], 4, axis=1))
    return pd.DataFrame(counts,
                        index=[f"Gene_{i}" for i in range(60)],
                        columns=[f"Sample_{i}" for i in range(8)])


@pytest.fixture
def fitted_wgcna(module_expression):
    """
    pyWGCNA run through module detection with a static tree cut (no dynamicTreeCut needed).
    """
    import omicnet as onet
    data, metadata, truth = module_expression
    wgcna = onet.bulk.pyWGCNA(data)
    wgcna.calculate_adjacency(network_type='unsigned', power=6)
    wgcna.calculate_tom()
    wgcna.calculate_geneTree()
    wgcna.calculate_dynamicMods(minClusterSize=10, method='static', cut_height=0.8)
    wgcna.calculate_gene_module()
    wgcna.calculate_module_eigengenes()
    return wgcna
