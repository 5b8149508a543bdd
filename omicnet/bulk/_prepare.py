r"""
Matrix wrangling between loading a dataset and testing it.
"""

import logging
from typing import Optional, List, Sequence, Union

import numpy as np
import pandas as pd

from ..utils.registry import register_function

logger = logging.getLogger(__name__)


@register_function(
    aliases=["样本排序", "reorder_samples", "align_samples", "match_metadata"],
    category="bulk",
    description="Reorder expression matrix columns to follow the sample order of the metadata table",
    examples=[
        "data = onet.bulk.reorder_samples(data, metadata)",
        "data = onet.bulk.reorder_samples(data, metadata, sample_col='geo_accession')",
    ],
    related=["bulk.rename_samples", "utils.read_table"]
)
def reorder_samples(data: pd.DataFrame, metadata: pd.DataFrame,
                    sample_col: Optional[str] = None) -> pd.DataFrame:
    r"""Reorder expression columns to the order of the metadata samples.

    Arguments:
        data: Genes x samples expression matrix.
        metadata: Sample metadata, one row per sample.
        sample_col: Metadata column holding the sample ids. The index is used when None.

    Returns:
        data: The matrix restricted to, and ordered like, the metadata samples.
    """
    samples = metadata.index if sample_col is None else metadata[sample_col]
    samples = [str(s) for s in samples]
    columns = data.columns.astype(str)
    missing = [s for s in samples if s not in set(columns)]
    if missing:
        raise ValueError(f"Samples in metadata but missing from the expression matrix: {missing}")
    extra = [c for c in columns if c not in set(samples)]
    if extra:
        logger.warning("Dropping %d expression columns absent from the metadata: %s",
                       len(extra), extra[:10])
    data = data.copy()
    data.columns = columns
    return data[samples]


@register_function(
    aliases=["缺失值填充", "fill_missing_median", "impute_median", "fillna"],
    category="bulk",
    description="Fill missing expression values with the per-gene (or per-sample) median",
    examples=["data = onet.bulk.fill_missing_median(data)"],
    related=["bulk.filter_low_counts"]
)
def fill_missing_median(data: pd.DataFrame, axis: int = 1) -> pd.DataFrame:
    r"""Fill missing values with medians.

    Arguments:
        data: Genes x samples matrix.
        axis: 1 fills each gene with its own median across samples, 0 fills each sample with its median. (1)

    Returns:
        data: Matrix without NaN. Genes that are NaN in every sample are dropped.
    """
    if axis not in (0, 1):
        raise ValueError("axis must be 0 or 1")
    empty = data.isna().all(axis=1)
    if empty.any():
        logger.info("Dropping %d genes with no measured value", int(empty.sum()))
    data = data.loc[~empty]
    if axis == 1:
        medians = data.median(axis=1)
        return data.T.fillna(medians).T
    return data.fillna(data.median(axis=0))


@register_function(
    aliases=["低表达过滤", "filter_low_counts", "filter_genes", "low_count_filter"],
    category="bulk",
    description="Drop lowly expressed genes before differential expression or network analysis",
    examples=[
        "data = onet.bulk.filter_low_counts(data, min_count=10)",
        "data = onet.bulk.filter_low_counts(data, min_count=10, groups=[case, control])",
    ],
    related=["bulk.pyDEG", "bulk.mad_filtered"]
)
def filter_low_counts(data: pd.DataFrame, min_count: float = 10,
                      min_samples: Optional[int] = None,
                      groups: Optional[Sequence[Sequence[str]]] = None) -> pd.DataFrame:
    r"""Keep genes expressed at ``>= min_count`` in at least ``min_samples`` samples.

    Arguments:
        data: Genes x samples matrix.
        min_count: Minimum count (or intensity). (10)
        min_samples: Minimum number of samples passing ``min_count``. Defaults to the size of
            the smallest group when ``groups`` is given; without groups the row sum must reach ``min_count``.
        groups: Sample groups, e.g. ``[case_samples, control_samples]``.

    Returns:
        data: The filtered matrix.
    """
    if min_samples is None and groups:
        min_samples = min(len(g) for g in groups)
    if min_samples is None:
        keep = data.sum(axis=1) >= min_count
    else:
        keep = (data >= min_count).sum(axis=1) >= min_samples
    print(f"......Kept {int(keep.sum())} of {len(data)} genes (min_count={min_count}, min_samples={min_samples})")
    return data.loc[keep]


def rename_samples(data: pd.DataFrame, mapping: Optional[dict] = None,
                   metadata: Optional[pd.DataFrame] = None,
                   column: Optional[str] = None) -> pd.DataFrame:
    r"""Rename sample columns from a dict or from a metadata column.

    Arguments:
        data: Genes x samples matrix.
        mapping: ``{old_name: new_name}``.
        metadata: Metadata indexed by the current sample names, used with ``column``.
        column: Metadata column holding the new names.

    Returns:
        data: A copy with renamed columns.
    """
    if mapping is None:
        if metadata is None or column is None:
            raise ValueError("Provide either `mapping` or both `metadata` and `column`.")
        if column not in metadata.columns:
            raise KeyError(f"Column '{column}' not found in metadata")
        mapping = metadata[column].astype(str).to_dict()
    return data.rename(columns=mapping)


def round_counts(data: pd.DataFrame) -> pd.DataFrame:
    r"""Round values to integers so count-based tests (DESeq2) accept them.

    Arguments:
        data: Genes x samples matrix of non-negative values.

    Returns:
        data: Integer matrix.
    """
    if (data.values < 0).any():
        raise ValueError("Negative values cannot be used as counts; use method='ttest' for log-scale data.")
    return data.round().astype(int)


@register_function(
    aliases=["基因符号映射", "symbol_mapping", "mygene", "ensembl_to_symbol"],
    category="bulk",
    description="Map gene identifiers to symbols with the MyGene.info service",
    examples=[
        "mapping = onet.bulk.symbol_mapping(data.index, scopes='ensembl.gene')",
        "data.index = data.index.map(mapping)",
    ],
    related=["bulk.Matrix_ID_mapping"]
)
def symbol_mapping(ids, scopes: str = 'ensembl.gene', species: str = 'human') -> pd.Series:
    r"""Map gene ids to symbols with ``mygene``.

    Arguments:
        ids: Gene identifiers.
        scopes: MyGene.info query scope, e.g. ``'ensembl.gene'``, ``'entrezgene'``, ``'reporter'``. ('ensembl.gene')
        species: Species name or taxid. ('human')

    Returns:
        mapping: Series indexed by the input ids. Unmapped ids map to themselves.
    """
    import mygene

    ids = [str(i) for i in ids]
    mg = mygene.MyGeneInfo()
    results = mg.querymany(ids, scopes=scopes, fields='symbol', species=species,
                           returnall=True, verbose=False)
    symbols = {}
    for hit in results.get('out', []):
        if hit.get('notfound') or 'symbol' not in hit:
            continue
        symbols.setdefault(hit['query'], hit['symbol'])
    logger.info("MyGene mapped %d of %d ids", len(symbols), len(ids))
    return pd.Series({i: symbols.get(i, i) for i in ids})


CONTROL_LABELS = ('control', 'ctrl', 'normal', 'healthy', 'non-demented', 'nondemented',
                  'non-diseased', 'unaffected', 'wild type', 'wildtype', 'wt')


def _is_control_label(level) -> bool:
    text = str(level).strip().lower().replace('_', ' ')
    return text in CONTROL_LABELS or any(text.startswith(label + ' ') for label in CONTROL_LABELS)


@register_function(
    aliases=["性状编码", "encode_trait", "disease_state", "binarize_trait"],
    category="bulk",
    description="Encode a categorical disease-state column as a numeric 0/1 trait",
    examples=[
        "trait = onet.bulk.encode_trait(meta, 'disease_state', case='AD', control='control')",
    ],
    related=["bulk.encode_traits", "bulk.pyWGCNA.analysis_meta_correlation"]
)
def encode_trait(metadata: pd.DataFrame, column: str, case: Optional[str] = None,
                 control: Optional[str] = None) -> pd.Series:
    r"""Encode a trait column as numbers.

    Arguments:
        metadata: Sample metadata.
        column: The trait column.
        case: Level encoded as 1.
        control: Level encoded as 0. Samples in any other level become NaN.
            With neither given, a two-level column is split on the one level
            that reads as a control (``CONTROL_LABELS``, e.g. control, normal,
            healthy); otherwise a ValueError asks for explicit levels.

    Returns:
        trait: Float series indexed by sample (control = 0, case = 1).
    """
    if column not in metadata.columns:
        raise KeyError(f"Column '{column}' not found in metadata")
    values = metadata[column]
    if pd.api.types.is_numeric_dtype(values):
        return values.astype(float).rename(column)

    levels = list(pd.unique(values.dropna()))
    if case is None and control is None:
        if len(levels) != 2:
            raise ValueError(f"Column '{column}' has {len(levels)} levels {levels}; "
                             "pass `case` and `control` to choose two of them.")
        controls = [level for level in levels if _is_control_label(level)]
        if len(controls) != 1:
            raise ValueError(f"Cannot tell the control level of '{column}' from {levels}; "
                             "pass `case` and `control`.")
        control = controls[0]
        case = next(level for level in levels if level != control)
        logger.info("Trait '%s': control=%s, case=%s", column, control, case)
    elif case is None:
        rest = [level for level in levels if level != control]
        if len(rest) != 1:
            raise ValueError(f"Cannot infer `case` from levels {levels}")
        case = rest[0]
    elif control is None:
        rest = [level for level in levels if level != case]
        if len(rest) != 1:
            raise ValueError(f"Cannot infer `control` from levels {levels}")
        control = rest[0]
    for level in (case, control):
        if level not in levels:
            raise ValueError(f"Level '{level}' not found in column '{column}' ({levels})")
    trait = values.map({control: 0.0, case: 1.0}).astype(float)
    return trait.rename(column)


def encode_traits(metadata: pd.DataFrame, columns: Optional[List[str]] = None) -> pd.DataFrame:
    r"""Numeric trait table: numeric columns kept, categorical columns one-hot encoded.

    Samples with a missing categorical value are NaN in every column of that trait.

    Arguments:
        metadata: Sample metadata.
        columns: Columns to encode (all when None).

    Returns:
        traits: Float table indexed by sample.
    """
    metadata = metadata if columns is None else metadata[columns]
    numeric = metadata.select_dtypes(include=[np.number])
    categorical = metadata.drop(columns=numeric.columns)
    parts = [numeric.astype(float)]
    for name, values in categorical.items():
        dummies = pd.get_dummies(values, prefix=name, prefix_sep='_', dummy_na=False).astype(float)
        dummies.loc[values.isna()] = np.nan
        parts.append(dummies)
    return pd.concat(parts, axis=1)


def mad_filtered(data: pd.DataFrame, gene_num: int = 5000) -> pd.DataFrame:
    r"""Keep the ``gene_num`` genes with the largest median absolute deviation.

    Arguments:
        data: Genes x samples matrix.
        gene_num: Number of genes to keep. (5000)

    Returns:
        data: The filtered matrix.
    """
    from statsmodels import robust
    gene_mad = data.T.apply(robust.mad)
    return data.loc[gene_mad.sort_values(ascending=False).index[:gene_num]]
