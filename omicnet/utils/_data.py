r"""
Data loading helpers: expression / metadata tables and GEO series.
"""

import os
import time
import logging
from pathlib import Path
from typing import Optional, Tuple, List

import pandas as pd
import requests

from .registry import register_function

logger = logging.getLogger(__name__)

_SEP_BY_SUFFIX = {
    '.csv': ',',
    '.tsv': '\t',
    '.txt': '\t',
    '.tab': '\t',
}


def _infer_sep(path: Path) -> str:
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] in ('.gz', '.bz2', '.zip', '.xz'):
        suffixes = suffixes[:-1]
    if not suffixes:
        return '\t'
    return _SEP_BY_SUFFIX.get(suffixes[-1], '\t')


@register_function(
    aliases=["读取表格", "read_table", "read_counts", "load_expression", "read_metadata"],
    category="utils",
    description="Read an expression matrix or sample metadata table (csv/tsv/txt, optionally compressed)",
    examples=[
        "counts = onet.utils.read_table('counts.tsv')",
        "meta = onet.utils.read_table('samples.csv')",
    ],
    related=["utils.read_geo_series", "bulk.reorder_samples"]
)
def read_table(path, sep: Optional[str] = None, index_col=0, **kwargs) -> pd.DataFrame:
    r"""Read a delimited table into a DataFrame.

    Arguments:
        path: Path to the csv/tsv/txt file (``.gz`` and friends are decompressed by pandas).
        sep: Column separator. Inferred from the suffix when None (``.csv`` -> ``,``, otherwise tab).
        index_col: Column used as the index (gene ids for expression, sample ids for metadata). (0)
        **kwargs: Passed to ``pandas.read_csv``.

    Returns:
        data: The loaded table.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No such table: {path}")
    if sep is None:
        sep = _infer_sep(path)
    data = pd.read_csv(path, sep=sep, index_col=index_col, **kwargs)
    logger.info("Loaded %s with shape %s", path, data.shape)
    return data


def _split_characteristics(characteristics: List[str]) -> dict:
    out = {}
    for i, item in enumerate(characteristics):
        if ':' in item:
            key, value = item.split(':', 1)
            out[key.strip().replace(' ', '_').lower()] = value.strip()
        else:
            out[f'characteristics_{i}'] = item.strip()
    return out


def geo_sample_metadata(gse) -> pd.DataFrame:
    r"""Build a sample metadata table from a GEOparse GSE object.

    Arguments:
        gse: ``GEOparse.GEOTypes.GSE`` instance.

    Returns:
        metadata: One row per GSM with ``title``, ``source_name_ch1`` and one column per
            ``characteristics_ch1`` key (e.g. ``disease_state``).
    """
    rows = {}
    for gsm_name, gsm in gse.gsms.items():
        meta = gsm.metadata
        row = {
            'title': meta.get('title', [''])[0],
            'source_name_ch1': meta.get('source_name_ch1', [''])[0],
        }
        row.update(_split_characteristics(meta.get('characteristics_ch1', [])))
        rows[gsm_name] = row
    metadata = pd.DataFrame.from_dict(rows, orient='index')
    metadata.index.name = 'sample'
    return metadata


@register_function(
    aliases=["读取GEO", "read_geo_series", "geo", "GEOparse", "load_geo"],
    category="utils",
    description="Load a GEO series (GSE) into an expression matrix and a sample metadata table using GEOparse",
    examples=[
        "expr, meta = onet.utils.read_geo_series('GSE48350', destdir='./data')",
        "expr, meta = onet.utils.read_geo_series(filepath='GSE48350_family.soft.gz')",
    ],
    related=["utils.read_table", "bulk.encode_trait"]
)
def read_geo_series(accession: Optional[str] = None, filepath: Optional[str] = None,
                    destdir: str = './data', value_column: str = 'VALUE') -> Tuple[pd.DataFrame, pd.DataFrame]:
    r"""Load a GEO series with GEOparse.

    Arguments:
        accession: GEO series accession, e.g. ``GSE48350``. Downloaded into ``destdir``.
        filepath: Local SOFT file; used instead of downloading when given.
        destdir: Download directory. ('./data')
        value_column: Column of each GSM table holding the expression value. ('VALUE')

    Returns:
        expression: Probes x samples matrix (non-numeric values become NaN).
        metadata: Samples x clinical fields table, in the same sample order.
    """
    import GEOparse

    if accession is None and filepath is None:
        raise ValueError("Either `accession` or `filepath` must be provided.")
    if filepath is not None:
        if not os.path.isfile(filepath):
            raise FileNotFoundError(f"No such GEO file: {filepath}")
        gse = GEOparse.get_GEO(filepath=filepath, silent=True)
    else:
        os.makedirs(destdir, exist_ok=True)
        gse = GEOparse.get_GEO(geo=accession, destdir=destdir, silent=True)

    print(f"......Loaded {gse.name}: {len(gse.gsms)} samples")
    expression = gse.pivot_samples(value_column)
    expression = expression.apply(pd.to_numeric, errors='coerce')
    sample_order = [name for name in gse.gsms.keys() if name in expression.columns]
    expression = expression[sample_order]
    expression.index = expression.index.astype(str)
    expression.columns.name = None

    metadata = geo_sample_metadata(gse).loc[sample_order]
    logger.info("GEO series %s: %d probes x %d samples", gse.name, *expression.shape)
    return expression, metadata


def data_downloader(url, path, title):
    r"""Fetch ``url`` into ``path`` unless the file is already there.

    Arguments:
        url: Remote location of the file.
        path: Local file to write.
        title: Label shown in the progress lines.

    Returns:
        path: ``path``, once the file exists.
    """
    target = Path(path)
    if target.is_file():
        print(f"......Using cached {title}: {target}")
        return path
    print(f"......Downloading {title} to {target}")
    target.parent.mkdir(parents=True, exist_ok=True)

    start = time.time()
    written = 0
    with requests.get(url, stream=True, timeout=60) as res:
        res.raise_for_status()
        total = int(res.headers.get("content-length", 0))
        if total:
            print('......[%s] %0.2f MB' % (title, total / 1024 / 1024))
        with target.open('wb') as handle:
            for chunk in res.iter_content(chunk_size=1024000):
                handle.write(chunk)
                written += len(chunk)
                if total:
                    done = written / total
                    print('\r......[Downloader]: %s%.2f%%' % ('>' * int(done * 50), done * 100), end='')
    print('\n......Finished in %.2f s' % (time.time() - start))
    return path


_geneid_pairs = {
    'pair_GRCm39': 'https://figshare.com/ndownloader/files/39820684',
    'pair_T2TCHM13': 'https://figshare.com/ndownloader/files/39820687',
    'pair_GRCh38': 'https://figshare.com/ndownloader/files/39820690',
    'pair_GRCh37': 'https://figshare.com/ndownloader/files/39820693',
    'pair_danRer11': 'https://figshare.com/ndownloader/files/39820696',
}


def download_geneid_annotation_pair(names: Optional[List[str]] = None, dir: str = 'genesets') -> List[str]:
    r"""Download gene ID -> symbol pair tables for ``bulk.Matrix_ID_mapping``.

    Arguments:
        names: Subset of pair tables to download (all when None), e.g. ``['pair_GRCh38']``.
        dir: Output directory. ('genesets')

    Returns:
        paths: Local paths of the downloaded tables.
    """
    names = list(_geneid_pairs.keys()) if names is None else names
    unknown = set(names) - set(_geneid_pairs)
    if unknown:
        raise KeyError(f"Unknown annotation pair(s): {sorted(unknown)}; choose from {list(_geneid_pairs)}")
    paths = []
    for name in names:
        print(f'......Fetching gene id pair table {name}')
        paths.append(data_downloader(url=_geneid_pairs[name], path=os.path.join(dir, f'{name}.tsv'), title=name))
    print(f'......{len(paths)} gene id pair table(s) ready')
    return paths


def write_table(data: pd.DataFrame, path, **kwargs) -> str:
    r"""Write a DataFrame, choosing the separator from the suffix. Parent directories are created."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data.to_csv(path, sep=kwargs.pop('sep', _infer_sep(path)), **kwargs)
    logger.debug("Wrote %s (%d rows)", path, len(data))
    return str(path)
