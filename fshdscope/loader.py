#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
loader.py
=========

Load one sample's raw count matrix into an AnnData container.

Input format: tab-separated text (optionally .gz), one header row of cell
identifiers, first column of gene accessions, integer UMI counts. The
header may either carry a label for the gene column or be one field
shorter than the data rows.

Per sample this:
1. Parses and validates the matrix
2. Rewrites gene accessions to unique symbols (GeneIdentifierMapper)
3. Drops cells with < min_genes detected genes, then genes detected in
   < min_cells cells (both inclusive, Seurat order)
4. Attaches sample_name / condition metadata
"""

import os
import logging

import numpy as np
import pandas as pd
import scanpy as sc
import anndata as ad
from scipy import sparse

from fshdscope.errors import EmptySampleError, NotFoundError, ParseError
from fshdscope.gene_mapper import make_unique_symbols

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration and Defaults
# =============================================================================

DEFAULT_LOADING_PARAMS = {
    'min_cells': 3,      # genes detected in fewer cells are dropped
    'min_genes': 200,    # cells with fewer detected genes are dropped
}

DISEASE_LABEL = 'FSHD'
CONTROL_LABEL = 'Control'


def derive_condition(sample_name):
    """
    Condition label from the sample naming convention.

    >>> derive_condition('FSHD1_1')
    'FSHD'
    >>> derive_condition('Control_2')
    'Control'
    """
    return DISEASE_LABEL if DISEASE_LABEL in sample_name else CONTROL_LABEL


# =============================================================================
# Parsing
# =============================================================================

def read_count_matrix(path):
    """
    Read a genes x cells count table.

    Parameters
    ----------
    path : str or Path
        Tab-separated count matrix, plain or gzip-compressed

    Returns
    -------
    pd.DataFrame
        int64 counts, gene accessions as index, cell identifiers as columns

    Raises
    ------
    NotFoundError
        If the file does not exist
    ParseError
        If the file is empty, ragged, or holds non-count values
    """
    path = str(path)
    if not os.path.exists(path):
        raise NotFoundError(f"Count matrix not found: {path}")

    try:
        raw = pd.read_csv(path, sep='\t', index_col=0, dtype=str, compression='infer')
    except pd.errors.EmptyDataError as e:
        raise ParseError(f"{path}: file is empty") from e
    except pd.errors.ParserError as e:
        raise ParseError(f"{path}: inconsistent number of fields ({e})") from e
    except (UnicodeDecodeError, OSError) as e:
        raise ParseError(f"{path}: could not be read as tab-separated text ({e})") from e

    if raw.shape[0] == 0 or raw.shape[1] == 0:
        raise ParseError(
            f"{path}: expected at least one gene row and one cell column, "
            f"got {raw.shape[0]} x {raw.shape[1]}"
        )
    if raw.index.isna().any():
        raise ParseError(f"{path}: empty gene identifier in first column")

    try:
        counts = raw.apply(pd.to_numeric)
    except (ValueError, TypeError) as e:
        raise ParseError(f"{path}: non-numeric count value ({e})") from e

    missing = counts.isna()
    if missing.any().any():
        gene = missing.any(axis=1).idxmax()
        raise ParseError(
            f"{path}: missing values in row '{gene}' "
            f"(row has fewer fields than the header)"
        )

    values = counts.to_numpy(dtype=np.float64)
    if (values < 0).any():
        raise ParseError(f"{path}: negative count values")
    if not np.all(np.mod(values, 1) == 0):
        raise ParseError(f"{path}: non-integer count values")

    counts = counts.astype(np.int64)
    counts.index = counts.index.astype(str)
    counts.columns = counts.columns.astype(str)
    return counts


# =============================================================================
# Loading
# =============================================================================

def load_sample(path, sample_name, mapper=None,
                min_cells=DEFAULT_LOADING_PARAMS['min_cells'],
                min_genes=DEFAULT_LOADING_PARAMS['min_genes']):
    """
    Load one sample into a filtered, annotated AnnData.

    Parameters
    ----------
    path : str or Path
        Count matrix file
    sample_name : str
        Human-assigned sample name, e.g. 'FSHD1_1' or 'Control_2'
    mapper : GeneIdentifierMapper, optional
        Rewrites accessions to symbols; accessions are kept when None
    min_cells : int
        Minimum number of cells a gene must be detected in
    min_genes : int
        Minimum number of detected genes per cell

    Returns
    -------
    AnnData
        cells x genes, sparse float32 counts; obs has sample_name,
        condition and original_barcode; var has gene_ids (accession) and
        gene_symbol (resolved symbol before de-duplication)

    Raises
    ------
    EmptySampleError
        If filtering leaves no cells or no genes
    """
    logger.info(f"  Loading {sample_name} from {path}...")
    counts = read_count_matrix(path)

    if counts.index.has_duplicates:
        n_dup = int(counts.index.duplicated().sum())
        logger.warning(f"  {sample_name}: {n_dup} repeated gene accessions, summing their counts")
        counts = counts.groupby(level=0, sort=False).sum()

    accessions = counts.index.tolist()
    if mapper is not None:
        base_symbols = mapper.resolve(accessions)
    else:
        base_symbols = {acc: acc for acc in accessions}
    labels = make_unique_symbols(base_symbols)
    var_names = [labels[acc] for acc in accessions]

    adata = ad.AnnData(
        X=sparse.csr_matrix(counts.to_numpy(dtype=np.float32).T),
        obs=pd.DataFrame(index=pd.Index(counts.columns, name=None)),
        var=pd.DataFrame(
            {'gene_ids': accessions, 'gene_symbol': [base_symbols[acc] for acc in accessions]},
            index=pd.Index(var_names, name=None),
        ),
    )

    n_cells_before = adata.n_obs
    n_genes_before = adata.n_vars

    sc.pp.filter_cells(adata, min_genes=min_genes)
    if adata.n_obs == 0:
        raise EmptySampleError(
            f"{sample_name}: no cells with >= {min_genes} detected genes "
            f"(of {n_cells_before} cells)"
        )

    sc.pp.filter_genes(adata, min_cells=min_cells)
    if adata.n_vars == 0:
        raise EmptySampleError(
            f"{sample_name}: no genes detected in >= {min_cells} cells "
            f"(of {n_genes_before} genes)"
        )

    adata.obs['sample_name'] = sample_name
    adata.obs['condition'] = derive_condition(sample_name)
    adata.obs['original_barcode'] = adata.obs_names.tolist()
    adata.uns['sample_name'] = sample_name

    logger.info(f"    {sample_name} ({adata.obs['condition'].iloc[0]}): "
                f"cells {n_cells_before} -> {adata.n_obs}, "
                f"genes {n_genes_before} -> {adata.n_vars}")

    return adata


def load_samples(samples, mapper=None,
                 min_cells=DEFAULT_LOADING_PARAMS['min_cells'],
                 min_genes=DEFAULT_LOADING_PARAMS['min_genes']):
    """
    Load samples one at a time, in the given order.

    Parameters
    ----------
    samples : list of dict
        Each entry has 'name' and 'path'

    Returns
    -------
    list of AnnData
    """
    logger.info(f"Loading {len(samples)} samples...")
    return [
        load_sample(
            sample['path'],
            sample['name'],
            mapper=mapper,
            min_cells=min_cells,
            min_genes=min_genes,
        )
        for sample in samples
    ]
