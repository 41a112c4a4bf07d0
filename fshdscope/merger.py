#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
merger.py
=========

Combine per-sample AnnData containers into one dataset.

- Genes: union of accessions across samples; a gene missing from a sample
  is zero for all of that sample's cells. Display labels are de-duplicated
  once over the union
- Cells: kept in input order, block by block; if any cell identifier is
  shared between samples, every cell is renamed '<sample_name>_<barcode>'
- Metadata: sample_name and condition carried into one obs table
"""

import logging
from collections import Counter

import anndata as ad
import pandas as pd

from fshdscope.errors import DuplicateCellError, DuplicateSampleError, InsufficientInputError
from fshdscope.gene_mapper import make_unique_symbols

logger = logging.getLogger(__name__)


def _sample_name(adata):
    if 'sample_name' in adata.uns:
        return str(adata.uns['sample_name'])
    return str(adata.obs['sample_name'].iloc[0])


def _gene_index(adata):
    if 'gene_ids' in adata.var.columns:
        return adata.var['gene_ids'].astype(str).tolist()
    return adata.var_names.tolist()


def merge_samples(adatas):
    """
    Merge sample containers on the union of their genes.

    Genes are matched on their accession (var['gene_ids']), not on the
    per-sample display label. Display labels are rebuilt once over the
    union, in accession order, so the same gene gets the same label
    whatever the input order.

    Parameters
    ----------
    adatas : sequence of AnnData
        Containers produced by load_sample, in the desired cell order

    Returns
    -------
    AnnData
        New object; inputs are left untouched

    Raises
    ------
    InsufficientInputError
        If fewer than two containers are given
    DuplicateSampleError
        If two containers carry the same sample_name
    DuplicateCellError
        If sample-prefixed cell identifiers still collide
    """
    adatas = list(adatas)
    if len(adatas) < 2:
        raise InsufficientInputError(
            f"Merging needs at least 2 sample containers, got {len(adatas)}"
        )

    names = [_sample_name(a) for a in adatas]
    repeated = [name for name, n in Counter(names).items() if n > 1]
    if repeated:
        raise DuplicateSampleError(f"Duplicate sample names: {repeated}")

    logger.info(f"Merging {len(adatas)} samples: {', '.join(names)}")

    barcode_counts = Counter(bc for a in adatas for bc in a.obs_names)
    n_shared = sum(1 for n in barcode_counts.values() if n > 1)

    parts = []
    for name, adata in zip(names, adatas):
        part = adata.copy()
        if 'original_barcode' not in part.obs.columns:
            part.obs['original_barcode'] = part.obs_names.tolist()
        if n_shared:
            part.obs_names = [f"{name}_{bc}" for bc in part.obs['original_barcode']]
        part.var_names = _gene_index(part)
        parts.append(part)

    if n_shared:
        logger.info(f"  {n_shared} cell identifiers occur in more than one sample, "
                    f"prefixing all cells with their sample name")

    cell_counts = Counter(cell for part in parts for cell in part.obs_names)
    collisions = sorted(cell for cell, n in cell_counts.items() if n > 1)
    if collisions:
        raise DuplicateCellError(
            f"{len(collisions)} cell identifiers are not unique after prefixing with "
            f"sample names (e.g. {collisions[:3]}); rename the samples or barcodes"
        )

    merged = ad.concat(
        parts,
        axis=0,
        join='outer',
        fill_value=0,
    )

    # First non-missing symbol per accession across samples
    gene_info = pd.concat([part.var for part in parts], axis=0)
    if 'gene_symbol' in gene_info.columns:
        symbols = gene_info['gene_symbol'].dropna().astype(str)
        symbols = symbols[~symbols.index.duplicated(keep='first')]
    else:
        symbols = pd.Series(dtype=str)

    accessions = merged.var_names.tolist()
    base_symbols = {acc: symbols.get(acc, acc) for acc in sorted(accessions)}
    labels = make_unique_symbols(base_symbols)

    merged.var = pd.DataFrame(
        {
            'gene_ids': accessions,
            'gene_symbol': [base_symbols[acc] for acc in accessions],
        },
        index=pd.Index(accessions, name=None),
    )
    merged.var_names = [labels[acc] for acc in accessions]

    for col in ('sample_name', 'condition'):
        merged.obs[col] = merged.obs[col].astype(str).astype('category')

    n_genes_in = [a.n_vars for a in adatas]
    logger.info(f"  Merged: {merged.n_obs} cells, {merged.n_vars} genes "
                f"(per-sample genes: {n_genes_in})")

    return merged
