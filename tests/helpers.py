"""Helpers for writing count matrices and building sample containers."""

import gzip

import numpy as np
import pandas as pd
import anndata as ad
from scipy import sparse


def write_counts(path, counts, gene_label='gene_id', compress=False):
    """
    Write a genes x cells DataFrame as a tab-separated count matrix.

    gene_label=None writes the short header form (no label for the gene
    column).
    """
    header = list(counts.columns) if gene_label is None else [gene_label] + list(counts.columns)
    lines = ['\t'.join(header)]
    for gene, row in counts.iterrows():
        lines.append('\t'.join([str(gene)] + [str(v) for v in row.tolist()]))
    text = '\n'.join(lines) + '\n'

    opener = gzip.open if compress else open
    with opener(path, 'wt') as f:
        f.write(text)
    return str(path)


def write_text(path, text):
    with open(path, 'w') as f:
        f.write(text)
    return str(path)


def make_sample(name, genes, barcodes, matrix, condition=None):
    """Build a container shaped like load_sample output (cells x genes)."""
    matrix = np.asarray(matrix, dtype=np.float32)
    adata = ad.AnnData(
        X=sparse.csr_matrix(matrix),
        obs=pd.DataFrame(index=list(barcodes)),
        var=pd.DataFrame(
            {'gene_ids': [f'ENSG_{g}' for g in genes], 'gene_symbol': list(genes)},
            index=list(genes),
        ),
    )
    adata.obs['sample_name'] = name
    adata.obs['condition'] = condition or ('FSHD' if 'FSHD' in name else 'Control')
    adata.obs['original_barcode'] = list(barcodes)
    adata.uns['sample_name'] = name
    return adata
