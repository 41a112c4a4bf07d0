#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
analysis.py
===========

Downstream analysis of the merged FSHD / Control myocyte dataset using
Scanpy and its ecosystem.

This module performs:
1. Quality control metrics and filtering (detected genes, mitochondrial content)
2. Normalization (log1p or Pearson residuals) and highly variable genes
3. Dimensionality reduction (PCA)
4. Batch-effect correction (Harmony, keyed by sample)
5. Neighbors, UMAP and Leiden clustering
6. Differential expression FSHD vs Control, cluster markers
7. Pathway enrichment (gseapy / Enrichr)
8. Reference-based cell type annotation (CellTypist)
9. Visualization and TSV summaries

Requirements:
    - scanpy, harmonypy, gseapy, celltypist
    - pandas, numpy, matplotlib, seaborn
"""

import os
import logging

import numpy as np
import pandas as pd
import scanpy as sc
import scanpy.external as sce
import anndata as ad
import gseapy as gp
import celltypist
from celltypist import models
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns

from fshdscope.errors import EmptySampleError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration and Defaults
# =============================================================================

DEFAULT_QC_PARAMS = {
    'min_genes': 200,
    'max_genes': 5000,
    'max_mito_pct': 20,
    'mito_prefix': 'MT-',
}

DEFAULT_PREPROCESSING_PARAMS = {
    'normalization': 'log1p',
    'target_sum': 1e4,
    'n_top_genes': 2000,
    'n_pcs': 30,
    'n_neighbors': 15,
    'leiden_resolution': 0.5,
}

DEFAULT_BATCH_PARAMS = {
    'enabled': True,
    'batch_key': 'sample_name',
    'max_iter': 20,
}

DEFAULT_DE_PARAMS = {
    'groupby': 'condition',
    'group': 'FSHD',
    'reference': 'Control',
    'method': 'wilcoxon',
    'pval_cutoff': 0.05,
    'logfc_cutoff': 0.25,
}

DEFAULT_ENRICHMENT_PARAMS = {
    'enabled': True,
    'gene_sets': ['KEGG_2021_Human', 'GO_Biological_Process_2023'],
    'organism': 'human',
    'cutoff': 0.05,
}

DEFAULT_ANNOTATION_PARAMS = {
    'method': 'leiden',
    'model': None,
    'majority_voting': True,
}

ENRICHMENT_COLUMNS = [
    'direction', 'Gene_set', 'Term', 'Overlap', 'P-value',
    'Adjusted P-value', 'Odds Ratio', 'Combined Score', 'Genes',
]


def _expression_layer(adata):
    """Log-normalized layer when present, otherwise X."""
    return 'lognorm' if 'lognorm' in adata.layers else None


# =============================================================================
# QC Functions
# =============================================================================

def calculate_qc_metrics(adata, mito_prefix='MT-'):
    """
    Calculate QC metrics for all cells.

    Parameters
    ----------
    adata : AnnData
        Merged raw-count AnnData with gene symbols as var_names
    mito_prefix : str
        Symbol prefix of mitochondrial genes (case-insensitive)

    Returns
    -------
    AnnData
        AnnData with n_genes_by_counts, total_counts and pct_counts_mt in obs
    """
    logger.info("Calculating QC metrics...")

    symbols = adata.var_names.str.upper()
    adata.var['mt'] = symbols.str.startswith(mito_prefix.upper())
    adata.var['ribo'] = symbols.str.startswith(('RPS', 'RPL'))

    sc.pp.calculate_qc_metrics(
        adata,
        qc_vars=['mt', 'ribo'],
        percent_top=None,
        log1p=False,
        inplace=True
    )

    logger.info(f"  Mitochondrial genes found: {int(adata.var['mt'].sum())}")
    logger.info(f"  Mean genes/cell: {adata.obs['n_genes_by_counts'].mean():.1f}")
    logger.info(f"  Mean counts/cell: {adata.obs['total_counts'].mean():.1f}")
    logger.info(f"  Mean % mito: {adata.obs['pct_counts_mt'].mean():.1f}%")

    return adata


def filter_cells_by_qc(adata, params):
    """
    Keep cells inside the detected-gene window and under the mito ceiling.

    Parameters
    ----------
    adata : AnnData
        AnnData with QC metrics
    params : dict
        QC parameters (config.yaml qc section)

    Returns
    -------
    AnnData
        Filtered copy
    """
    params = {**DEFAULT_QC_PARAMS, **(params or {})}
    min_genes = params['min_genes']
    max_genes = params['max_genes']
    max_mito_pct = params['max_mito_pct']

    logger.info("Filtering cells by QC thresholds...")
    logger.info(f"  Thresholds: min_genes={min_genes}, max_genes={max_genes}, max_mito={max_mito_pct}%")

    n_cells_before = adata.n_obs
    n_genes = adata.obs['n_genes_by_counts']
    keep = (
        (n_genes >= min_genes)
        & (n_genes <= max_genes)
        & (adata.obs['pct_counts_mt'] <= max_mito_pct)
    )
    adata = adata[keep.values, :].copy()

    if adata.n_obs == 0:
        raise EmptySampleError(
            f"QC filtering removed all {n_cells_before} cells "
            f"(min_genes={min_genes}, max_genes={max_genes}, max_mito_pct={max_mito_pct})"
        )

    # Genes only seen in removed cells
    sc.pp.filter_genes(adata, min_cells=1)

    logger.info(f"  Cells: {n_cells_before} -> {adata.n_obs} ({n_cells_before - adata.n_obs} removed)")
    for sample, n in adata.obs['sample_name'].value_counts(sort=False).items():
        logger.info(f"    {sample}: {n} cells")

    return adata


# =============================================================================
# Preprocessing Functions
# =============================================================================

def normalize_data(adata, params):
    """
    Normalize counts and select highly variable genes.

    Raw counts go to layers['counts'] and log-normalized values to
    layers['lognorm'] and .raw whichever method is used, so DE and
    annotation always see log-normalized expression.

    Parameters
    ----------
    adata : AnnData
        QC-filtered AnnData with raw counts in X
    params : dict
        Preprocessing parameters

    Returns
    -------
    AnnData
        Normalized AnnData with var['highly_variable']
    """
    params = {**DEFAULT_PREPROCESSING_PARAMS, **(params or {})}
    method = params['normalization']
    n_top_genes = min(params['n_top_genes'], adata.n_vars)

    logger.info(f"Normalizing data (method={method})...")

    adata.layers['counts'] = adata.X.copy()

    sc.pp.normalize_total(adata, target_sum=params['target_sum'])
    sc.pp.log1p(adata)
    adata.layers['lognorm'] = adata.X.copy()
    adata.raw = adata

    if method == 'pearson_residuals':
        adata.X = adata.layers['counts'].copy()
        logger.info(f"  Finding {n_top_genes} highly variable genes (Pearson residuals)...")
        sc.experimental.pp.highly_variable_genes(
            adata,
            flavor='pearson_residuals',
            n_top_genes=n_top_genes,
        )
        sc.experimental.pp.normalize_pearson_residuals(adata)
    else:
        batch_key = 'sample_name' if adata.obs['sample_name'].nunique() > 1 else None
        logger.info(f"  Finding {n_top_genes} highly variable genes (batch_key={batch_key})...")
        sc.pp.highly_variable_genes(
            adata,
            n_top_genes=n_top_genes,
            batch_key=batch_key,
        )

    adata.uns['normalization'] = method
    logger.info(f"  Found {int(adata.var['highly_variable'].sum())} highly variable genes")

    return adata


def reduce_dimensions(adata, params):
    """
    Scale the highly variable genes and run PCA.

    Parameters
    ----------
    adata : AnnData
        Normalized AnnData with var['highly_variable']
    params : dict
        Preprocessing parameters

    Returns
    -------
    AnnData
        AnnData with obsm['X_pca'] and varm['PCs']
    """
    params = {**DEFAULT_PREPROCESSING_PARAMS, **(params or {})}

    adata_hvg = adata[:, adata.var['highly_variable']].copy()

    # Pearson residuals are already centred and scaled
    if adata.uns.get('normalization') != 'pearson_residuals':
        logger.info("  Scaling...")
        sc.pp.scale(adata_hvg, max_value=10)

    n_pcs = min(params['n_pcs'], adata_hvg.n_vars - 1, adata_hvg.n_obs - 1)
    logger.info(f"  Running PCA ({n_pcs} components)...")
    sc.tl.pca(adata_hvg, n_comps=n_pcs)

    # Copy PCA results back to full adata
    adata.obsm['X_pca'] = adata_hvg.obsm['X_pca']
    adata.uns['pca'] = adata_hvg.uns['pca']
    adata.varm['PCs'] = np.zeros((adata.n_vars, n_pcs))
    adata.varm['PCs'][adata.var['highly_variable'].values, :] = adata_hvg.varm['PCs']

    return adata


def correct_batch_effects(adata, params):
    """
    Harmony integration on the PCA embedding.

    Parameters
    ----------
    adata : AnnData
        AnnData with obsm['X_pca']
    params : dict
        Batch correction parameters

    Returns
    -------
    str
        obsm key to build the neighbor graph on
    """
    params = {**DEFAULT_BATCH_PARAMS, **(params or {})}
    batch_key = params['batch_key']

    if not params['enabled']:
        logger.info("Batch correction disabled, using X_pca")
        return 'X_pca'

    if batch_key not in adata.obs.columns:
        raise ValueError(f"Batch key '{batch_key}' not found in obs columns {list(adata.obs.columns)}")

    n_batches = adata.obs[batch_key].nunique()
    if n_batches < 2:
        logger.info(f"Only one batch in '{batch_key}', skipping Harmony")
        return 'X_pca'

    logger.info(f"Running Harmony on {n_batches} batches (key={batch_key})...")
    sce.pp.harmony_integrate(
        adata,
        key=batch_key,
        basis='X_pca',
        adjusted_basis='X_pca_harmony',
        max_iter_harmony=params['max_iter'],
    )

    return 'X_pca_harmony'


def cluster_cells(adata, params, use_rep='X_pca'):
    """
    Neighbor graph, UMAP and Leiden clustering.

    Parameters
    ----------
    adata : AnnData
        AnnData with the representation in obsm[use_rep]
    params : dict
        Preprocessing parameters
    use_rep : str
        Representation for the neighbor graph

    Returns
    -------
    AnnData
        AnnData with obs['leiden'] and obsm['X_umap']
    """
    params = {**DEFAULT_PREPROCESSING_PARAMS, **(params or {})}
    n_neighbors = min(params['n_neighbors'], adata.n_obs - 1)

    logger.info(f"  Computing neighbors (k={n_neighbors}, use_rep={use_rep})...")
    sc.pp.neighbors(adata, n_neighbors=n_neighbors, use_rep=use_rep)

    logger.info("  Computing UMAP...")
    sc.tl.umap(adata)

    logger.info(f"  Clustering (resolution={params['leiden_resolution']})...")
    sc.tl.leiden(
        adata,
        resolution=params['leiden_resolution'],
        flavor='igraph',
        n_iterations=2,
        directed=False,
    )

    n_clusters = adata.obs['leiden'].nunique()
    logger.info(f"  Found {n_clusters} clusters")

    return adata


# =============================================================================
# Differential Expression and Enrichment
# =============================================================================

def differential_expression(adata, params):
    """
    Group-vs-reference differential expression (FSHD vs Control by default).

    Parameters
    ----------
    adata : AnnData
        Normalized AnnData
    params : dict
        Differential expression parameters

    Returns
    -------
    pd.DataFrame
        gene, logfoldchange, pvals, pvals_adj, scores, significant
    """
    params = {**DEFAULT_DE_PARAMS, **(params or {})}
    groupby = params['groupby']
    group = params['group']
    reference = params['reference']

    sizes = adata.obs[groupby].value_counts()
    for label in (group, reference):
        if sizes.get(label, 0) == 0:
            raise ValueError(
                f"No cells with {groupby} == '{label}' "
                f"(groups present: {dict(sizes)})"
            )

    logger.info(f"Differential expression: {group} ({sizes[group]} cells) vs "
                f"{reference} ({sizes[reference]} cells), method={params['method']}...")

    if not isinstance(adata.obs[groupby].dtype, pd.CategoricalDtype):
        adata.obs[groupby] = adata.obs[groupby].astype('category')

    key = f'rank_genes_{groupby}'
    sc.tl.rank_genes_groups(
        adata,
        groupby=groupby,
        groups=[group],
        reference=reference,
        method=params['method'],
        corr_method='benjamini-hochberg',
        use_raw=False,
        layer=_expression_layer(adata),
        key_added=key,
    )

    table = sc.get.rank_genes_groups_df(adata, group=group, key=key)
    table = table.rename(columns={'names': 'gene', 'logfoldchanges': 'logfoldchange'})
    table = table[['gene', 'logfoldchange', 'pvals', 'pvals_adj', 'scores']]
    table = table.replace([np.inf, -np.inf], np.nan).dropna().reset_index(drop=True)

    table['significant'] = (
        (table['pvals_adj'] < params['pval_cutoff'])
        & (table['logfoldchange'].abs() >= params['logfc_cutoff'])
    )

    n_up = int((table['significant'] & (table['logfoldchange'] > 0)).sum())
    n_down = int((table['significant'] & (table['logfoldchange'] < 0)).sum())
    logger.info(f"  Significant genes: {n_up} up, {n_down} down in {group}")

    return table


def find_cluster_markers(adata, method='wilcoxon', groupby='leiden'):
    """
    One-vs-rest marker genes for every cluster.

    Returns
    -------
    pd.DataFrame
        group, gene, scores, logfoldchange, pvals, pvals_adj
    """
    if adata.obs[groupby].nunique() < 2:
        logger.warning(f"Only one '{groupby}' group, skipping marker detection")
        return pd.DataFrame(columns=['group', 'gene', 'scores', 'logfoldchange', 'pvals', 'pvals_adj'])

    logger.info(f"Finding marker genes per {groupby} cluster...")
    key = f'rank_genes_{groupby}'
    sc.tl.rank_genes_groups(
        adata,
        groupby=groupby,
        method=method,
        corr_method='benjamini-hochberg',
        use_raw=False,
        layer=_expression_layer(adata),
        key_added=key,
    )

    markers = sc.get.rank_genes_groups_df(adata, group=None, key=key)
    markers = markers.rename(columns={'names': 'gene', 'logfoldchanges': 'logfoldchange'})
    return markers


def run_enrichment(de_table, params):
    """
    Enrichr over-representation on up- and down-regulated genes.

    Parameters
    ----------
    de_table : pd.DataFrame
        Output of differential_expression
    params : dict
        Enrichment parameters; gene_sets may mix Enrichr library names and
        local .gmt files

    Returns
    -------
    pd.DataFrame
        gseapy results with a 'direction' column; empty when no gene list
        had significant genes
    """
    params = {**DEFAULT_ENRICHMENT_PARAMS, **(params or {})}
    significant = de_table[de_table['significant']]
    gene_lists = {
        'up': significant.loc[significant['logfoldchange'] > 0, 'gene'].tolist(),
        'down': significant.loc[significant['logfoldchange'] < 0, 'gene'].tolist(),
    }

    results = []
    for direction, genes in gene_lists.items():
        if not genes:
            logger.warning(f"No significant {direction}-regulated genes, skipping enrichment")
            continue

        logger.info(f"Running enrichment on {len(genes)} {direction}-regulated genes "
                    f"({', '.join(params['gene_sets'])})...")
        enr = gp.enrichr(
            gene_list=genes,
            gene_sets=list(params['gene_sets']),
            organism=params['organism'],
            outdir=None,
            cutoff=params['cutoff'],
        )
        if enr is None or enr.results is None or len(enr.results) == 0:
            logger.info(f"  No enrichment terms returned for {direction}-regulated genes")
            continue

        res = enr.results.copy()
        res.insert(0, 'direction', direction)
        n_sig = int((res['Adjusted P-value'] < params['cutoff']).sum())
        logger.info(f"  {direction}: {len(res)} terms tested, {n_sig} with adj. p < {params['cutoff']}")
        results.append(res)

    if not results:
        return pd.DataFrame(columns=ENRICHMENT_COLUMNS)

    return pd.concat(results, ignore_index=True).sort_values('Adjusted P-value').reset_index(drop=True)


# =============================================================================
# Annotation Functions
# =============================================================================

def annotate_with_celltypist(adata, model_name, majority_voting=True):
    """
    Reference-based label transfer with CellTypist.

    Parameters
    ----------
    adata : AnnData
        Normalized AnnData (log1p, target_sum 1e4 in layers['lognorm'])
    model_name : str
        CellTypist model name or path to a .pkl model
    majority_voting : bool
        Refine labels by majority vote within Leiden clusters

    Returns
    -------
    AnnData
        AnnData with obs['celltypist_prediction'] and obs['celltypist_conf_score']
    """
    logger.info(f"Running CellTypist annotation with model: {model_name}")

    if not os.path.isfile(model_name):
        models.download_models(model=model_name)
    model = models.Model.load(model=model_name)

    expr = adata.layers['lognorm'] if 'lognorm' in adata.layers else adata.X
    adata_ct = ad.AnnData(X=expr.copy(), obs=adata.obs[[]].copy(), var=adata.var[[]].copy())

    over_clustering = adata.obs['leiden'].astype(str).values if 'leiden' in adata.obs.columns else None
    predictions = celltypist.annotate(
        adata_ct,
        model=model,
        majority_voting=majority_voting and over_clustering is not None,
        over_clustering=over_clustering,
    )

    labels = predictions.predicted_labels
    column = 'majority_voting' if 'majority_voting' in labels.columns else 'predicted_labels'
    adata.obs['celltypist_prediction'] = labels[column].astype(str).values
    adata.obs['celltypist_conf_score'] = predictions.probability_matrix.max(axis=1).values

    return adata


def annotate_cells(adata, params):
    """
    Annotate cells using the configured method.

    Parameters
    ----------
    adata : AnnData
        Clustered AnnData
    params : dict
        Annotation parameters from config

    Returns
    -------
    AnnData
        Annotated AnnData with obs['final_annotation']
    """
    params = {**DEFAULT_ANNOTATION_PARAMS, **(params or {})}
    method = params['method']

    if method == 'celltypist':
        if not params['model']:
            raise ValueError("CellTypist annotation needs a model name or .pkl path")
        adata = annotate_with_celltypist(
            adata,
            model_name=params['model'],
            majority_voting=params['majority_voting'],
        )
        adata.obs['final_annotation'] = adata.obs['celltypist_prediction']
    elif method == 'leiden':
        logger.info("Using Leiden clusters as cell annotations")
        adata.obs['final_annotation'] = 'Cluster_' + adata.obs['leiden'].astype(str)
    else:
        raise ValueError(f"Unknown annotation method '{method}'")

    adata.obs['final_annotation'] = adata.obs['final_annotation'].astype('category')

    annotation_counts = adata.obs['final_annotation'].value_counts()
    logger.info("  Cell type distribution:")
    for ct, count in annotation_counts.head(10).items():
        logger.info(f"    {ct}: {count} ({100*count/adata.n_obs:.1f}%)")

    return adata


# =============================================================================
# Visualization Functions
# =============================================================================

def _save_figure(output_dir, name):
    plt.savefig(os.path.join(output_dir, f'{name}.pdf'), bbox_inches='tight')
    plt.savefig(os.path.join(output_dir, f'{name}.png'), dpi=150, bbox_inches='tight')
    plt.close()


def generate_qc_plots(adata, output_dir, prefix=''):
    """
    Generate QC violin and scatter plots per sample.

    Parameters
    ----------
    adata : AnnData
        AnnData with QC metrics
    output_dir : str
        Directory to save plots
    prefix : str
        Prefix for output files (e.g., 'pre_filter_' or 'post_filter_')
    """
    os.makedirs(output_dir, exist_ok=True)
    logger.info(f"Generating QC plots in {output_dir}...")

    fig, axes = plt.subplots(1, 3, figsize=(15, 5))

    sc.pl.violin(adata, 'n_genes_by_counts', groupby='sample_name', ax=axes[0], show=False)
    axes[0].set_title('Genes per Cell')
    axes[0].tick_params(axis='x', rotation=90)

    sc.pl.violin(adata, 'total_counts', groupby='sample_name', ax=axes[1], show=False)
    axes[1].set_title('UMI Counts per Cell')
    axes[1].tick_params(axis='x', rotation=90)

    sc.pl.violin(adata, 'pct_counts_mt', groupby='sample_name', ax=axes[2], show=False)
    axes[2].set_title('% Mitochondrial')
    axes[2].tick_params(axis='x', rotation=90)

    plt.tight_layout()
    _save_figure(output_dir, f'{prefix}qc_violin_plots')

    fig, ax = plt.subplots(figsize=(6, 5))
    sc.pl.scatter(adata, x='total_counts', y='n_genes_by_counts', color='pct_counts_mt',
                  ax=ax, show=False)
    ax.set_title('Counts vs Genes (colored by % mito)')
    plt.tight_layout()
    _save_figure(output_dir, f'{prefix}qc_scatter_plot')


def generate_cluster_plots(adata, output_dir):
    """
    UMAPs by sample, condition, cluster and annotation, plus per-sample
    cell type proportions.
    """
    os.makedirs(output_dir, exist_ok=True)
    logger.info(f"Generating embedding plots in {output_dir}...")

    for color, title in (
        ('sample_name', 'Samples'),
        ('condition', 'Condition'),
        ('leiden', 'Leiden Clusters'),
        ('final_annotation', 'Cell Type Annotations'),
    ):
        if color not in adata.obs.columns:
            continue
        on_data = color in ('leiden', 'final_annotation')
        fig, ax = plt.subplots(figsize=(10, 8))
        sc.pl.umap(
            adata,
            color=color,
            legend_loc='on data' if on_data else 'right margin',
            legend_fontsize=8,
            legend_fontoutline=2,
            frameon=False,
            title=title,
            ax=ax,
            show=False
        )
        _save_figure(output_dir, f'umap_{color}')

    if 'final_annotation' in adata.obs.columns:
        ct_props = pd.crosstab(
            adata.obs['sample_name'],
            adata.obs['final_annotation'],
            normalize='index'
        ) * 100

        fig, ax = plt.subplots(figsize=(12, 6))
        ct_props.plot(kind='bar', stacked=True, ax=ax, colormap='tab20')
        ax.set_ylabel('Percentage')
        ax.set_xlabel('Sample')
        ax.legend(title='Cell Type', bbox_to_anchor=(1.05, 1), loc='upper left')
        plt.xticks(rotation=45, ha='right')
        plt.tight_layout()
        _save_figure(output_dir, 'cell_type_proportions')


def generate_de_plots(de_table, output_dir, params):
    """Volcano plot of the condition DE table."""
    params = {**DEFAULT_DE_PARAMS, **(params or {})}
    os.makedirs(output_dir, exist_ok=True)

    plot_df = de_table.copy()
    plot_df['neg_log10_padj'] = -np.log10(plot_df['pvals_adj'].clip(lower=1e-300))
    plot_df['direction'] = np.where(
        ~plot_df['significant'], 'n.s.',
        np.where(plot_df['logfoldchange'] > 0, 'up', 'down')
    )

    fig, ax = plt.subplots(figsize=(8, 7))
    sns.scatterplot(
        data=plot_df,
        x='logfoldchange',
        y='neg_log10_padj',
        hue='direction',
        palette={'up': '#c0392b', 'down': '#2874a6', 'n.s.': '#b3b3b3'},
        s=10,
        linewidth=0,
        ax=ax,
    )
    for _, row in plot_df[plot_df['significant']].nlargest(15, 'neg_log10_padj').iterrows():
        ax.annotate(row['gene'], (row['logfoldchange'], row['neg_log10_padj']), fontsize=7)
    ax.axhline(-np.log10(params['pval_cutoff']), color='grey', linestyle='--', linewidth=0.8)
    ax.set_xlabel(f"log2 fold change ({params['group']} vs {params['reference']})")
    ax.set_ylabel('-log10 adjusted p-value')
    ax.set_title(f"{params['group']} vs {params['reference']}")
    plt.tight_layout()
    _save_figure(output_dir, f"volcano_{params['group']}_vs_{params['reference']}")


# =============================================================================
# Exports
# =============================================================================

def export_qc_metrics(adata, output_path):
    """
    Export per-sample QC metrics summary to TSV.
    """
    os.makedirs(os.path.dirname(output_path), exist_ok=True)
    logger.info(f"Exporting QC metrics to {output_path}")

    qc_summary = adata.obs.groupby('sample_name', observed=True).agg({
        'n_genes_by_counts': ['count', 'mean', 'median', 'std'],
        'total_counts': ['mean', 'median', 'std'],
        'pct_counts_mt': ['mean', 'median', 'std'],
    })

    qc_summary.columns = ['_'.join(col).strip() for col in qc_summary.columns.values]
    qc_summary = qc_summary.rename(columns={'n_genes_by_counts_count': 'n_cells'})

    qc_summary.to_csv(output_path, sep='\t')
    return qc_summary


def export_annotation_summary(adata, output_path):
    """
    Export cell type counts per sample to TSV.
    """
    os.makedirs(os.path.dirname(output_path), exist_ok=True)
    logger.info(f"Exporting annotation summary to {output_path}")

    summary = pd.crosstab(adata.obs['sample_name'], adata.obs['final_annotation'])
    summary['total_cells'] = summary.sum(axis=1)

    summary.to_csv(output_path, sep='\t')
    return summary


def export_table(table, output_path):
    os.makedirs(os.path.dirname(output_path), exist_ok=True)
    logger.info(f"Writing {len(table)} rows to {output_path}")
    table.to_csv(output_path, sep='\t', index=False)
