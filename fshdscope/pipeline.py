#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
pipeline.py
===========

Top-to-bottom FSHD vs Control scRNA-seq analysis.

Steps:
1. Load every sample (gene symbol mapping + minimal filters)
2. Merge samples on the union of genes
3. QC metrics and filtering
4. Normalization, HVGs, PCA
5. Harmony batch correction, neighbors, UMAP, Leiden
6. Differential expression (condition) and cluster markers
7. Pathway enrichment
8. Cell type annotation
9. Figures, tables, final h5ad and summary

The run is strictly sequential. Loading, mapping and merge errors are
fatal and propagate to the caller.
"""

import os
import logging

from fshdscope.config import configure_environment
from fshdscope.gene_mapper import GeneIdentifierMapper, build_annotation_source
from fshdscope.loader import load_samples
from fshdscope.merger import merge_samples
from fshdscope import analysis
from fshdscope.summary import generate_summary

logger = logging.getLogger(__name__)


def output_paths(output_dir, de_params):
    """File layout of a run."""
    de_name = f"de_{de_params['group']}_vs_{de_params['reference']}.tsv"
    return {
        'adata_merged': os.path.join(output_dir, 'merged', 'adata_merged.h5ad'),
        'qc_metrics': os.path.join(output_dir, 'qc', 'qc_metrics.tsv'),
        'de_table': os.path.join(output_dir, 'de', de_name),
        'cluster_markers': os.path.join(output_dir, 'de', 'cluster_markers.tsv'),
        'enrichment': os.path.join(output_dir, 'enrichment', 'enrichment.tsv'),
        'annotation_summary': os.path.join(output_dir, 'annotation', 'annotation_summary.tsv'),
        'figures': os.path.join(output_dir, 'figures'),
        'adata_final': os.path.join(output_dir, 'adata_final.h5ad'),
        'summary': os.path.join(output_dir, 'summary.yaml'),
    }


def run_pipeline(config):
    """
    Run the complete analysis described by a validated config.

    Parameters
    ----------
    config : dict
        Merged, validated configuration (see fshdscope.config)

    Returns
    -------
    AnnData
        Final annotated AnnData object
    """
    output_dir = config['output_dir']
    paths = output_paths(output_dir, config['differential_expression'])
    figures_dir = paths['figures']
    os.makedirs(figures_dir, exist_ok=True)

    results = {}

    logger.info("=" * 60)
    logger.info("Starting FSHDscope Pipeline")
    logger.info("=" * 60)
    logger.info(f"Samples: {len(config['samples'])}")
    logger.info(f"Output: {output_dir}")

    configure_environment(config['settings'])

    # Step 1: Load samples
    logger.info("\n[Step 1/8] Loading samples...")
    source = build_annotation_source(config['gene_mapping'])
    mapper = GeneIdentifierMapper(source) if source is not None else None
    if mapper is None:
        logger.info("  Gene symbol mapping disabled, keeping accessions as gene names")
    adatas = load_samples(
        config['samples'],
        mapper=mapper,
        min_cells=config['loading']['min_cells'],
        min_genes=config['loading']['min_genes'],
    )
    results['loading'] = {
        'cells_per_sample': {a.uns['sample_name']: a.n_obs for a in adatas},
        'genes_per_sample': {a.uns['sample_name']: a.n_vars for a in adatas},
    }

    # Step 2: Merge
    logger.info("\n[Step 2/8] Merging samples...")
    adata = merge_samples(adatas)
    del adatas
    os.makedirs(os.path.dirname(paths['adata_merged']), exist_ok=True)
    adata.write(paths['adata_merged'])
    results['merge'] = {'n_cells': adata.n_obs, 'n_genes': adata.n_vars}

    # Step 3: QC
    logger.info("\n[Step 3/8] Quality control...")
    adata = analysis.calculate_qc_metrics(adata, mito_prefix=config['qc']['mito_prefix'])
    analysis.generate_qc_plots(adata, figures_dir, prefix='pre_filter_')
    adata = analysis.filter_cells_by_qc(adata, config['qc'])
    analysis.generate_qc_plots(adata, figures_dir, prefix='post_filter_')
    analysis.export_qc_metrics(adata, paths['qc_metrics'])
    results['qc'] = {'n_cells': adata.n_obs, 'n_genes': adata.n_vars}

    # Step 4: Normalization and PCA
    logger.info("\n[Step 4/8] Normalization and dimensionality reduction...")
    adata = analysis.normalize_data(adata, config['preprocessing'])
    adata = analysis.reduce_dimensions(adata, config['preprocessing'])

    # Step 5: Batch correction and clustering
    logger.info("\n[Step 5/8] Batch correction and clustering...")
    use_rep = analysis.correct_batch_effects(adata, config['batch_correction'])
    adata = analysis.cluster_cells(adata, config['preprocessing'], use_rep=use_rep)
    results['clustering'] = {
        'representation': use_rep,
        'n_clusters': adata.obs['leiden'].nunique(),
    }

    # Step 6: Differential expression
    logger.info("\n[Step 6/8] Differential expression...")
    de_table = analysis.differential_expression(adata, config['differential_expression'])
    analysis.export_table(de_table, paths['de_table'])
    analysis.generate_de_plots(de_table, figures_dir, config['differential_expression'])
    markers = analysis.find_cluster_markers(adata, method=config['differential_expression']['method'])
    analysis.export_table(markers, paths['cluster_markers'])
    results['differential_expression'] = {
        'n_genes_tested': len(de_table),
        'n_significant': int(de_table['significant'].sum()),
        'n_up': int((de_table['significant'] & (de_table['logfoldchange'] > 0)).sum()),
        'n_down': int((de_table['significant'] & (de_table['logfoldchange'] < 0)).sum()),
    }

    # Step 7: Enrichment
    if config['enrichment']['enabled']:
        logger.info("\n[Step 7/8] Pathway enrichment...")
        enrichment = analysis.run_enrichment(de_table, config['enrichment'])
        analysis.export_table(enrichment, paths['enrichment'])
        results['enrichment'] = {
            'n_terms': len(enrichment),
            'n_significant_terms': int((enrichment['Adjusted P-value'] < config['enrichment']['cutoff']).sum()),
        }
    else:
        logger.info("\n[Step 7/8] Skipping pathway enrichment...")
        paths['enrichment'] = None

    # Step 8: Annotation
    logger.info("\n[Step 8/8] Annotating cell types...")
    adata = analysis.annotate_cells(adata, config['annotation'])
    analysis.generate_cluster_plots(adata, figures_dir)
    analysis.export_annotation_summary(adata, paths['annotation_summary'])
    results['annotation'] = {
        'method': config['annotation']['method'],
        'cell_types': adata.obs['final_annotation'].value_counts().to_dict(),
    }

    logger.info(f"\nSaving annotated data to {paths['adata_final']}...")
    adata.write(paths['adata_final'])

    generate_summary(
        config,
        results,
        {k: v for k, v in paths.items() if k != 'summary'},
        paths['summary'],
    )

    logger.info("\n" + "=" * 60)
    logger.info("Pipeline completed successfully!")
    logger.info("=" * 60)
    logger.info(f"Final cells: {adata.n_obs}")
    logger.info(f"Final genes: {adata.n_vars}")
    logger.info(f"Cell types identified: {adata.obs['final_annotation'].nunique()}")

    return adata
