#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
create_config.py
================

CLI command to create the FSHDscope pipeline configuration file.

Usage:
    FSHDscope create-config [OPTIONS]
"""

import os
import sys
import pickle
from pathlib import Path

import click
import yaml

from fshdscope.config import ANNOTATION_METHODS, NORMALIZATION_METHODS, default_config, validate_config
from fshdscope.gene_mapper import SOURCES


def validate_path(path, name, must_exist=True, create_dir=False):
    """Validate a file or directory path."""
    if path is None:
        return None

    path = Path(path).resolve()

    if create_dir and not path.exists():
        path.mkdir(parents=True, exist_ok=True)
        click.echo(f"  Created directory: {path}")

    if must_exist and not path.exists():
        raise FileNotFoundError(f"{name} not found: {path}")

    return str(path)


def parse_sample_option(value):
    """'NAME=PATH' -> {'name': NAME, 'path': PATH}"""
    name, sep, path = value.partition('=')
    if not sep or not name.strip() or not path.strip():
        raise click.BadParameter(f"expected NAME=PATH, got '{value}'", param_hint='--sample')
    return {'name': name.strip(), 'path': path.strip()}


def samples_from_pickle(pickle_path):
    """
    Read the sample dictionary written by sample-information.

    Returns
    -------
    list of dict
        [{'name': ..., 'path': ...}, ...] in pickle order
    """
    with open(pickle_path, 'rb') as f:
        sample_dict = pickle.load(f)

    if not isinstance(sample_dict, dict):
        raise ValueError(f"Sample pickle {pickle_path} does not contain a dictionary")

    samples = []
    for name, entry in sample_dict.items():
        path = entry.get('path') if isinstance(entry, dict) else None
        if not path:
            raise ValueError(f"Sample {name} in {pickle_path} has no count matrix path")
        samples.append({'name': str(name), 'path': str(path)})
    return samples


def build_config(output_dir, samples, gene_source='mygene', symbol_table=None,
                 species='human', min_cells=3, min_genes=200,
                 qc_min_genes=200, max_genes=5000, max_mito_pct=20.0,
                 normalization='log1p', n_top_genes=2000, leiden_resolution=0.5,
                 batch_key='sample_name', no_batch_correction=False,
                 group='FSHD', reference='Control',
                 gene_sets=None, no_enrichment=False,
                 annotation_method='leiden', annotation_model=None,
                 random_seed=0):
    """
    Assemble a complete configuration dictionary from command-line values.

    Everything not exposed as an option keeps its default.
    """
    config = default_config()

    config['output_dir'] = output_dir
    config['log_dir'] = os.path.join(output_dir, 'logs')
    config['samples'] = samples

    config['gene_mapping'].update({
        'source': gene_source,
        'species': species,
        'table': symbol_table,
    })
    config['loading'].update({'min_cells': min_cells, 'min_genes': min_genes})
    config['qc'].update({
        'min_genes': qc_min_genes,
        'max_genes': max_genes,
        'max_mito_pct': max_mito_pct,
    })
    config['preprocessing'].update({
        'normalization': normalization,
        'n_top_genes': n_top_genes,
        'leiden_resolution': leiden_resolution,
    })
    config['batch_correction'].update({
        'enabled': not no_batch_correction,
        'batch_key': batch_key,
    })
    config['differential_expression'].update({'group': group, 'reference': reference})
    config['enrichment']['enabled'] = not no_enrichment
    if gene_sets:
        config['enrichment']['gene_sets'] = list(gene_sets)
    config['annotation'].update({'method': annotation_method, 'model': annotation_model})
    config['settings']['random_seed'] = random_seed

    return config


@click.command('create-config')
@click.option('--output-dir', '-o', required=True, type=click.Path(),
              help='Output directory for the pipeline (config.yaml is written here)')
@click.option('--sample-pickle', '-p', type=click.Path(exists=True),
              help='Sample dictionary pickle from sample-information')
@click.option('--sample', 'sample_args', multiple=True,
              help='Sample as NAME=PATH (repeatable, alternative to --sample-pickle)')
@click.option('--gene-source', type=click.Choice(SOURCES), default='mygene', show_default=True,
              help='Where gene symbols come from')
@click.option('--symbol-table', type=click.Path(exists=True),
              help='Tab-separated accession/symbol table (with --gene-source table)')
@click.option('--species', default='human', show_default=True,
              help='Species for MyGene.info lookups')
@click.option('--min-cells', type=int, default=3, show_default=True,
              help='Loading: keep genes detected in at least this many cells')
@click.option('--min-genes', type=int, default=200, show_default=True,
              help='Loading: keep cells with at least this many genes')
@click.option('--qc-min-genes', type=int, default=200, show_default=True,
              help='QC: minimum genes per cell')
@click.option('--max-genes', type=int, default=5000, show_default=True,
              help='QC: maximum genes per cell')
@click.option('--max-mito-pct', type=float, default=20.0, show_default=True,
              help='QC: maximum mitochondrial percentage')
@click.option('--normalization', type=click.Choice(NORMALIZATION_METHODS), default='log1p',
              show_default=True, help='Normalization method')
@click.option('--n-top-genes', type=int, default=2000, show_default=True,
              help='Number of highly variable genes')
@click.option('--leiden-resolution', type=float, default=0.5, show_default=True,
              help='Leiden clustering resolution')
@click.option('--batch-key', default='sample_name', show_default=True,
              help='obs column used for Harmony batch correction')
@click.option('--no-batch-correction', is_flag=True, default=False,
              help='Disable Harmony batch correction')
@click.option('--group', default='FSHD', show_default=True,
              help='Differential expression test group')
@click.option('--reference', default='Control', show_default=True,
              help='Differential expression reference group')
@click.option('--gene-sets', multiple=True,
              help='Enrichr gene set library (repeatable)')
@click.option('--no-enrichment', is_flag=True, default=False,
              help='Disable pathway enrichment')
@click.option('--annotation-method', type=click.Choice(ANNOTATION_METHODS), default='leiden',
              show_default=True, help='Cell type annotation method')
@click.option('--annotation-model', default=None,
              help='CellTypist model name or .pkl path (required with --annotation-method celltypist)')
@click.option('--random-seed', type=int, default=0, show_default=True,
              help='Random seed')
def create_config(output_dir, sample_pickle, sample_args, gene_source, symbol_table, species,
                  min_cells, min_genes, qc_min_genes, max_genes, max_mito_pct,
                  normalization, n_top_genes, leiden_resolution, batch_key, no_batch_correction,
                  group, reference, gene_sets, no_enrichment, annotation_method,
                  annotation_model, random_seed):
    """
    Generate pipeline configuration file.

    \b
    Usage examples:

      FSHDscope create-config --output-dir ./results --sample-pickle samples.pkl

      FSHDscope create-config --output-dir ./results \\
        --sample FSHD1_1=counts/FSHD1_1.tsv.gz \\
        --sample Control_1=counts/Control_1.tsv.gz \\
        --gene-source table --symbol-table ensembl_to_symbol.tsv
    """
    click.echo("=" * 70)
    click.echo("FSHDSCOPE - CREATE CONFIGURATION")
    click.echo("=" * 70)

    click.echo("\nValidating input paths...")
    output_dir = validate_path(output_dir, "Output directory", must_exist=False, create_dir=True)

    if sample_pickle and sample_args:
        click.echo("ERROR: Use either --sample-pickle or --sample, not both", err=True)
        sys.exit(1)

    try:
        if sample_pickle:
            samples = samples_from_pickle(sample_pickle)
            click.echo(f"  Loaded {len(samples)} samples from pickle")
        elif sample_args:
            samples = [parse_sample_option(value) for value in sample_args]
            click.echo(f"  Using {len(samples)} samples from command line")
        else:
            click.echo("ERROR: Must provide either --sample-pickle or --sample", err=True)
            sys.exit(1)
    except (ValueError, pickle.UnpicklingError) as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    if symbol_table:
        symbol_table = validate_path(symbol_table, "Symbol table")

    click.echo("\nBuilding configuration...")
    config = build_config(
        output_dir, samples,
        gene_source=gene_source, symbol_table=symbol_table, species=species,
        min_cells=min_cells, min_genes=min_genes,
        qc_min_genes=qc_min_genes, max_genes=max_genes, max_mito_pct=max_mito_pct,
        normalization=normalization, n_top_genes=n_top_genes,
        leiden_resolution=leiden_resolution,
        batch_key=batch_key, no_batch_correction=no_batch_correction,
        group=group, reference=reference,
        gene_sets=gene_sets, no_enrichment=no_enrichment,
        annotation_method=annotation_method, annotation_model=annotation_model,
        random_seed=random_seed,
    )

    try:
        validate_config(config)
    except ValueError as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    config_path = os.path.join(output_dir, 'config.yaml')
    click.echo(f"\nWriting configuration to: {config_path}")

    with open(config_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    click.echo("\n" + "=" * 70)
    click.echo("CONFIGURATION CREATED SUCCESSFULLY")
    click.echo("=" * 70)
    click.echo(f"\nConfiguration file: {config_path}")
    click.echo(f"Samples: {len(samples)}")
    click.echo(f"Gene symbols: {gene_source}")
    click.echo(f"Batch correction: {'ENABLED' if not no_batch_correction else 'DISABLED'}")
    click.echo(f"Enrichment: {'ENABLED' if not no_enrichment else 'DISABLED'}")
    click.echo(f"\nTo run the pipeline:")
    click.echo(f"  FSHDscope run-config {config_path}")


if __name__ == '__main__':
    create_config()
