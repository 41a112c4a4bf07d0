#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
config.py
=========

Pipeline configuration: defaults, YAML loading, validation and the
one-time process setup (scanpy settings, random seed, pandas display).

A config file only needs to override what differs from DEFAULT_CONFIG;
load_config deep-merges it over the defaults.
"""

import os
import copy
import logging

import yaml
import numpy as np
import pandas as pd
import scanpy as sc

from fshdscope.errors import NotFoundError
from fshdscope.gene_mapper import SOURCES

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration and Defaults
# =============================================================================

DEFAULT_CONFIG = {
    'output_dir': 'results',
    'log_dir': None,             # defaults to <output_dir>/logs
    'samples': [],               # [{'name': 'FSHD1_1', 'path': 'counts/FSHD1_1.tsv.gz'}, ...]

    'gene_mapping': {
        'source': 'mygene',      # mygene | table | none
        'species': 'human',
        'scopes': 'ensembl.gene',
        'timeout': 60,
        'retries': 0,
        'backoff': 2.0,
        'table': None,
    },

    'loading': {
        'min_cells': 3,
        'min_genes': 200,
    },

    'qc': {
        'min_genes': 200,
        'max_genes': 5000,
        'max_mito_pct': 20,
        'mito_prefix': 'MT-',
    },

    'preprocessing': {
        'normalization': 'log1p',    # log1p | pearson_residuals
        'target_sum': 1e4,
        'n_top_genes': 2000,
        'n_pcs': 30,
        'n_neighbors': 15,
        'leiden_resolution': 0.5,
    },

    'batch_correction': {
        'enabled': True,
        'batch_key': 'sample_name',
        'max_iter': 20,
    },

    'differential_expression': {
        'groupby': 'condition',
        'group': 'FSHD',
        'reference': 'Control',
        'method': 'wilcoxon',
        'pval_cutoff': 0.05,
        'logfc_cutoff': 0.25,
    },

    'enrichment': {
        'enabled': True,
        'gene_sets': ['KEGG_2021_Human', 'GO_Biological_Process_2023'],
        'organism': 'human',
        'cutoff': 0.05,
    },

    'annotation': {
        'method': 'leiden',          # leiden | celltypist
        'model': None,               # CellTypist model, required with celltypist
        'majority_voting': True,
    },

    'settings': {
        'random_seed': 0,
        'scanpy_verbosity': 1,
        'figure_dpi': 80,
        'save_dpi': 150,
    },
}

NORMALIZATION_METHODS = ('log1p', 'pearson_residuals')
ANNOTATION_METHODS = ('celltypist', 'leiden')


def deep_merge(base, override):
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def default_config():
    """Fresh copy of the defaults."""
    return copy.deepcopy(DEFAULT_CONFIG)


def load_config(config_path):
    """
    Load a YAML config and merge it over DEFAULT_CONFIG.

    Parameters
    ----------
    config_path : str
        Path to the YAML file

    Returns
    -------
    dict
        Complete configuration, with log_dir resolved
    """
    if not os.path.isfile(config_path):
        raise NotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        user_config = yaml.safe_load(f) or {}

    if not isinstance(user_config, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping at top level")

    config = deep_merge(DEFAULT_CONFIG, user_config)
    if not config.get('log_dir'):
        config['log_dir'] = os.path.join(config['output_dir'], 'logs')

    return config


def validate_config(config):
    """
    Check a merged config. Collects every problem and raises one ValueError.
    """
    errors = []

    samples = config.get('samples') or []
    if not samples:
        errors.append("samples must list at least one {name, path} entry")
    names = []
    for i, sample in enumerate(samples):
        if not isinstance(sample, dict) or not sample.get('name') or not sample.get('path'):
            errors.append(f"samples[{i}] needs both 'name' and 'path'")
            continue
        names.append(sample['name'])
    dups = sorted({n for n in names if names.count(n) > 1})
    if dups:
        errors.append(f"duplicate sample names: {dups}")

    gm = config.get('gene_mapping', {})
    if gm.get('source') not in SOURCES:
        errors.append(f"gene_mapping.source must be one of {SOURCES}, got '{gm.get('source')}'")
    elif gm.get('source') == 'table' and not gm.get('table'):
        errors.append("gene_mapping.table is required when gene_mapping.source is 'table'")

    for section, keys in (
        ('loading', ('min_cells', 'min_genes')),
        ('qc', ('min_genes', 'max_genes', 'max_mito_pct')),
        ('gene_mapping', ('timeout', 'retries', 'backoff')),
    ):
        for key in keys:
            value = config.get(section, {}).get(key)
            if not isinstance(value, (int, float)) or value < 0:
                errors.append(f"{section}.{key} must be a non-negative number, got {value}")

    qc = config.get('qc', {})
    if isinstance(qc.get('min_genes'), (int, float)) and isinstance(qc.get('max_genes'), (int, float)):
        if qc['max_genes'] <= qc['min_genes']:
            errors.append(
                f"qc.max_genes ({qc['max_genes']}) must be greater than qc.min_genes ({qc['min_genes']})"
            )
    if isinstance(qc.get('max_mito_pct'), (int, float)) and qc['max_mito_pct'] > 100:
        errors.append(f"qc.max_mito_pct must be between 0 and 100, got {qc['max_mito_pct']}")

    norm = config.get('preprocessing', {}).get('normalization')
    if norm not in NORMALIZATION_METHODS:
        errors.append(f"preprocessing.normalization must be one of {NORMALIZATION_METHODS}, got '{norm}'")

    method = config.get('annotation', {}).get('method')
    if method not in ANNOTATION_METHODS:
        errors.append(f"annotation.method must be one of {ANNOTATION_METHODS}, got '{method}'")
    elif method == 'celltypist' and not config.get('annotation', {}).get('model'):
        errors.append("annotation.model is required when annotation.method is 'celltypist'")

    if errors:
        raise ValueError(
            "Config validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )


def configure_environment(settings):
    """
    One-time process setup. Call once at the start of a run.
    """
    settings = {**DEFAULT_CONFIG['settings'], **(settings or {})}

    sc.settings.verbosity = settings['scanpy_verbosity']
    sc.settings.set_figure_params(dpi=settings['figure_dpi'], dpi_save=settings['save_dpi'], facecolor='white')
    np.random.seed(settings['random_seed'])
    pd.set_option('display.float_format', lambda x: f'{x:.6f}')

    logger.info(f"Environment configured (seed={settings['random_seed']}, "
                f"scanpy verbosity={settings['scanpy_verbosity']})")
