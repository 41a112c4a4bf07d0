#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
summary.py
==========

Generate the master summary YAML of a pipeline run.

Aggregates per-stage metrics (cells/genes after each stage, clusters,
DE and enrichment counts, cell type distribution) and output file paths
into a single file.
"""

import os
import logging
from datetime import datetime

import yaml
import pandas as pd

from fshdscope import __version__

logger = logging.getLogger(__name__)


def safe_read_tsv(filepath):
    """Read a TSV file into a list of records, or [] if it doesn't exist."""
    if filepath and os.path.exists(filepath):
        try:
            df = pd.read_csv(filepath, sep='\t')
            return df.to_dict(orient='records')
        except (pd.errors.ParserError, pd.errors.EmptyDataError, OSError) as e:
            logger.warning(f"Could not read {filepath}: {e}")
    return []


def _plain(value):
    """numpy scalars -> Python scalars so yaml.safe_dump accepts them."""
    if hasattr(value, 'item'):
        return value.item()
    return value


def generate_summary(config, results, output_files, output_file):
    """
    Write the pipeline summary.

    Parameters
    ----------
    config : dict
        Run configuration
    results : dict
        Stage name -> dict of metrics collected by the pipeline
    output_files : dict
        Label -> path of files written during the run
    output_file : str
        Destination YAML

    Returns
    -------
    dict
        The summary that was written
    """
    logger.info("=" * 60)
    logger.info("GENERATING MASTER SUMMARY")
    logger.info("=" * 60)

    samples = config.get('samples', [])

    summary = {
        'pipeline': {
            'name': 'FSHDscope',
            'version': __version__,
            'completion_time': datetime.now().isoformat(),
        },
        'configuration': {
            'output_dir': config.get('output_dir'),
            'n_samples': len(samples),
            'samples': [s['name'] for s in samples],
            'gene_mapping_source': config.get('gene_mapping', {}).get('source'),
            'normalization': config.get('preprocessing', {}).get('normalization'),
            'batch_correction': config.get('batch_correction', {}).get('enabled'),
            'annotation_method': config.get('annotation', {}).get('method'),
        },
        'results': {},
        'output_files': {},
    }

    for stage, metrics in results.items():
        summary['results'][stage] = {
            'status': 'completed',
            **{k: _plain(v) if not isinstance(v, dict) else {str(kk): _plain(vv) for kk, vv in v.items()}
               for k, v in metrics.items()},
        }

    qc_records = safe_read_tsv(output_files.get('qc_metrics'))
    if qc_records:
        summary['results'].setdefault('qc', {})['per_sample'] = [
            {k: _plain(v) for k, v in rec.items()} for rec in qc_records
        ]

    summary['output_files'] = {label: path for label, path in output_files.items() if path}
    summary['output_files']['master_summary'] = output_file

    os.makedirs(os.path.dirname(output_file) or '.', exist_ok=True)
    with open(output_file, 'w') as f:
        yaml.safe_dump(summary, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Summary written to: {output_file}")

    return summary
