"""End-to-end run on small synthetic samples, fully offline."""

import os

import numpy as np
import pandas as pd
import pytest
import yaml

from fshdscope.config import default_config, validate_config
from fshdscope.pipeline import output_paths, run_pipeline
from tests.helpers import write_counts, write_text

N_GENES = 300
N_CELLS = 80


def _synthetic_sample(rng, rates, n_cells, fshd):
    """Two cell populations; FSHD samples also raise genes 40-49."""
    counts = np.empty((N_GENES, n_cells), dtype=int)
    for j in range(n_cells):
        lam = rates.copy()
        if j % 2 == 0:
            lam[:30] *= 8
        else:
            lam[30:40] *= 8
        if fshd:
            lam[40:50] *= 4
        counts[:, j] = rng.poisson(lam)
    return counts


@pytest.fixture
def run_config(tmp_path):
    rng = np.random.default_rng(7)
    accessions = [f'ENSG{i:011d}.1' for i in range(N_GENES)]
    symbols = ['MT-CO1', 'MT-ND1', 'RPL3'] + [f'GENE{i}' for i in range(3, N_GENES)]

    table = write_text(
        tmp_path / 'symbols.tsv',
        'gene_id\tsymbol\n' + ''.join(f'{a}\t{s}\n' for a, s in zip(accessions, symbols)),
    )

    rates = rng.gamma(2.0, 0.6, size=N_GENES)
    samples = []
    for name, fshd in (('FSHD1_1', True), ('Control_1', False)):
        counts = pd.DataFrame(
            _synthetic_sample(rng, rates, N_CELLS, fshd),
            index=accessions,
            # same barcodes in both samples
            columns=[f'BC{j:04d}-1' for j in range(N_CELLS)],
        )
        path = write_counts(tmp_path / f'{name}.tsv.gz', counts, compress=True)
        samples.append({'name': name, 'path': path})

    config = default_config()
    config['output_dir'] = str(tmp_path / 'results')
    config['log_dir'] = str(tmp_path / 'results' / 'logs')
    config['samples'] = samples
    config['gene_mapping'].update({'source': 'table', 'table': table})
    config['loading'].update({'min_cells': 3, 'min_genes': 50})
    config['qc'].update({'min_genes': 50, 'max_genes': 1000, 'max_mito_pct': 50})
    config['preprocessing'].update({'n_top_genes': 100, 'n_pcs': 10, 'n_neighbors': 10})
    config['enrichment']['enabled'] = False
    config['annotation']['method'] = 'leiden'
    validate_config(config)
    return config


def test_output_paths():
    paths = output_paths('out', {'group': 'FSHD', 'reference': 'Control'})
    assert paths['de_table'] == os.path.join('out', 'de', 'de_FSHD_vs_Control.tsv')
    assert paths['summary'] == os.path.join('out', 'summary.yaml')


def test_full_run(run_config):
    adata = run_pipeline(run_config)
    paths = output_paths(run_config['output_dir'], run_config['differential_expression'])

    # shared barcodes force sample-prefixed cell names
    assert adata.obs_names.is_unique
    assert all(name.startswith(('FSHD1_1_', 'Control_1_')) for name in adata.obs_names)

    assert int(adata.var['mt'].sum()) == 2
    assert adata.var.loc['GENE10', 'gene_ids'] == 'ENSG00000000010.1'
    assert set(adata.obs['condition']) == {'FSHD', 'Control'}
    assert 'X_pca_harmony' in adata.obsm
    assert 'X_umap' in adata.obsm
    assert adata.obs['final_annotation'].astype(str).str.startswith('Cluster_').all()

    for key in ('adata_merged', 'qc_metrics', 'de_table', 'cluster_markers',
                'annotation_summary', 'adata_final', 'summary'):
        assert os.path.exists(paths[key]), key
    assert not os.path.exists(paths['enrichment'])
    assert os.path.exists(os.path.join(paths['figures'], 'umap_leiden.png'))

    de_table = pd.read_csv(paths['de_table'], sep='\t')
    up = de_table[de_table['significant'] & (de_table['logfoldchange'] > 0)]['gene']
    assert len(set(up) & {f'GENE{i}' for i in range(40, 50)}) >= 5

    with open(paths['summary']) as f:
        summary = yaml.safe_load(f)
    assert summary['configuration']['samples'] == ['FSHD1_1', 'Control_1']
    assert summary['results']['merge']['n_cells'] == 2 * N_CELLS
    assert summary['results']['clustering']['representation'] == 'X_pca_harmony'
    assert 'enrichment' not in summary['output_files']
