import os
import pickle

import yaml
from click.testing import CliRunner

from fshdscope import __version__
from fshdscope.cli import main
from fshdscope.config import load_config, validate_config
from tests.helpers import write_text


def _counts_files(tmp_path):
    fshd = write_text(tmp_path / 'FSHD1_1.tsv', 'gene_id\tc1\nENSG1\t1\n')
    control = write_text(tmp_path / 'Control_1.tsv', 'gene_id\tc1\nENSG1\t2\n')
    return fshd, control


def test_version():
    result = CliRunner().invoke(main, ['--version'])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands():
    result = CliRunner().invoke(main, ['--help'])
    assert result.exit_code == 0
    for command in ('sample-information', 'create-config', 'run-config'):
        assert command in result.output


# =============================================================================
# sample-information
# =============================================================================

def test_sample_information_writes_pickle(tmp_path):
    fshd, control = _counts_files(tmp_path)
    csv = write_text(tmp_path / 'samples.csv',
                     f'sample_name,counts_path,donor\nFSHD1_1,{fshd},P01\nControl_1,{control},C01\n')
    out = tmp_path / 'out' / 'samples.pkl'

    result = CliRunner().invoke(main, ['sample-information', '-i', csv, '-o', str(out)])

    assert result.exit_code == 0, result.output
    with open(out, 'rb') as f:
        samples = pickle.load(f)
    assert list(samples) == ['FSHD1_1', 'Control_1']
    assert samples['FSHD1_1'] == {'path': fshd, 'condition': 'FSHD', 'donor': 'P01'}
    assert samples['Control_1']['condition'] == 'Control'


def test_sample_information_duplicate_names(tmp_path):
    fshd, _ = _counts_files(tmp_path)
    csv = write_text(tmp_path / 'samples.csv',
                     f'sample_name,counts_path\nFSHD1_1,{fshd}\nFSHD1_1,{fshd}\n')
    result = CliRunner().invoke(main, ['sample-information', '-i', csv, '-o', str(tmp_path / 's.pkl')])
    assert result.exit_code == 1
    assert 'Duplicate sample names' in result.output


def test_sample_information_missing_column(tmp_path):
    csv = write_text(tmp_path / 'samples.csv', 'sample_name\nFSHD1_1\n')
    result = CliRunner().invoke(main, ['sample-information', '-i', csv, '-o', str(tmp_path / 's.pkl')])
    assert result.exit_code == 1
    assert 'counts_path' in result.output


def test_sample_information_missing_matrix(tmp_path):
    csv = write_text(tmp_path / 'samples.csv',
                     f'sample_name,counts_path\nFSHD1_1,{tmp_path / "gone.tsv"}\n')
    out = tmp_path / 's.pkl'

    result = CliRunner().invoke(main, ['sample-information', '-i', csv, '-o', str(out)])
    assert result.exit_code == 1
    assert not out.exists()

    result = CliRunner().invoke(main, ['sample-information', '-i', csv, '-o', str(out), '--skip-validation'])
    assert result.exit_code == 0, result.output
    assert out.exists()


# =============================================================================
# create-config
# =============================================================================

def test_create_config_from_sample_options(tmp_path):
    fshd, control = _counts_files(tmp_path)
    out_dir = tmp_path / 'results'

    result = CliRunner().invoke(main, [
        'create-config',
        '--output-dir', str(out_dir),
        '--sample', f'FSHD1_1={fshd}',
        '--sample', f'Control_1={control}',
        '--max-mito-pct', '15',
        '--gene-sets', 'KEGG_2021_Human',
        '--annotation-method', 'leiden',
    ])

    assert result.exit_code == 0, result.output
    config = load_config(str(out_dir / 'config.yaml'))
    validate_config(config)
    assert config['samples'] == [
        {'name': 'FSHD1_1', 'path': fshd},
        {'name': 'Control_1', 'path': control},
    ]
    assert config['qc']['max_mito_pct'] == 15
    assert config['enrichment']['gene_sets'] == ['KEGG_2021_Human']
    assert config['annotation']['method'] == 'leiden'
    assert config['log_dir'] == os.path.join(str(out_dir.resolve()), 'logs')


def test_create_config_from_pickle(tmp_path):
    fshd, control = _counts_files(tmp_path)
    pkl = tmp_path / 'samples.pkl'
    with open(pkl, 'wb') as f:
        pickle.dump({'FSHD1_1': {'path': fshd, 'condition': 'FSHD'},
                     'Control_1': {'path': control, 'condition': 'Control'}}, f)

    result = CliRunner().invoke(main, [
        'create-config', '--output-dir', str(tmp_path / 'results'), '--sample-pickle', str(pkl),
        '--no-enrichment', '--no-batch-correction',
    ])

    assert result.exit_code == 0, result.output
    with open(tmp_path / 'results' / 'config.yaml') as f:
        config = yaml.safe_load(f)
    assert [s['name'] for s in config['samples']] == ['FSHD1_1', 'Control_1']
    assert config['enrichment']['enabled'] is False
    assert config['batch_correction']['enabled'] is False


def test_create_config_needs_samples(tmp_path):
    result = CliRunner().invoke(main, ['create-config', '--output-dir', str(tmp_path / 'results')])
    assert result.exit_code == 1
    assert not (tmp_path / 'results' / 'config.yaml').exists()


def test_create_config_rejects_bad_sample_option(tmp_path):
    result = CliRunner().invoke(main, [
        'create-config', '--output-dir', str(tmp_path / 'results'), '--sample', 'FSHD1_1',
    ])
    assert result.exit_code != 0
    assert 'NAME=PATH' in result.output


def test_create_config_table_source_needs_table(tmp_path):
    fshd, control = _counts_files(tmp_path)
    result = CliRunner().invoke(main, [
        'create-config', '--output-dir', str(tmp_path / 'results'),
        '--sample', f'FSHD1_1={fshd}', '--sample', f'Control_1={control}',
        '--gene-source', 'table',
    ])
    assert result.exit_code == 1
    assert 'gene_mapping.table' in result.output


def test_create_config_celltypist_needs_model(tmp_path):
    fshd, control = _counts_files(tmp_path)
    result = CliRunner().invoke(main, [
        'create-config', '--output-dir', str(tmp_path / 'results'),
        '--sample', f'FSHD1_1={fshd}', '--sample', f'Control_1={control}',
        '--annotation-method', 'celltypist',
    ])
    assert result.exit_code == 1
    assert 'annotation.model' in result.output


# =============================================================================
# run-config
# =============================================================================

def test_run_config_dry_run(tmp_path):
    fshd, control = _counts_files(tmp_path)
    config_path = tmp_path / 'config.yaml'
    config_path.write_text(yaml.safe_dump({
        'output_dir': str(tmp_path / 'results'),
        'samples': [{'name': 'FSHD1_1', 'path': fshd}, {'name': 'Control_1', 'path': control}],
    }))

    result = CliRunner().invoke(main, ['run-config', str(config_path), '--dry-run'])

    assert result.exit_code == 0, result.output
    assert 'Dry run' in result.output
    assert not (tmp_path / 'results').exists()


def test_run_config_invalid(tmp_path):
    config_path = tmp_path / 'config.yaml'
    config_path.write_text(yaml.safe_dump({'samples': [], 'qc': {'max_mito_pct': 500}}))

    result = CliRunner().invoke(main, ['run-config', str(config_path)])

    assert result.exit_code == 1
    assert 'qc.max_mito_pct' in result.output
