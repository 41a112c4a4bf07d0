import numpy as np
import pandas as pd
import pytest

from fshdscope.errors import DuplicateCellError, DuplicateSampleError, InsufficientInputError
from fshdscope.gene_mapper import DictAnnotationSource, GeneIdentifierMapper
from fshdscope.loader import load_samples
from fshdscope.merger import merge_samples
from tests.helpers import make_sample, write_counts


def _sorted_frame(adata):
    return adata.to_df().sort_index().sort_index(axis=1)


def test_union_of_genes_zero_filled(fshd_sample, control_sample):
    merged = merge_samples([fshd_sample, control_sample])

    assert merged.n_obs == 5
    assert set(merged.var_names) == {'DUX4', 'MYOD1', 'ACTA1', 'DES'}

    df = merged.to_df()
    assert (df.loc[['TTT-1', 'GGT-1'], 'DUX4'] == 0).all()
    assert (df.loc[['AAA-1', 'CCC-1', 'GGG-1'], 'DES'] == 0).all()
    assert df.loc['TTT-1', 'MYOD1'] == 4
    assert df.loc['AAA-1', 'ACTA1'] == 5


def test_counts_are_preserved(fshd_sample, control_sample):
    merged = merge_samples([fshd_sample, control_sample])
    expected = fshd_sample.X.sum() + control_sample.X.sum()
    assert merged.X.sum() == pytest.approx(expected)


def test_cells_kept_in_input_order(fshd_sample, control_sample):
    merged = merge_samples([fshd_sample, control_sample])
    assert list(merged.obs_names) == ['AAA-1', 'CCC-1', 'GGG-1', 'TTT-1', 'GGT-1']
    assert list(merged.obs['sample_name']) == ['FSHD1_1'] * 3 + ['Control_1'] * 2
    assert list(merged.obs['condition']) == ['FSHD'] * 3 + ['Control'] * 2
    assert isinstance(merged.obs['sample_name'].dtype, pd.CategoricalDtype)


def _sorted_obs(adata):
    return adata.obs[['sample_name', 'condition']].astype(str).sort_index()


def test_merge_order_does_not_change_content(fshd_sample, control_sample):
    ab = merge_samples([fshd_sample, control_sample])
    ba = merge_samples([control_sample, fshd_sample])
    pd.testing.assert_frame_equal(_sorted_frame(ab), _sorted_frame(ba))
    pd.testing.assert_frame_equal(_sorted_obs(ab), _sorted_obs(ba))
    pd.testing.assert_frame_equal(ab.var.sort_index(), ba.var.sort_index())


def test_gene_annotations_survive_for_every_gene(fshd_sample, control_sample):
    merged = merge_samples([fshd_sample, control_sample])
    assert list(merged.var.columns) == ['gene_ids', 'gene_symbol']
    assert merged.var.loc['DES', 'gene_ids'] == 'ENSG_DES'
    assert merged.var.loc['DUX4', 'gene_ids'] == 'ENSG_DUX4'
    assert not merged.var['gene_ids'].isna().any()


def test_shared_barcodes_are_prefixed_with_sample_name(fshd_sample):
    other = make_sample(
        'Control_2',
        genes=['MYOD1'],
        barcodes=['AAA-1', 'ZZZ-1'],
        matrix=[[7], [1]],
    )
    merged = merge_samples([fshd_sample, other])

    assert merged.obs_names.is_unique
    assert list(merged.obs_names) == [
        'FSHD1_1_AAA-1', 'FSHD1_1_CCC-1', 'FSHD1_1_GGG-1',
        'Control_2_AAA-1', 'Control_2_ZZZ-1',
    ]
    assert merged.to_df().loc['Control_2_AAA-1', 'MYOD1'] == 7
    assert merged.obs.loc['Control_2_AAA-1', 'original_barcode'] == 'AAA-1'


def test_inputs_are_not_modified(fshd_sample):
    other = make_sample('Control_2', genes=['DES'], barcodes=['AAA-1'], matrix=[[3]])
    before_names = list(fshd_sample.obs_names)
    before_genes = list(fshd_sample.var_names)

    merge_samples([fshd_sample, other])

    assert list(fshd_sample.obs_names) == before_names
    assert list(fshd_sample.var_names) == before_genes
    assert list(other.obs_names) == ['AAA-1']


def test_three_samples(fshd_sample, control_sample):
    third = make_sample('FSHD2_1', genes=['PAX7'], barcodes=['NNN-1'], matrix=[[9]])
    merged = merge_samples([fshd_sample, control_sample, third])
    assert merged.n_obs == 6
    assert merged.n_vars == 5
    assert merged.obs['sample_name'].nunique() == 3
    np.testing.assert_array_equal(merged.to_df().loc['NNN-1'].sort_values().values, [0, 0, 0, 0, 9])


def test_needs_two_samples(fshd_sample):
    with pytest.raises(InsufficientInputError):
        merge_samples([fshd_sample])
    with pytest.raises(InsufficientInputError):
        merge_samples([])


def test_duplicate_sample_names(fshd_sample):
    twin = make_sample('FSHD1_1', genes=['DES'], barcodes=['XYZ-1'], matrix=[[1]])
    with pytest.raises(DuplicateSampleError):
        merge_samples([fshd_sample, twin])


def test_two_files_end_to_end(tmp_path):
    barcodes = ['AAAC-1', 'AAAG-1', 'AAAT-1', 'AACA-1']
    fshd_counts = pd.DataFrame(
        [[1, 0, 2, 3], [5, 5, 0, 1], [0, 2, 2, 2]],
        index=['ENSG_A', 'ENSG_SHARED', 'ENSG_B'],
        columns=barcodes,
    )
    control_counts = pd.DataFrame(
        [[7, 1, 0, 4], [0, 3, 3, 1], [1, 1, 1, 0]],
        index=['ENSG_SHARED', 'ENSG_C', 'ENSG_D'],
        columns=barcodes,
    )
    mapper = GeneIdentifierMapper(DictAnnotationSource({'ENSG_SHARED': 'DUX4', 'ENSG_A': 'PAX7'}))
    adatas = load_samples(
        [
            {'name': 'FSHD1_1', 'path': write_counts(tmp_path / 'FSHD1_1.tsv', fshd_counts)},
            {'name': 'Control_1', 'path': write_counts(tmp_path / 'Control_1.tsv', control_counts)},
        ],
        mapper=mapper,
        min_cells=0,
        min_genes=0,
    )

    merged = merge_samples(adatas)

    assert merged.shape == (8, 5)
    assert set(merged.var_names) == {'PAX7', 'DUX4', 'ENSG_B', 'ENSG_C', 'ENSG_D'}
    assert list(merged.obs['condition']) == ['FSHD'] * 4 + ['Control'] * 4

    df = merged.to_df()
    fshd_cells = [f'FSHD1_1_{bc}' for bc in barcodes]
    control_cells = [f'Control_1_{bc}' for bc in barcodes]
    assert list(df.loc[fshd_cells, 'DUX4']) == [5, 5, 0, 1]
    assert list(df.loc[control_cells, 'DUX4']) == [7, 1, 0, 4]
    assert (df.loc[control_cells, 'PAX7'] == 0).all()
    assert (df.loc[fshd_cells, 'ENSG_D'] == 0).all()


def _load_pair(tmp_path, first, second, symbols):
    mapper = GeneIdentifierMapper(DictAnnotationSource(symbols))
    specs = []
    for name, counts in (first, second):
        specs.append({'name': name, 'path': write_counts(tmp_path / f'{name}.tsv', counts)})
    return load_samples(specs, mapper=mapper, min_cells=0, min_genes=0)


def test_genes_sharing_a_symbol_are_matched_by_accession(tmp_path):
    # FSHD1_1 has both accessions, Control_1 only the second one
    fshd_counts = pd.DataFrame([[1, 2], [5, 5]], index=['ENSG_E1', 'ENSG_E2'], columns=['F1', 'F2'])
    control_counts = pd.DataFrame([[3, 4]], index=['ENSG_E2'], columns=['C1', 'C2'])
    symbols = {'ENSG_E1': 'FOO', 'ENSG_E2': 'FOO'}
    fshd, control = _load_pair(tmp_path, ('FSHD1_1', fshd_counts), ('Control_1', control_counts), symbols)
    assert list(control.var_names) == ['FOO']

    merged = merge_samples([fshd, control])

    assert merged.var.loc['FOO', 'gene_ids'] == 'ENSG_E1'
    assert merged.var.loc['FOO.1', 'gene_ids'] == 'ENSG_E2'
    assert list(merged.var.loc[['FOO', 'FOO.1'], 'gene_symbol']) == ['FOO', 'FOO']

    df = merged.to_df()
    assert list(df.loc[['F1', 'F2'], 'FOO']) == [1, 2]
    assert list(df.loc[['F1', 'F2'], 'FOO.1']) == [5, 5]
    assert list(df.loc[['C1', 'C2'], 'FOO.1']) == [3, 4]
    assert list(df.loc[['C1', 'C2'], 'FOO']) == [0, 0]

    reversed_merge = merge_samples([control, fshd])
    pd.testing.assert_frame_equal(reversed_merge.var.sort_index(), merged.var.sort_index())
    pd.testing.assert_frame_equal(_sorted_frame(reversed_merge), _sorted_frame(merged))


def test_prefixed_cell_names_must_stay_unique():
    first = make_sample('S', genes=['DES'], barcodes=['1_X', 'Y'], matrix=[[1], [2]])
    second = make_sample('S_1', genes=['DES'], barcodes=['X', 'Y'], matrix=[[3], [4]])
    with pytest.raises(DuplicateCellError, match='S_1_X'):
        merge_samples([first, second])
