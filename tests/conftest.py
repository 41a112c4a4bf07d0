"""Shared fixtures: synthetic count matrices and sample containers."""

import numpy as np
import pandas as pd
import pytest

from tests.helpers import make_sample


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def dense_counts(rng):
    """250 genes x 6 cells, every gene detected in every cell."""
    values = rng.integers(1, 6, size=(250, 6))
    return pd.DataFrame(
        values,
        index=[f'ENSG{i:011d}' for i in range(250)],
        columns=[f'AAAC{i}-1' for i in range(6)],
    )


@pytest.fixture
def fshd_sample():
    return make_sample(
        'FSHD1_1',
        genes=['DUX4', 'MYOD1', 'ACTA1'],
        barcodes=['AAA-1', 'CCC-1', 'GGG-1'],
        matrix=[[1, 0, 5], [2, 3, 0], [0, 1, 1]],
    )


@pytest.fixture
def control_sample():
    return make_sample(
        'Control_1',
        genes=['MYOD1', 'ACTA1', 'DES'],
        barcodes=['TTT-1', 'GGT-1'],
        matrix=[[4, 0, 2], [0, 6, 1]],
    )
