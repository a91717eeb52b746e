import numpy as np

import pytest

from libresponse.core import ConfigurationError, PreconditionError, SpinChannel
from libresponse.indices import (
    RestrictedIndices,
    form_indices_restricted_local_occ_all_virt,
    form_indices_restricted_pooled,
    fragment_table_columns,
)

# [fragment_id, norb, nocc_alph, nocc_beta]
FRAGMENT_OCCUPATIONS = np.array([[1, 4, 2, 2], [2, 3, 1, 0], [3, 2, 1, 1]])
OCCUPATIONS = (4, 5, 3, 6)


def test_fragment_table_columns() -> None:
    nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = fragment_table_columns(FRAGMENT_OCCUPATIONS)
    np.testing.assert_equal(nocc_alph, [2, 1, 1])
    np.testing.assert_equal(nvirt_alph, [2, 2, 1])
    np.testing.assert_equal(nocc_beta, [2, 0, 1])
    np.testing.assert_equal(nvirt_beta, [2, 3, 1])

    with pytest.raises(PreconditionError):
        fragment_table_columns(np.array([1, 4, 2, 2]))
    with pytest.raises(PreconditionError):
        fragment_table_columns(np.array([[1, 1, 2, 0]]))


def test_local_occ_all_virt() -> None:
    indices = form_indices_restricted_local_occ_all_virt([1, 1], [1, 1])
    assert len(indices) == 2
    np.testing.assert_equal(indices[0], [0, 1])
    np.testing.assert_equal(indices[1], [2, 3])

    # The stride is the number of virtuals of the whole system.
    indices = form_indices_restricted_local_occ_all_virt([2, 1], [1, 1], nvirt=3)
    np.testing.assert_equal(indices[0], [0, 1, 2, 3, 4, 5])
    np.testing.assert_equal(indices[1], [6, 7, 8])


def test_pooled_is_union_of_fragments() -> None:
    nfrgm = FRAGMENT_OCCUPATIONS.shape[0]
    pooled = RestrictedIndices.from_fragment_occupations(
        FRAGMENT_OCCUPATIONS, 0, OCCUPATIONS
    )
    per_fragment = [
        RestrictedIndices.from_fragment_occupations(FRAGMENT_OCCUPATIONS, k, OCCUPATIONS)
        for k in range(1, nfrgm + 1)
    ]
    for channel in SpinChannel:
        union = np.unique(np.concatenate([indices[channel] for indices in per_fragment]))
        np.testing.assert_equal(pooled[channel], union)
        # no duplicates and sorted
        assert len(np.unique(pooled[channel])) == len(pooled[channel])
        assert np.all(np.diff(pooled[channel]) > 0)

    np.testing.assert_equal(
        pooled.alph,
        form_indices_restricted_pooled([2, 1, 1], [2, 2, 1], nvirt=OCCUPATIONS[1]),
    )


def test_restricted_indices_values() -> None:
    # alpha: nvirt = 5, fragment 2 owns occupied orbital 2
    indices = RestrictedIndices.from_fragment_occupations(FRAGMENT_OCCUPATIONS, 2, OCCUPATIONS)
    np.testing.assert_equal(indices.alph, [10, 11, 12, 13, 14])
    # beta: fragment 2 has no occupied orbitals
    assert len(indices.beta) == 0
    assert indices[SpinChannel.alph] is indices.alph


def test_restricted_indices_are_read_only() -> None:
    indices = RestrictedIndices.from_fragment_occupations(FRAGMENT_OCCUPATIONS, 0, OCCUPATIONS)
    with pytest.raises(ValueError):
        indices.alph[0] = 100
    with pytest.raises(AttributeError):
        indices.alph = np.arange(3)


def test_restricted_indices_errors() -> None:
    with pytest.raises(ConfigurationError):
        RestrictedIndices.from_fragment_occupations(FRAGMENT_OCCUPATIONS, 4, OCCUPATIONS)
    with pytest.raises(ConfigurationError):
        RestrictedIndices.from_fragment_occupations(FRAGMENT_OCCUPATIONS, -1, OCCUPATIONS)
    with pytest.raises(PreconditionError):
        RestrictedIndices.from_fragment_occupations(FRAGMENT_OCCUPATIONS, 0, (3, 5, 3, 6))
