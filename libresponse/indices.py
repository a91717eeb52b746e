"""Occupied-virtual rotation index sets restricted to molecular fragments.

Orbitals are assumed to be ordered by fragment within each subspace: the
occupied orbitals of fragment 1 come first, then those of fragment 2, and so
on, followed by all virtual orbitals in the same fragment order.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from libresponse.core import ConfigurationError, PreconditionError, SpinChannel

Occupations = Tuple[int, int, int, int]


def _as_readonly(indices: np.ndarray) -> np.ndarray:
    indices = np.array(indices, dtype=int)
    indices.flags.writeable = False
    return indices


def fragment_table_columns(
    fragment_occupations: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Split a fragment occupation table into ``nocc_frgm_alph,
    nvirt_frgm_alph, nocc_frgm_beta, nvirt_frgm_beta``."""
    table = np.asarray(fragment_occupations)
    if table.ndim != 2 or table.shape[1] != 4 or table.shape[0] == 0:
        raise PreconditionError(
            "fragment occupations must have one row per fragment and 4 columns, "
            f"got shape {table.shape}"
        )
    if np.any(table < 0):
        raise PreconditionError("fragment occupations must be non-negative")
    table = table.astype(int)
    norb_frgm = table[:, 1]
    nocc_frgm_alph = table[:, 2]
    nocc_frgm_beta = table[:, 3]
    if np.any(nocc_frgm_alph > norb_frgm) or np.any(nocc_frgm_beta > norb_frgm):
        raise PreconditionError("a fragment has more occupied orbitals than orbitals")
    return (
        nocc_frgm_alph,
        norb_frgm - nocc_frgm_alph,
        nocc_frgm_beta,
        norb_frgm - nocc_frgm_beta,
    )


def form_indices_restricted_local_occ_all_virt(
    nocc_frgm: Sequence[int], nvirt_frgm: Sequence[int], nvirt: Optional[int] = None
) -> List[np.ndarray]:
    """For each fragment, the flattened indices pairing the fragment's own
    occupied orbitals with every virtual orbital.

    `nvirt` is the number of virtual orbitals of the whole system, which
    sets the stride of the flattened index; by default it is the sum over
    fragments.
    """
    nocc_frgm = np.asarray(nocc_frgm, dtype=int)
    if nvirt is None:
        nvirt = int(np.sum(nvirt_frgm))
    occ_starts = np.concatenate(([0], np.cumsum(nocc_frgm)[:-1]))
    indices = []
    for occ_start, nocc in zip(occ_starts, nocc_frgm):
        indices.append(
            np.asarray(
                [(i * nvirt) + a for i in range(occ_start, occ_start + nocc) for a in range(nvirt)],
                dtype=int,
            )
        )
    return indices


def form_indices_restricted_pooled(
    nocc_frgm: Sequence[int], nvirt_frgm: Sequence[int], nvirt: Optional[int] = None
) -> np.ndarray:
    """The union over all fragments of
    `form_indices_restricted_local_occ_all_virt`, sorted and without
    duplicates."""
    per_fragment = form_indices_restricted_local_occ_all_virt(nocc_frgm, nvirt_frgm, nvirt)
    if not per_fragment:
        return np.zeros(0, dtype=int)
    return np.unique(np.concatenate(per_fragment))


@dataclass(frozen=True)
class RestrictedIndices:
    """The active occupied-virtual rotations of each spin channel."""

    alph: np.ndarray
    beta: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "alph", _as_readonly(self.alph))
        object.__setattr__(self, "beta", _as_readonly(self.beta))

    def __getitem__(self, channel: SpinChannel) -> np.ndarray:
        if SpinChannel(channel) == SpinChannel.alph:
            return self.alph
        return self.beta

    @classmethod
    def from_fragment_occupations(
        cls,
        fragment_occupations: np.ndarray,
        frgm_response_idx: int = 0,
        occupations: Optional[Occupations] = None,
    ) -> "RestrictedIndices":
        """Build the index sets from a fragment occupation table.

        Parameters
        ----------
        fragment_occupations : np.ndarray
            One row per fragment, ``[fragment_id, norb, nocc_alph, nocc_beta]``.
        frgm_response_idx : int
            0 pools the rotations of all fragments; ``k > 0`` selects only
            fragment ``k`` (one-based).
        occupations : tuple, optional
            The global ``[nocc_alph, nvirt_alph, nocc_beta, nvirt_beta]``; when
            given, the fragments must fit inside it.
        """
        (
            nocc_frgm_alph,
            nvirt_frgm_alph,
            nocc_frgm_beta,
            nvirt_frgm_beta,
        ) = fragment_table_columns(fragment_occupations)
        nfrgm = len(nocc_frgm_alph)
        nvirt_alph = None
        nvirt_beta = None
        if occupations is not None:
            nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = [int(x) for x in occupations]
            if (
                np.sum(nocc_frgm_alph) > nocc_alph
                or np.sum(nvirt_frgm_alph) > nvirt_alph
                or np.sum(nocc_frgm_beta) > nocc_beta
                or np.sum(nvirt_frgm_beta) > nvirt_beta
            ):
                raise PreconditionError(
                    "fragment occupations exceed the occupations of the whole system"
                )
        if not 0 <= frgm_response_idx <= nfrgm:
            raise ConfigurationError(
                f"_frgm_response_idx = {frgm_response_idx} but there are {nfrgm} fragments"
            )
        if frgm_response_idx > 0:
            alph = form_indices_restricted_local_occ_all_virt(
                nocc_frgm_alph, nvirt_frgm_alph, nvirt_alph
            )
            beta = form_indices_restricted_local_occ_all_virt(
                nocc_frgm_beta, nvirt_frgm_beta, nvirt_beta
            )
            return cls(alph=alph[frgm_response_idx - 1], beta=beta[frgm_response_idx - 1])
        return cls(
            alph=form_indices_restricted_pooled(nocc_frgm_alph, nvirt_frgm_alph, nvirt_alph),
            beta=form_indices_restricted_pooled(nocc_frgm_beta, nvirt_frgm_beta, nvirt_beta),
        )
