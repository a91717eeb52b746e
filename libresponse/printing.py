"""Labels and text tables for reporting response results."""

from typing import List, Optional, Sequence

import numpy as np

from libresponse.operators import Operator


def make_operator_label_vec(operators: Sequence[Operator]) -> List[str]:
    """One entry per operator component: the label of the operator it
    belongs to."""
    labels = []
    for operator in operators:
        labels.extend([operator.label] * operator.ncomp)
    return labels


def make_operator_component_vec(operators: Sequence[Operator]) -> List[str]:
    """One entry per operator component, ``<label>_<component>``."""
    labels = []
    for operator in operators:
        labels.extend(f"{operator.label}_{component}" for component in operator.component_labels)
    return labels


def make_operator_imaginary_vec(operators: Sequence[Operator]) -> List[bool]:
    """One entry per operator component: whether the operator is imaginary."""
    flags = []
    for operator in operators:
        flags.extend([operator.is_imaginary] * operator.ncomp)
    return flags


def format_results_with_labels(
    mat: np.ndarray,
    operator_labels: Sequence[str],
    component_labels: Optional[Sequence[str]] = None,
    fmt: str = "{:14.8f}",
    imaginary: Optional[Sequence[bool]] = None,
) -> str:
    """Format a square results matrix as a table with a header row and one
    labelled row per component.

    Rows and columns are labelled by `component_labels` when given,
    otherwise by `operator_labels`. With `imaginary`, a trailing ``imag``
    column marks the rows that belong to imaginary operators.
    """
    assert len(mat.shape) == 2
    assert mat.shape[0] == mat.shape[1] == len(operator_labels)
    labels = list(component_labels) if component_labels is not None else list(operator_labels)
    assert len(labels) == mat.shape[0]
    width = max([len(label) for label in labels] + [len(fmt.format(0.0))])
    lines = [" " * width + " " + " ".join(label.rjust(width) for label in labels)]
    for label, row in zip(labels, mat):
        lines.append(
            label.ljust(width) + " " + " ".join(fmt.format(value).rjust(width) for value in row)
        )
    if imaginary is not None:
        assert len(imaginary) == mat.shape[0]
        lines[0] += " imag"
        for i, flag in enumerate(imaginary, start=1):
            lines[i] += " " + ("yes" if flag else "no").rjust(4)
    return "\n".join(lines)
