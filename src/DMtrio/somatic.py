"""
Somatic mutation between the germline and the sequenced genotype.

Each allele changes independently under a Jukes-Cantor model:

    P(same)  = 1/4 + 3/4 exp(-4/3 s)
    P(other) = 1/4 - 1/4 exp(-4/3 s)

The diagonal of the genotype matrix is the probability that the sequenced
tissue carries the germline genotype unchanged; the off-diagonal part is
the probability of an observable somatic change.
"""

import numpy as np

from .exceptions import PreconditionViolation
from .utils import NUCLEOTIDE_COUNT


def somatic_mutation(rate: float) -> tuple[float, float]:
    """(same, other) nucleotide transition probabilities for rate ``rate``."""
    rate = float(rate)
    if rate < 0:
        raise PreconditionViolation("somatic mutation rate must be >= 0")
    exp_term = np.exp(-4.0 / 3.0 * rate)
    other = 0.25 - 0.25 * exp_term
    return other + exp_term, other


def somatic_probability_mat_nucleotide(rate: float) -> np.ndarray:
    """4 x 4 nucleotide transition matrix."""
    same, other = somatic_mutation(rate)
    return np.full((NUCLEOTIDE_COUNT, NUCLEOTIDE_COUNT), other) + (
        same - other
    ) * np.eye(NUCLEOTIDE_COUNT)


def somatic_probability_mat(rate: float) -> np.ndarray:
    """
    Genotype transition matrix.

    Parameters
    ----------
    rate : float
        Somatic mutation rate (>= 0).

    Returns
    -------
    np.ndarray
        Shape (16, 16): germline genotype (rows) -> sequenced genotype.
        Rows sum to 1.
    """
    nucleotide_mat = somatic_probability_mat_nucleotide(rate)
    return np.kron(nucleotide_mat, nucleotide_mat)


def somatic_probability_mat_diag(rate: float) -> np.ndarray:
    """Diagonal part of ``somatic_probability_mat``: no somatic change."""
    return np.diag(np.diag(somatic_probability_mat(rate)))


def somatic_probability_mat_off(rate: float) -> np.ndarray:
    """Off-diagonal part of ``somatic_probability_mat``: a somatic change."""
    mat = somatic_probability_mat(rate)
    return mat - np.diag(np.diag(mat))
