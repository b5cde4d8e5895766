"""
Genotype priors from population nucleotide frequencies.

Alleles are drawn from a Dirichlet-multinomial with concentration
theta * frequencies, so that two draws coincide more often than under
Hardy-Weinberg as theta (the population mutation rate) shrinks:

    P(ii) = f_i (theta f_i + 1) / (theta + 1)
    P(ij) = theta f_i f_j / (theta + 1),   i != j

The joint prior of the two parents draws all four parental alleles from
the same population, so it is not the outer product of the single priors.
"""

import numpy as np

from .exceptions import PreconditionViolation
from .utils import (
    dirichlet_multinomial_logpmf,
    GENOTYPE_ALLELE_COUNTS,
    GENOTYPE_COUNT,
    NUCLEOTIDE_COUNT,
)


# Allele counts of the four parental alleles for every (mother, father) pair
_PARENT_PAIR_ALLELE_COUNTS = (
    GENOTYPE_ALLELE_COUNTS[:, None, :] + GENOTYPE_ALLELE_COUNTS[None, :, :]
).reshape(GENOTYPE_COUNT * GENOTYPE_COUNT, NUCLEOTIDE_COUNT)


def _population_alphas(theta: float, nucleotide_frequencies) -> np.ndarray:
    freqs = np.asarray(nucleotide_frequencies, dtype=float)
    if theta <= 0:
        raise PreconditionViolation("population mutation rate must be > 0")
    if freqs.shape != (NUCLEOTIDE_COUNT,) or np.any(freqs < 0):
        raise PreconditionViolation("nucleotide frequencies must be 4 values >= 0")
    return theta * freqs


def population_priors_single(theta: float, nucleotide_frequencies) -> np.ndarray:
    """
    Prior probability of each of the 16 ordered genotypes of one individual.

    Parameters
    ----------
    theta : float
        Population mutation rate (> 0).
    nucleotide_frequencies : array-like
        Frequencies of A, C, G, T.

    Returns
    -------
    np.ndarray
        Shape (16,), sums to 1.
    """
    alphas = _population_alphas(theta, nucleotide_frequencies)
    return np.exp(
        dirichlet_multinomial_logpmf(GENOTYPE_ALLELE_COUNTS, alphas, ordered=True)
    )


def population_priors(theta: float, nucleotide_frequencies) -> np.ndarray:
    """
    Joint prior of the (mother, father) genotype pair.

    Parameters
    ----------
    theta : float
        Population mutation rate (> 0).
    nucleotide_frequencies : array-like
        Frequencies of A, C, G, T.

    Returns
    -------
    np.ndarray
        Shape (256,), index 16 * mother + father, sums to 1.
    """
    alphas = _population_alphas(theta, nucleotide_frequencies)
    return np.exp(
        dirichlet_multinomial_logpmf(_PARENT_PAIR_ALLELE_COUNTS, alphas, ordered=True)
    )


def population_priors_expanded(theta: float, nucleotide_frequencies) -> np.ndarray:
    """Joint parent prior as a 16 x 16 matrix (rows mother, columns father)."""
    return population_priors(theta, nucleotide_frequencies).reshape(
        GENOTYPE_COUNT, GENOTYPE_COUNT
    )
