"""
Germline transmission from parents to child.

Each parent transmits one of its two alleles with equal probability. The
transmitted allele is unchanged with probability 1 - mu, otherwise it
mutates to each of the three other nucleotides with probability mu / 3.

Every matrix comes in three variants:
    full         all transmission paths
    no_mutation  only paths where no transmitted allele mutated
    mutation     the complement (at least one mutated allele)
so that ``no_mutation + mutation == full`` holds elementwise. The
mutation-present variant is what the numerator of the de novo mutation
probability is built from.
"""

import numpy as np

from .exceptions import PreconditionViolation
from .utils import GENOTYPE_ALLELES, NUCLEOTIDE_COUNT


def _check_rate(rate: float) -> float:
    rate = float(rate)
    if not 0.0 <= rate <= 1.0:
        raise PreconditionViolation("germline mutation rate must be in [0, 1]")
    return rate


def germline_match_probabilities(rate: float) -> tuple[float, float, float]:
    """
    Transmission probabilities of a child allele given one parent.

    Returns
    -------
    tuple[float, float, float]
        (homozygous_match, heterozygous_match, no_match): probability that
        the transmitted allele is a given nucleotide when the parent carries
        two, one or zero copies of it.
    """
    rate = _check_rate(rate)
    homozygous_match = 1.0 - rate
    heterozygous_match = 0.5 * (1.0 - rate) + 0.5 * rate / 3.0
    no_match = rate / 3.0
    return homozygous_match, heterozygous_match, no_match


def germline_probability_mat_single(rate: float, variant: str = "full") -> np.ndarray:
    """
    Single parent transmission matrix.

    Parameters
    ----------
    rate : float
        Germline mutation rate per transmitted allele.
    variant : str
        'full', 'no_mutation' or 'mutation'.

    Returns
    -------
    np.ndarray
        Shape (16, 4): parent genotype -> transmitted nucleotide.
    """
    rate = _check_rate(rate)
    # same[g, k, c]: allele k of genotype g is nucleotide c
    same = GENOTYPE_ALLELES[:, :, None] == np.arange(NUCLEOTIDE_COUNT)[None, None, :]

    unchanged = 0.5 * (1.0 - rate) * same.sum(axis=1)
    mutated = 0.5 * (rate / 3.0) * (~same).sum(axis=1)

    if variant == "full":
        return unchanged + mutated
    if variant == "no_mutation":
        return unchanged
    if variant == "mutation":
        return mutated
    raise PreconditionViolation(f"Unknown germline matrix variant {variant!r}")


def germline_probability_mat(rate: float, variant: str = "full") -> np.ndarray:
    """
    Parent pair to child genotype transmission matrix.

    The child's ordered genotype is (maternal allele, paternal allele), so
    the matrix is the Kronecker product of two single parent matrices.

    Parameters
    ----------
    rate : float
        Germline mutation rate per transmitted allele.
    variant : str
        'full', 'no_mutation' (neither allele mutated) or 'mutation'
        (at least one allele mutated).

    Returns
    -------
    np.ndarray
        Shape (256, 16): row 16 * mother + father, column child genotype.
    """
    if variant == "mutation":
        return germline_probability_mat(rate, "full") - germline_probability_mat(
            rate, "no_mutation"
        )
    single = germline_probability_mat_single(rate, variant)
    return np.kron(single, single)
