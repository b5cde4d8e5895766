"""
Dirichlet-multinomial read likelihoods of the 16 candidate genotypes.

Given a genotype, reads are drawn from a Dirichlet-multinomial whose mean
is the allele composition contaminated by sequencing error:

    both alleles are the base     1 - eps
    one allele is the base        1/2 - eps/3
    base absent from genotype     eps/3

and whose total concentration is the dispersion.
"""

import numpy as np

from .exceptions import NumericalInstabilityError, PreconditionViolation
from .utils import (
    as_site_collection,
    as_trio_counts,
    dirichlet_multinomial_logpmf,
    GENOTYPE_ALLELE_COUNTS,
    INDIVIDUALS,
)


def alpha_frequencies(sequencing_error_rate: float) -> np.ndarray:
    """
    Expected read composition of each genotype.

    Returns
    -------
    np.ndarray
        Shape (16, 4), rows sum to 1.
    """
    rate = float(sequencing_error_rate)
    if not 0.0 <= rate < 1.0:
        raise PreconditionViolation("sequencing error rate must be in [0, 1)")
    return np.where(
        GENOTYPE_ALLELE_COUNTS == 2,
        1.0 - rate,
        np.where(GENOTYPE_ALLELE_COUNTS == 1, 0.5 - rate / 3.0, rate / 3.0),
    )


def alphas(sequencing_error_rate: float, dirichlet_dispersion: float) -> np.ndarray:
    """Dirichlet concentrations per genotype, shape (16, 4)."""
    if dirichlet_dispersion <= 0:
        raise PreconditionViolation("dirichlet dispersion must be > 0")
    return alpha_frequencies(sequencing_error_rate) * dirichlet_dispersion


def sequencing_log_likelihoods(counts, genotype_alphas: np.ndarray) -> np.ndarray:
    """
    Log-likelihood of read counts under every genotype.

    Parameters
    ----------
    counts : np.ndarray
        Read counts with trailing axis (A, C, G, T); any leading shape.
    genotype_alphas : np.ndarray
        Concentrations from ``alphas``, shape (16, 4).

    Returns
    -------
    np.ndarray
        Shape ``counts.shape[:-1] + (16,)``.
    """
    counts = np.asarray(counts)
    return dirichlet_multinomial_logpmf(counts[..., None, :], genotype_alphas)


def spectrum_probability(nucleotide_counts, genotype_alphas: np.ndarray) -> np.ndarray:
    """Likelihood of one individual's read counts under each genotype (16,)."""
    return np.exp(sequencing_log_likelihoods(nucleotide_counts, genotype_alphas))


def sequencing_probability_mat(site, genotype_alphas: np.ndarray) -> np.ndarray:
    """
    Likelihood matrix of one site.

    Parameters
    ----------
    site : array-like
        (3, 4) read counts ordered child, mother, father.
    genotype_alphas : np.ndarray
        Concentrations from ``alphas``.

    Returns
    -------
    np.ndarray
        Shape (3, 16). Unscaled; may underflow to 0 at extreme depth.
    """
    site = as_trio_counts(site)
    return np.exp(sequencing_log_likelihoods(site, genotype_alphas))


def scaled_sequencing_likelihoods(
    sites, genotype_alphas: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Likelihoods divided by each individual's best genotype likelihood.

    The per individual scale cancels in every ratio and posterior, and keeps
    the exponentiated values in (0, 1] however deep the coverage.

    Parameters
    ----------
    sites : array-like
        (n, 3, 4) read counts.
    genotype_alphas : np.ndarray
        Concentrations from ``alphas``.

    Returns
    -------
    tuple[np.ndarray, np.ndarray, np.ndarray]
        (log_likelihoods (n, 3, 16), log_scale (n, 3), scaled (n, 3, 16)).
    """
    sites = as_site_collection(sites)
    log_likelihoods = sequencing_log_likelihoods(sites, genotype_alphas)
    log_scale = log_likelihoods.max(axis=-1)

    impossible = ~np.isfinite(log_scale)
    if np.any(impossible):
        site_idx, ind_idx = np.argwhere(impossible)[0]
        raise NumericalInstabilityError(
            "Reads have zero likelihood under every genotype",
            details={
                "site": int(site_idx),
                "individual": INDIVIDUALS[ind_idx],
                "counts": sites[site_idx, ind_idx].tolist(),
            },
        )

    scaled = np.exp(log_likelihoods - log_scale[..., None])
    return log_likelihoods, log_scale, scaled
