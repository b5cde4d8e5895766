"""
Expected sufficient statistics of the sequencing error rate (E-step).

For every read, the posterior of the individual's sequenced genotype says
how likely the read is a homozygous match, a heterozygous match or a
mismatch. With multinomial read sampling the expected complete-data
log-likelihood of the error rate e is then

    Q(e) = H log(1 - e) + K log(1/2 - e/3) + M log(e/3)

where H, K and M are the posterior-weighted read totals of each class.
Setting dQ/de = 0 gives the quadratic

    T e^2 - (3/2 H + K + 5/2 M) e + 3/2 M = 0,   T = H + K + M

whose smaller root lies in [0, 1] and is the M-step estimate.
"""

import numpy as np
from scipy.special import xlogy

from .exceptions import PreconditionViolation
from .utils import (
    as_site_collection,
    HETEROZYGOUS_MATCH,
    HOMOZYGOUS_MATCH,
    MISMATCH,
)


_MAX_SEQUENCING_ERROR_RATE = 1.0 - 1e-9
_DEFAULT_CHUNK_SIZE = 4096


class SufficientStatistics:
    """
    Running totals of the E-step.

    ``update`` adds the contribution of a site collection under the given
    model; ``clear`` resets everything between EM iterations.

    Attributes
    ----------
    homozygous_matches : float
        Expected reads matching a homozygous sequenced genotype (H).
    heterozygous_matches : float
        Expected reads matching one allele of a heterozygous genotype (K).
    mismatches : float
        Expected reads matching neither allele (M).
    germline_statistic : float
        Expected number of sites with a germline mutation.
    somatic_statistic : float
        Expected number of sites with a somatic mutation.
    log_likelihood : float
        Log marginal likelihood of all accumulated sites.
    n_sites : int
        Number of accumulated sites.
    """

    def __init__(self, chunk_size: int = _DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise PreconditionViolation("chunk_size must be >= 1")
        self.chunk_size = chunk_size
        self.clear()

    def clear(self) -> "SufficientStatistics":
        """Reset all totals to zero."""
        self.homozygous_matches = 0.0
        self.heterozygous_matches = 0.0
        self.mismatches = 0.0
        self.germline_statistic = 0.0
        self.somatic_statistic = 0.0
        self.log_likelihood = 0.0
        self.n_sites = 0
        return self

    def update(self, model, sites) -> "SufficientStatistics":
        """
        Accumulate the expected statistics of ``sites`` under ``model``.

        Parameters
        ----------
        model : TrioModel
            Model whose current parameters define the posteriors.
        sites : array-like
            (n, 3, 4) read counts, or a sequence of (3, 4) sites.

        Returns
        -------
        SufficientStatistics
            Self, for method chaining.
        """
        sites = as_site_collection(sites)
        for start in range(0, sites.shape[0], self.chunk_size):
            chunk = sites[start:start + self.chunk_size]
            peel = model.peel(chunk)
            counts = chunk.astype(float)
            posteriors = peel.posteriors

            self.homozygous_matches += float(
                np.einsum("nig,gb,nib->", posteriors, HOMOZYGOUS_MATCH, counts)
            )
            self.heterozygous_matches += float(
                np.einsum("nig,gb,nib->", posteriors, HETEROZYGOUS_MATCH, counts)
            )
            self.mismatches += float(
                np.einsum("nig,gb,nib->", posteriors, MISMATCH, counts)
            )
            self.germline_statistic += float(peel.germline_mutation_probability.sum())
            self.somatic_statistic += float(peel.somatic_mutation_probability.sum())
            self.log_likelihood += float(peel.log_likelihood.sum())
            self.n_sites += chunk.shape[0]
        return self

    @property
    def total_reads(self) -> float:
        return self.homozygous_matches + self.heterozygous_matches + self.mismatches

    def expected_log_likelihood(self, sequencing_error_rate: float) -> float:
        """Q(e), the expected complete-data log-likelihood of the reads."""
        e = float(sequencing_error_rate)
        return float(
            xlogy(self.homozygous_matches, 1.0 - e)
            + xlogy(self.heterozygous_matches, 0.5 - e / 3.0)
            + xlogy(self.mismatches, e / 3.0)
        )

    def max_sequencing_error_rate(self) -> float:
        """
        Sequencing error rate maximising ``expected_log_likelihood``.

        Returns
        -------
        float
            Estimate in [0, 1).
        """
        h = self.homozygous_matches
        k = self.heterozygous_matches
        m = self.mismatches
        total = h + k + m
        if total <= 0:
            raise PreconditionViolation(
                "No reads accumulated; cannot estimate sequencing error rate",
                details={"n_sites": self.n_sites},
            )

        b = 1.5 * h + k + 2.5 * m
        discriminant = max(b * b - 6.0 * total * m, 0.0)
        # Smaller root of the quadratic without cancellation
        rate = 3.0 * m / (b + np.sqrt(discriminant))
        return float(min(max(rate, 0.0), _MAX_SEQUENCING_ERROR_RATE))

    def __repr__(self) -> str:
        return (
            f"SufficientStatistics(n_sites={self.n_sites}, "
            f"homozygous_matches={self.homozygous_matches:.6g}, "
            f"heterozygous_matches={self.heterozygous_matches:.6g}, "
            f"mismatches={self.mismatches:.6g})"
        )
