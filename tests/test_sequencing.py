import numpy as np
import pytest
from scipy.stats import dirichlet_multinomial

from DMtrio.exceptions import NumericalInstabilityError, PreconditionViolation
from DMtrio.sequencing import (
    alpha_frequencies,
    alphas,
    scaled_sequencing_likelihoods,
    sequencing_log_likelihoods,
    sequencing_probability_mat,
    spectrum_probability,
)
from DMtrio.utils import genotype_index


class TestAlphas:
    """Tests for the per genotype read concentrations."""

    def test_frequencies_rows_sum_to_one(self):
        freqs = alpha_frequencies(0.005)
        assert freqs.shape == (16, 4)
        np.testing.assert_allclose(freqs.sum(axis=1), 1.0)

    def test_homozygous_row(self):
        eps = 0.03
        freqs = alpha_frequencies(eps)
        np.testing.assert_allclose(
            freqs[genotype_index("A", "A")], [1 - eps, eps / 3, eps / 3, eps / 3]
        )

    def test_heterozygous_row(self):
        eps = 0.03
        freqs = alpha_frequencies(eps)
        het = 0.5 - eps / 3
        np.testing.assert_allclose(
            freqs[genotype_index("C", "G")], [eps / 3, het, het, eps / 3]
        )

    def test_scaled_by_dispersion(self):
        np.testing.assert_allclose(alphas(0.005, 250.0).sum(axis=1), 250.0)

    def test_invalid_arguments(self):
        with pytest.raises(PreconditionViolation):
            alphas(1.0, 1000.0)
        with pytest.raises(PreconditionViolation):
            alphas(0.005, 0.0)


class TestSequencingLikelihoods:
    """Tests for the Dirichlet-multinomial read likelihoods."""

    def test_matches_scipy(self):
        genotype_alphas = alphas(0.005, 1000.0)
        counts = np.array([12, 9, 1, 0])
        result = sequencing_log_likelihoods(counts, genotype_alphas)

        ac = genotype_index("A", "C")
        expected = dirichlet_multinomial.logpmf(counts, genotype_alphas[ac], counts.sum())
        assert result.shape == (16,)
        np.testing.assert_allclose(result[ac], expected, rtol=1e-10)

    def test_site_shape(self):
        site = [[30, 0, 0, 0], [15, 15, 0, 0], [0, 0, 0, 0]]
        mat = sequencing_probability_mat(site, alphas(0.005, 1000.0))
        assert mat.shape == (3, 16)

    def test_no_reads_is_uninformative(self):
        probs = spectrum_probability([0, 0, 0, 0], alphas(0.005, 1000.0))
        np.testing.assert_array_equal(probs, 1.0)

    def test_homozygous_reads(self):
        probs = spectrum_probability([30, 0, 0, 0], alphas(0.005, 1000.0))
        assert np.argmax(probs) == genotype_index("A", "A")

    def test_heterozygous_reads(self):
        probs = spectrum_probability([15, 15, 0, 0], alphas(0.005, 1000.0))
        ac, ca, aa = genotype_index("A", "C"), genotype_index("C", "A"), genotype_index("A", "A")
        assert probs[ac] == pytest.approx(probs[ca])
        assert probs[ac] > 1e6 * probs[aa]

    def test_negative_counts_raise(self):
        with pytest.raises(PreconditionViolation):
            sequencing_probability_mat(
                [[1, 0, 0, 0], [0, -1, 0, 0], [0, 0, 0, 0]], alphas(0.005, 1000.0)
            )


class TestScaledSequencingLikelihoods:
    """Tests for the underflow-safe likelihoods."""

    def test_deep_coverage(self):
        sites = np.array([[[5000, 10, 0, 0], [20000, 0, 0, 0], [2500, 2500, 0, 0]]])
        log_likelihoods, log_scale, scaled = scaled_sequencing_likelihoods(
            sites, alphas(0.005, 1000.0)
        )

        assert scaled.shape == (1, 3, 16)
        assert np.all(np.isfinite(log_scale))
        np.testing.assert_allclose(scaled.max(axis=-1), 1.0)
        np.testing.assert_allclose(
            np.log(scaled[0, 0, 0]) + log_scale[0, 0], log_likelihoods[0, 0, 0]
        )

    def test_impossible_reads_raise(self):
        """Without sequencing error three distinct bases fit no genotype."""
        sites = np.array([[[10, 10, 10, 0], [10, 0, 0, 0], [10, 0, 0, 0]]])
        with pytest.raises(NumericalInstabilityError, match="zero likelihood"):
            scaled_sequencing_likelihoods(sites, alphas(0.0, 1000.0))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
