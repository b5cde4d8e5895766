import numpy as np
import pytest

from DMtrio.exceptions import PreconditionViolation
from DMtrio.population import (
    population_priors,
    population_priors_expanded,
    population_priors_single,
)
from DMtrio.utils import genotype_index


FREQUENCY_SETS = [
    [0.25, 0.25, 0.25, 0.25],
    [0.1, 0.2, 0.3, 0.4],
    [0.7, 0.1, 0.1, 0.1],
]


class TestPopulationPriorsSingle:
    """Tests for single genotype priors."""

    @pytest.mark.parametrize("theta", [1e-4, 0.001, 0.1, 10.0])
    @pytest.mark.parametrize("freqs", FREQUENCY_SETS)
    def test_sums_to_one(self, theta, freqs):
        priors = population_priors_single(theta, freqs)
        assert priors.shape == (16,)
        assert priors.sum() == pytest.approx(1.0, abs=1e-9)

    def test_closed_form(self):
        """Hardy-Weinberg with a theta weighted homozygote excess."""
        theta = 0.01
        f = np.array([0.1, 0.2, 0.3, 0.4])
        priors = population_priors_single(theta, f)

        aa = f[0] * (theta * f[0] + 1) / (theta + 1)
        ac = theta * f[0] * f[1] / (theta + 1)
        assert priors[genotype_index("A", "A")] == pytest.approx(aa, rel=1e-10)
        assert priors[genotype_index("A", "C")] == pytest.approx(ac, rel=1e-10)
        assert priors[genotype_index("C", "A")] == pytest.approx(ac, rel=1e-10)

    def test_small_theta_favours_homozygotes(self):
        priors = population_priors_single(0.001, [0.25] * 4)
        homozygous = priors[[0, 5, 10, 15]].sum()
        assert homozygous > 0.99

    def test_zero_frequency(self):
        priors = population_priors_single(0.001, [0.5, 0.5, 0.0, 0.0])
        assert priors[genotype_index("G", "G")] == 0.0
        assert priors[genotype_index("A", "T")] == 0.0
        assert priors.sum() == pytest.approx(1.0, abs=1e-9)

    def test_invalid_theta(self):
        with pytest.raises(PreconditionViolation):
            population_priors_single(0.0, [0.25] * 4)


class TestPopulationPriors:
    """Tests for the joint (mother, father) prior."""

    @pytest.mark.parametrize("theta", [1e-4, 0.001, 0.1, 10.0])
    @pytest.mark.parametrize("freqs", FREQUENCY_SETS)
    def test_sums_to_one(self, theta, freqs):
        priors = population_priors(theta, freqs)
        assert priors.shape == (256,)
        assert priors.sum() == pytest.approx(1.0, abs=1e-9)

    def test_expanded_is_exchangeable(self):
        expanded = population_priors_expanded(0.01, [0.1, 0.2, 0.3, 0.4])
        assert expanded.shape == (16, 16)
        np.testing.assert_allclose(expanded, expanded.T, rtol=1e-12)

    def test_marginal_is_single_prior(self):
        """Summing out the father leaves the single genotype prior."""
        theta, freqs = 0.01, [0.1, 0.2, 0.3, 0.4]
        expanded = population_priors_expanded(theta, freqs)
        np.testing.assert_allclose(
            expanded.sum(axis=1), population_priors_single(theta, freqs), rtol=1e-10
        )

    def test_not_independent(self):
        """Parents share a population, so the joint is not an outer product."""
        theta, freqs = 0.001, [0.25] * 4
        single = population_priors_single(theta, freqs)
        expanded = population_priors_expanded(theta, freqs)
        assert not np.allclose(expanded, np.outer(single, single))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
