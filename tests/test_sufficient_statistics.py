import numpy as np
import pytest
from scipy.optimize import minimize_scalar

from DMtrio.exceptions import PreconditionViolation
from DMtrio.sufficient_statistics import SufficientStatistics
from DMtrio.trio_model import TrioModel


HOMOZYGOUS_SITES = np.tile(np.array([[40, 0, 0, 0]] * 3), (3, 1, 1))


def _stats_with(h, k, m):
    stats = SufficientStatistics()
    stats.homozygous_matches = h
    stats.heterozygous_matches = k
    stats.mismatches = m
    return stats


@pytest.fixture
def sites():
    rng = np.random.default_rng(11)
    sites = np.zeros((20, 3, 4), dtype=np.int64)
    sites[:, :, 0] = rng.integers(20, 60, size=(20, 3))
    sites[:, :, 1:] = rng.integers(0, 3, size=(20, 3, 3))
    return sites


class TestSufficientStatisticsUpdate:
    """Tests for accumulating the E-step."""

    def test_starts_cleared(self):
        stats = SufficientStatistics()
        assert stats.total_reads == 0.0
        assert stats.n_sites == 0
        assert stats.log_likelihood == 0.0

    def test_clear(self, sites):
        stats = SufficientStatistics().update(TrioModel(), sites)
        assert stats.total_reads > 0
        stats.clear()
        assert stats.total_reads == 0.0
        assert stats.germline_statistic == 0.0
        assert stats.n_sites == 0

    def test_total_reads(self, sites):
        """Every read falls into exactly one class."""
        stats = SufficientStatistics().update(TrioModel(), sites)
        assert stats.total_reads == pytest.approx(sites.sum(), rel=1e-10)
        assert stats.n_sites == 20

    def test_update_accumulates(self, sites):
        model = TrioModel()
        once = SufficientStatistics().update(model, sites)
        twice = SufficientStatistics().update(model, sites).update(model, sites)

        assert twice.homozygous_matches == pytest.approx(2 * once.homozygous_matches)
        assert twice.heterozygous_matches == pytest.approx(2 * once.heterozygous_matches)
        assert twice.mismatches == pytest.approx(2 * once.mismatches)
        assert twice.log_likelihood == pytest.approx(2 * once.log_likelihood)
        assert twice.n_sites == 40

    def test_chunking_does_not_change_totals(self, sites):
        model = TrioModel()
        whole = SufficientStatistics().update(model, sites)
        chunked = SufficientStatistics(chunk_size=1).update(model, sites)

        assert chunked.homozygous_matches == pytest.approx(whole.homozygous_matches, rel=1e-10)
        assert chunked.mismatches == pytest.approx(whole.mismatches, rel=1e-10)
        assert chunked.germline_statistic == pytest.approx(whole.germline_statistic, rel=1e-8)

    def test_mutation_statistics_bounded(self, sites):
        stats = SufficientStatistics().update(TrioModel(), sites)
        assert 0.0 <= stats.germline_statistic <= stats.n_sites
        assert 0.0 <= stats.somatic_statistic <= stats.n_sites

    def test_invalid_chunk_size(self):
        with pytest.raises(PreconditionViolation):
            SufficientStatistics(chunk_size=0)


class TestMaxSequencingErrorRate:
    """Tests for the closed-form M-step."""

    def test_matches_numerical_maximum(self):
        stats = _stats_with(1000.0, 400.0, 30.0)
        result = minimize_scalar(
            lambda e: -stats.expected_log_likelihood(e),
            bounds=(1e-9, 0.99),
            method="bounded",
            options={"xatol": 1e-12},
        )
        assert stats.max_sequencing_error_rate() == pytest.approx(result.x, abs=1e-6)

    def test_without_heterozygous_reads(self):
        """With K = 0 the estimate is the mismatch fraction."""
        stats = _stats_with(970.0, 0.0, 30.0)
        assert stats.max_sequencing_error_rate() == pytest.approx(0.03, rel=1e-12)

    def test_no_mismatches(self):
        assert _stats_with(500.0, 200.0, 0.0).max_sequencing_error_rate() == 0.0

    def test_only_mismatches_is_capped(self):
        rate = _stats_with(0.0, 0.0, 10.0).max_sequencing_error_rate()
        assert 0.99 < rate < 1.0

    def test_no_reads_raise(self):
        with pytest.raises(PreconditionViolation, match="No reads"):
            SufficientStatistics().max_sequencing_error_rate()

    def test_homozygous_reads(self):
        stats = SufficientStatistics().update(
            TrioModel(sequencing_error_rate=0.01), HOMOZYGOUS_SITES
        )
        assert stats.max_sequencing_error_rate() < 1e-6

    def test_expected_log_likelihood_zero_mismatches(self):
        """0 log 0 terms contribute nothing."""
        stats = _stats_with(100.0, 0.0, 0.0)
        assert stats.expected_log_likelihood(0.0) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
