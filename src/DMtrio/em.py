"""
Expectation-Maximization estimate of the sequencing error rate.

    INIT -> E_STEP -> M_STEP -> CONVERGED
                ^         |
                +---------+  (candidate differs from current rate)

The loop stops in CONVERGED when the M-step candidate equals the current
rate within ``EMSpec.tol``, or in MAX_ITER_REACHED after ``EMSpec.max_iter``
E/M rounds.
"""

from dataclasses import dataclass, field
from enum import Enum
import logging

import numpy as np
from typing import Optional

from .exceptions import ConvergenceError, PreconditionViolation
from .params import EMSpec, ModelParameters
from .sufficient_statistics import SufficientStatistics
from .trio_model import TrioModel
from .utils import almost_equal, as_site_collection

logger = logging.getLogger(__name__)


class EMState(Enum):
    INIT = "init"
    E_STEP = "e_step"
    M_STEP = "m_step"
    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"


@dataclass
class EMFitResult:
    """
    Outcome of a sequencing error rate fit.

    ``status`` is either ``EMState.CONVERGED`` or
    ``EMState.MAX_ITER_REACHED``.
    """

    sequencing_error_rate: float
    status: EMState
    n_iterations: int
    n_sites: int
    germline_statistic: float
    somatic_statistic: float
    params: ModelParameters = field(repr=False)
    rate_trace: np.ndarray = field(repr=False)
    log_likelihood_trace: np.ndarray = field(repr=False)

    @property
    def converged(self) -> bool:
        return self.status == EMState.CONVERGED

    @property
    def log_likelihood(self) -> float:
        """Log-likelihood at the last E-step."""
        if len(self.log_likelihood_trace) == 0:
            return -np.inf
        return float(self.log_likelihood_trace[-1])


class SequencingErrorEM:
    """
    EM fitter for the sequencing error rate of a trio model.

    Parameters
    ----------
    params : ModelParameters, optional
        Fixed model parameters; its sequencing error rate is replaced by
        ``spec.initial_sequencing_error_rate``.
    spec : EMSpec, optional
        Starting rate, iteration cap and tolerance.

    Attributes
    ----------
    model : TrioModel
        Model updated in place with each new estimate.
    stats : SufficientStatistics
        Accumulator of the latest E-step.
    state : EMState
        Current state of the loop.
    """

    def __init__(
        self,
        params: Optional[ModelParameters] = None,
        spec: Optional[EMSpec] = None,
    ):
        self.spec = spec if spec is not None else EMSpec()
        base = params if params is not None else ModelParameters()
        self.model = TrioModel.from_parameters(
            base.replace(sequencing_error_rate=self.spec.initial_sequencing_error_rate)
        )
        self.stats = SufficientStatistics()
        self.state = EMState.INIT

        self.n_iterations: int = 0
        self.n_sites: int = 0
        self.rate_trace: list[float] = []
        self.log_likelihood_trace: list[float] = []

    def fit(self, sites) -> "SequencingErrorEM":
        """
        Run EM on a site collection.

        Parameters
        ----------
        sites : array-like
            (n, 3, 4) read counts ordered child, mother, father.

        Returns
        -------
        SequencingErrorEM
            Self, for method chaining.
        """
        sites = as_site_collection(sites)
        self.n_sites = sites.shape[0]
        if self.n_sites == 0:
            raise PreconditionViolation("Cannot fit sequencing error rate without sites")

        self.state = EMState.INIT
        self.n_iterations = 0
        self.rate_trace = [self.model.sequencing_error_rate]
        self.log_likelihood_trace = []
        logger.info(
            "Fitting sequencing error rate on %d sites from %.6g",
            self.n_sites,
            self.model.sequencing_error_rate,
        )

        while self.n_iterations < self.spec.max_iter:
            self.state = EMState.E_STEP
            self.stats.clear()
            self.stats.update(self.model, sites)
            self.log_likelihood_trace.append(self.stats.log_likelihood)

            self.state = EMState.M_STEP
            candidate = self.stats.max_sequencing_error_rate()
            self.n_iterations += 1
            logger.debug(
                "EM iteration %d: rate %.10g -> %.10g, loglik %.6f",
                self.n_iterations,
                self.model.sequencing_error_rate,
                candidate,
                self.stats.log_likelihood,
            )

            if almost_equal(self.model.sequencing_error_rate, candidate, self.spec.tol):
                self.state = EMState.CONVERGED
                break

            self.model.set_sequencing_error_rate(candidate)
            self.rate_trace.append(candidate)
        else:
            self.state = EMState.MAX_ITER_REACHED

        if self.state == EMState.CONVERGED:
            logger.info(
                "EM converged after %d iterations: sequencing error rate %.6g",
                self.n_iterations,
                self.model.sequencing_error_rate,
            )
        else:
            logger.warning(
                "EM did not converge within %d iterations (last rate %.6g)",
                self.spec.max_iter,
                self.model.sequencing_error_rate,
            )
            if self.spec.raise_on_nonconvergence:
                raise ConvergenceError(
                    f"EM did not converge within {self.spec.max_iter} iterations",
                    result=self.get_result(),
                    details={"rate_trace": list(self.rate_trace)},
                )
        return self

    def get_result(self) -> EMFitResult:
        """
        Package the fit into an ``EMFitResult``.

        Returns
        -------
        EMFitResult
            Final rate, terminal status and traces.
        """
        if self.state not in (EMState.CONVERGED, EMState.MAX_ITER_REACHED):
            raise ValueError("Must call fit() before get_result()")

        return EMFitResult(
            sequencing_error_rate=self.model.sequencing_error_rate,
            status=self.state,
            n_iterations=self.n_iterations,
            n_sites=self.n_sites,
            germline_statistic=self.stats.germline_statistic,
            somatic_statistic=self.stats.somatic_statistic,
            params=self.model.params,
            rate_trace=np.array(self.rate_trace),
            log_likelihood_trace=np.array(self.log_likelihood_trace),
        )

    def __repr__(self) -> str:
        return (
            f"SequencingErrorEM(n_sites={self.n_sites}, "
            f"sequencing_error_rate={self.model.sequencing_error_rate:.6g}, "
            f"state={self.state.value})"
        )


# =============================================================================
# Convenience Functions
# =============================================================================


def fit_sequencing_error_rate(
    sites,
    params: Optional[ModelParameters] = None,
    spec: Optional[EMSpec] = None,
) -> EMFitResult:
    """
    Convenience function to fit the sequencing error rate and return results.

    Parameters
    ----------
    sites : array-like
        (n, 3, 4) read counts ordered child, mother, father.
    params : ModelParameters, optional
        Fixed model parameters.
    spec : EMSpec, optional
        EM settings.

    Returns
    -------
    EMFitResult
        Fit results.
    """
    return SequencingErrorEM(params, spec).fit(sites).get_result()
