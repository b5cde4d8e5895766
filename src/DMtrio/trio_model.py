"""
Trio model for the probability of a de novo mutation.

The pedigree is peeled bottom-up. For every individual the read likelihood
of each sequenced genotype is pushed through the somatic matrix onto the
germline genotype; the child's message is projected onto the 256 parent
pairs with the germline transmission matrix, multiplied by the parents'
messages and by the joint parent prior, and summed.

The probability of mutation is numerator / denominator where the
denominator sums every path and the numerator only the paths carrying at
least one germline or somatic mutation. The numerator is accumulated from
non-negative restricted evaluations

    G_mut . S . S . S                 a germline mutation
  + G_none . S_off . S . S            else a somatic change in the child
  + G_none . S_diag . S_off . S       else in the mother
  + G_none . S_diag . S_diag . S_off  else in the father

(factors ordered germline, child, mother, father), so no subtraction of
nearly equal quantities is ever needed.

Example
-------
    model = TrioModel()
    site = [[30, 0, 0, 0], [30, 0, 0, 0], [30, 0, 0, 0]]
    probability = model.mutation_probability(site)
    model.set_germline_mutation_rate(1e-6)
    new_probability = model.mutation_probability(site)
"""

from dataclasses import dataclass, field
import logging

import numpy as np
from typing import Optional

from .exceptions import NumericalInstabilityError
from .germline import (
    germline_match_probabilities,
    germline_probability_mat,
    germline_probability_mat_single,
)
from .params import ModelParameters
from .population import population_priors, population_priors_single
from .sequencing import alphas, scaled_sequencing_likelihoods
from .somatic import (
    somatic_mutation,
    somatic_probability_mat,
    somatic_probability_mat_diag,
    somatic_probability_mat_off,
)
from .utils import (
    as_site_collection,
    as_trio_counts,
    DEFAULT_EPSILON,
    GENOTYPE_COUNT,
    CHILD,
    MOTHER,
    FATHER,
)

logger = logging.getLogger(__name__)

_PROBABILITY_TOLERANCE = 1e-12


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr = np.ascontiguousarray(arr, dtype=float)
    arr.setflags(write=False)
    return arr


# =============================================================================
# Rate dependent matrices
# =============================================================================


@dataclass(frozen=True)
class MatrixBundle:
    """
    Every matrix that depends only on the model parameters.

    All arrays are read-only. Genotype index is 4 * first + second allele
    over A, C, G, T; parent pair index is 16 * mother + father.
    """

    params: ModelParameters
    homozygous_match: float
    heterozygous_match: float
    no_match: float
    population_priors_single: np.ndarray = field(repr=False)
    population_priors: np.ndarray = field(repr=False)
    germline_probability_mat_single: np.ndarray = field(repr=False)
    germline_probability_mat_single_no_mutation: np.ndarray = field(repr=False)
    germline_probability_mat: np.ndarray = field(repr=False)
    germline_probability_mat_no_mutation: np.ndarray = field(repr=False)
    germline_probability_mat_num: np.ndarray = field(repr=False)
    somatic_probability_mat: np.ndarray = field(repr=False)
    somatic_probability_mat_diag: np.ndarray = field(repr=False)
    somatic_probability_mat_off: np.ndarray = field(repr=False)
    alphas: np.ndarray = field(repr=False)

    @property
    def population_priors_expanded(self) -> np.ndarray:
        """Joint parent prior as 16 x 16 (rows mother, columns father)."""
        return self.population_priors.reshape(GENOTYPE_COUNT, GENOTYPE_COUNT)


def derive_matrices(params: ModelParameters) -> MatrixBundle:
    """Build the population, germline, somatic and read model matrices."""
    theta = params.population_mutation_rate
    freqs = params.nucleotide_frequencies
    mu = params.germline_mutation_rate
    s = params.somatic_mutation_rate

    homozygous_match, heterozygous_match, no_match = germline_match_probabilities(mu)

    return MatrixBundle(
        params=params,
        homozygous_match=homozygous_match,
        heterozygous_match=heterozygous_match,
        no_match=no_match,
        population_priors_single=_frozen(population_priors_single(theta, freqs)),
        population_priors=_frozen(population_priors(theta, freqs)),
        germline_probability_mat_single=_frozen(germline_probability_mat_single(mu)),
        germline_probability_mat_single_no_mutation=_frozen(
            germline_probability_mat_single(mu, "no_mutation")
        ),
        germline_probability_mat=_frozen(germline_probability_mat(mu)),
        germline_probability_mat_no_mutation=_frozen(
            germline_probability_mat(mu, "no_mutation")
        ),
        germline_probability_mat_num=_frozen(germline_probability_mat(mu, "mutation")),
        somatic_probability_mat=_frozen(somatic_probability_mat(s)),
        somatic_probability_mat_diag=_frozen(somatic_probability_mat_diag(s)),
        somatic_probability_mat_off=_frozen(somatic_probability_mat_off(s)),
        alphas=_frozen(alphas(params.sequencing_error_rate, params.dirichlet_dispersion)),
    )


# =============================================================================
# Read dependent data
# =============================================================================


@dataclass(frozen=True)
class ReadDependentData:
    """
    Per-site read likelihoods.

    ``sequencing_probability_mat`` holds each individual's genotype
    likelihoods divided by exp(``log_scale``) of that individual.
    """

    counts: np.ndarray
    log_likelihoods: np.ndarray = field(repr=False)
    log_scale: np.ndarray = field(repr=False)
    sequencing_probability_mat: np.ndarray = field(repr=False)


def read_dependent_data(matrices: MatrixBundle, site) -> ReadDependentData:
    """Compute the 3 x 16 likelihood matrix of one site."""
    site = as_trio_counts(site)
    log_likelihoods, log_scale, scaled = scaled_sequencing_likelihoods(
        site[None, ...], matrices.alphas
    )
    counts = site.copy()
    counts.setflags(write=False)
    return ReadDependentData(
        counts=counts,
        log_likelihoods=_frozen(log_likelihoods[0]),
        log_scale=_frozen(log_scale[0]),
        sequencing_probability_mat=_frozen(scaled[0]),
    )


# =============================================================================
# Tree peeling
# =============================================================================


@dataclass
class TreePeel:
    """
    Result of peeling the pedigree for a batch of n sites.

    Attributes
    ----------
    denominator : np.ndarray
        Scaled likelihood of the data over all paths, shape (n,).
    numerator : np.ndarray
        Scaled likelihood over mutation-carrying paths, shape (n,).
    germline_numerator : np.ndarray
        Scaled likelihood over paths with a germline mutation.
    somatic_numerator : np.ndarray
        Scaled likelihood over paths with a somatic change in anyone.
    log_scale : np.ndarray
        Sum of the individuals' log scale factors, shape (n,).
    posteriors : np.ndarray
        Posterior of each individual's sequenced genotype, (n, 3, 16).
    """

    denominator: np.ndarray
    numerator: np.ndarray
    germline_numerator: np.ndarray
    somatic_numerator: np.ndarray
    log_scale: np.ndarray
    posteriors: np.ndarray = field(repr=False)

    @property
    def mutation_probability(self) -> np.ndarray:
        return _check_probability(self.numerator / self.denominator, "mutation")

    @property
    def germline_mutation_probability(self) -> np.ndarray:
        return _check_probability(
            self.germline_numerator / self.denominator, "germline mutation"
        )

    @property
    def somatic_mutation_probability(self) -> np.ndarray:
        return _check_probability(
            self.somatic_numerator / self.denominator, "somatic mutation"
        )

    @property
    def log_likelihood(self) -> np.ndarray:
        """Log marginal likelihood of each site's reads."""
        return np.log(self.denominator) + self.log_scale


def _check_probability(values: np.ndarray, name: str) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    bad = (
        ~np.isfinite(values)
        | (values < -_PROBABILITY_TOLERANCE)
        | (values > 1.0 + _PROBABILITY_TOLERANCE)
    )
    if np.any(bad):
        raise NumericalInstabilityError(
            f"{name} probability outside [0, 1]",
            details={"values": values[bad].tolist()},
        )
    return np.clip(values, 0.0, 1.0)


def _root(
    priors: np.ndarray,
    germline: np.ndarray,
    child: np.ndarray,
    mother: np.ndarray,
    father: np.ndarray,
) -> np.ndarray:
    """Joint (n, 256) parent-pair weights given each individual's message."""
    n = child.shape[0]
    child_pair = child @ germline.T
    parent_pair = (mother[:, :, None] * father[:, None, :]).reshape(n, -1)
    return priors * child_pair * parent_pair


def evaluate(matrices: MatrixBundle, sites) -> TreePeel:
    """
    Peel the pedigree for every site.

    Side-effect free: depends only on ``matrices`` and ``sites``.

    Parameters
    ----------
    matrices : MatrixBundle
        Output of ``derive_matrices``.
    sites : array-like
        One (3, 4) site or an (n, 3, 4) collection, rows child, mother,
        father.

    Returns
    -------
    TreePeel
        Numerators, denominator and posteriors for each site.
    """
    sites = as_site_collection(sites)
    _, log_scale, likelihoods = scaled_sequencing_likelihoods(sites, matrices.alphas)
    return peel_likelihoods(matrices, likelihoods, log_scale)


def peel_likelihoods(
    matrices: MatrixBundle, likelihoods: np.ndarray, log_scale: np.ndarray
) -> TreePeel:
    """
    Peel the pedigree from precomputed read likelihoods.

    Parameters
    ----------
    matrices : MatrixBundle
        Output of ``derive_matrices``.
    likelihoods : np.ndarray
        Scaled genotype likelihoods, shape (n, 3, 16).
    log_scale : np.ndarray
        Log scale factor of each individual, shape (n, 3).

    Returns
    -------
    TreePeel
        Numerators, denominator and posteriors for each site.
    """
    n = likelihoods.shape[0]

    priors = matrices.population_priors
    germline = matrices.germline_probability_mat
    germline_none = matrices.germline_probability_mat_no_mutation
    germline_mut = matrices.germline_probability_mat_num
    somatic = matrices.somatic_probability_mat

    # Messages from sequenced genotype up to germline genotype, (n, 3, 16)
    full = likelihoods @ somatic.T
    diag = likelihoods @ matrices.somatic_probability_mat_diag.T
    off = likelihoods @ matrices.somatic_probability_mat_off.T
    c, m, f = CHILD, MOTHER, FATHER

    root = _root(priors, germline, full[:, c], full[:, m], full[:, f])
    denominator = root.sum(axis=-1)
    if np.any(~np.isfinite(denominator) | (denominator <= 0)):
        raise NumericalInstabilityError(
            "Site has zero likelihood under the trio model",
            details={"sites": np.flatnonzero(~(denominator > 0)).tolist()},
        )

    germline_numerator = _root(
        priors, germline_mut, full[:, c], full[:, m], full[:, f]
    ).sum(axis=-1)
    numerator = germline_numerator + sum(
        _root(priors, germline_none, *messages).sum(axis=-1)
        for messages in (
            (off[:, c], full[:, m], full[:, f]),
            (diag[:, c], off[:, m], full[:, f]),
            (diag[:, c], diag[:, m], off[:, f]),
        )
    )
    somatic_numerator = sum(
        _root(priors, germline, *messages).sum(axis=-1)
        for messages in (
            (off[:, c], full[:, m], full[:, f]),
            (diag[:, c], off[:, m], full[:, f]),
            (diag[:, c], diag[:, m], off[:, f]),
        )
    )

    # Downward messages onto each individual's germline genotype
    pair_prior = priors.reshape(GENOTYPE_COUNT, GENOTYPE_COUNT)
    child_pair = (full[:, c] @ germline.T).reshape(n, GENOTYPE_COUNT, GENOTYPE_COUNT)
    weighted = pair_prior[None, :, :] * child_pair
    down = np.empty((n, 3, GENOTYPE_COUNT))
    down[:, m] = np.einsum("nmf,nf->nm", weighted, full[:, f])
    down[:, f] = np.einsum("nmf,nm->nf", weighted, full[:, m])
    parents = pair_prior[None, :, :] * full[:, m, :, None] * full[:, f, None, :]
    down[:, c] = parents.reshape(n, -1) @ germline

    posteriors = likelihoods * (down @ somatic) / denominator[:, None, None]

    return TreePeel(
        denominator=denominator,
        numerator=numerator,
        germline_numerator=germline_numerator,
        somatic_numerator=somatic_numerator,
        log_scale=log_scale.sum(axis=-1),
        posteriors=posteriors,
    )


# =============================================================================
# TrioModel
# =============================================================================


class TrioModel:
    """
    Trio model with parameters, derived matrices and per-site read data.

    Parameters left as None take the defaults of ``ModelParameters``.

    Parameters
    ----------
    population_mutation_rate : float, optional
        Population mutation rate theta.
    germline_mutation_rate : float, optional
        Germline mutation rate per transmitted allele.
    somatic_mutation_rate : float, optional
        Somatic mutation rate.
    sequencing_error_rate : float, optional
        Per read sequencing error rate.
    dirichlet_dispersion : float, optional
        Dirichlet concentration of the read model.
    nucleotide_frequencies : array-like, optional
        Population frequencies of A, C, G, T.

    Attributes
    ----------
    params : ModelParameters
        Current parameters.
    matrices : MatrixBundle
        Matrices derived from ``params``; rebuilt by every setter.
    """

    def __init__(
        self,
        population_mutation_rate: Optional[float] = None,
        germline_mutation_rate: Optional[float] = None,
        somatic_mutation_rate: Optional[float] = None,
        sequencing_error_rate: Optional[float] = None,
        dirichlet_dispersion: Optional[float] = None,
        nucleotide_frequencies=None,
    ):
        overrides = {
            "population_mutation_rate": population_mutation_rate,
            "germline_mutation_rate": germline_mutation_rate,
            "somatic_mutation_rate": somatic_mutation_rate,
            "sequencing_error_rate": sequencing_error_rate,
            "dirichlet_dispersion": dirichlet_dispersion,
            "nucleotide_frequencies": nucleotide_frequencies,
        }
        params = ModelParameters(
            **{name: value for name, value in overrides.items() if value is not None}
        )
        self._read_dependent_data: Optional[ReadDependentData] = None
        self._install(params)

    @classmethod
    def from_parameters(cls, params: ModelParameters) -> "TrioModel":
        """Create a model from an existing ``ModelParameters``."""
        model = cls.__new__(cls)
        model._read_dependent_data = None
        model._install(params)
        return model

    def _install(self, params: ModelParameters):
        matrices = derive_matrices(params)
        # Stored read data was computed with the old alphas
        stored = self._read_dependent_data
        if stored is not None:
            stored = read_dependent_data(matrices, stored.counts)
        # Nothing is assigned until every step above has succeeded
        self._params = params
        self._matrices = matrices
        self._read_dependent_data = stored
        logger.debug("Derived trio model matrices for %s", params.as_dict())

    def _update(self, **changes) -> "TrioModel":
        self._install(self._params.replace(**changes))
        return self

    # -------------------------------------------------------------------------
    # Parameters
    # -------------------------------------------------------------------------

    @property
    def params(self) -> ModelParameters:
        return self._params

    @property
    def matrices(self) -> MatrixBundle:
        return self._matrices

    @property
    def population_mutation_rate(self) -> float:
        return self._params.population_mutation_rate

    def set_population_mutation_rate(self, rate: float) -> "TrioModel":
        return self._update(population_mutation_rate=rate)

    @property
    def germline_mutation_rate(self) -> float:
        return self._params.germline_mutation_rate

    def set_germline_mutation_rate(self, rate: float) -> "TrioModel":
        return self._update(germline_mutation_rate=rate)

    @property
    def somatic_mutation_rate(self) -> float:
        return self._params.somatic_mutation_rate

    def set_somatic_mutation_rate(self, rate: float) -> "TrioModel":
        return self._update(somatic_mutation_rate=rate)

    @property
    def sequencing_error_rate(self) -> float:
        return self._params.sequencing_error_rate

    def set_sequencing_error_rate(self, rate: float) -> "TrioModel":
        return self._update(sequencing_error_rate=rate)

    @property
    def dirichlet_dispersion(self) -> float:
        return self._params.dirichlet_dispersion

    def set_dirichlet_dispersion(self, dispersion: float) -> "TrioModel":
        return self._update(dirichlet_dispersion=dispersion)

    @property
    def nucleotide_frequencies(self) -> np.ndarray:
        return self._params.nucleotide_frequencies

    def set_nucleotide_frequencies(self, frequencies) -> "TrioModel":
        return self._update(nucleotide_frequencies=frequencies)

    # -------------------------------------------------------------------------
    # Matrices
    # -------------------------------------------------------------------------

    @property
    def homozygous_match(self) -> float:
        return self._matrices.homozygous_match

    @property
    def heterozygous_match(self) -> float:
        return self._matrices.heterozygous_match

    @property
    def no_match(self) -> float:
        return self._matrices.no_match

    @property
    def population_priors_single(self) -> np.ndarray:
        return self._matrices.population_priors_single

    @property
    def population_priors(self) -> np.ndarray:
        return self._matrices.population_priors

    @property
    def germline_probability_mat_single(self) -> np.ndarray:
        return self._matrices.germline_probability_mat_single

    @property
    def germline_probability_mat(self) -> np.ndarray:
        return self._matrices.germline_probability_mat

    @property
    def germline_probability_mat_num(self) -> np.ndarray:
        return self._matrices.germline_probability_mat_num

    @property
    def germline_probability_mat_no_mutation(self) -> np.ndarray:
        return self._matrices.germline_probability_mat_no_mutation

    @property
    def somatic_probability_mat(self) -> np.ndarray:
        return self._matrices.somatic_probability_mat

    @property
    def somatic_probability_mat_diag(self) -> np.ndarray:
        return self._matrices.somatic_probability_mat_diag

    @property
    def somatic_probability_mat_off(self) -> np.ndarray:
        return self._matrices.somatic_probability_mat_off

    @property
    def alphas(self) -> np.ndarray:
        return self._matrices.alphas

    @property
    def read_dependent_data(self) -> Optional[ReadDependentData]:
        return self._read_dependent_data

    @property
    def sequencing_probability_mat(self) -> np.ndarray:
        """Scaled 3 x 16 likelihoods of the stored site."""
        if self._read_dependent_data is None:
            raise ValueError("Must call set_read_dependent_data() first")
        return self._read_dependent_data.sequencing_probability_mat

    # -------------------------------------------------------------------------
    # Probabilities
    # -------------------------------------------------------------------------

    def set_read_dependent_data(self, site) -> ReadDependentData:
        """Compute and store the likelihood matrix of ``site``."""
        self._read_dependent_data = read_dependent_data(self._matrices, site)
        return self._read_dependent_data

    def peel(self, sites) -> TreePeel:
        """Peel the pedigree for one site or a collection of sites."""
        return evaluate(self._matrices, sites)

    def mutation_probability(self, site=None) -> float:
        """
        Probability that the trio carries a de novo mutation at ``site``.

        Parameters
        ----------
        site : array-like, optional
            (3, 4) read counts ordered child, mother, father. If omitted,
            the site stored by ``set_read_dependent_data`` is used.

        Returns
        -------
        float
            Probability in [0, 1].
        """
        if site is None:
            stored = self._read_dependent_data
            if stored is None:
                raise ValueError("Must call set_read_dependent_data() or pass a site")
            peel = peel_likelihoods(
                self._matrices,
                stored.sequencing_probability_mat[None, ...],
                stored.log_scale[None, ...],
            )
            return float(peel.mutation_probability[0])
        return float(self.peel(as_trio_counts(site)).mutation_probability[0])

    def mutation_probabilities(self, sites) -> np.ndarray:
        """Mutation probability of every site in a collection, shape (n,)."""
        sites = as_site_collection(sites)
        if sites.shape[0] == 0:
            return np.zeros(0)
        return self.peel(sites).mutation_probability

    def prior_mutation_probability(self) -> float:
        """
        Probability of mutation with no reads at all.

        One minus the probability that neither transmitted allele mutated
        and no individual's sequenced genotype differs from its germline.
        """
        same, _ = somatic_mutation(self.somatic_mutation_rate)
        log_no_mutation = 2.0 * np.log1p(-self.germline_mutation_rate) + 6.0 * np.log(
            same
        )
        return float(-np.expm1(log_no_mutation))

    def equals(self, other: "TrioModel", epsilon: float = DEFAULT_EPSILON) -> bool:
        """True if both models have the same parameters within ``epsilon``."""
        if not isinstance(other, TrioModel):
            return False
        return self._params.equals(other.params, epsilon)

    def __repr__(self) -> str:
        p = self._params
        return (
            f"TrioModel(population_mutation_rate={p.population_mutation_rate}, "
            f"germline_mutation_rate={p.germline_mutation_rate}, "
            f"somatic_mutation_rate={p.somatic_mutation_rate}, "
            f"sequencing_error_rate={p.sequencing_error_rate}, "
            f"dirichlet_dispersion={p.dirichlet_dispersion})"
        )
