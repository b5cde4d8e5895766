import dataclasses
from dataclasses import dataclass, field
import numpy as np

from .exceptions import PreconditionViolation
from .utils import almost_equal, DEFAULT_EPSILON, NUCLEOTIDE_COUNT


_DEFAULT_POPULATION_MUTATION_RATE = 0.001
_DEFAULT_GERMLINE_MUTATION_RATE = 2e-8
_DEFAULT_SOMATIC_MUTATION_RATE = 2e-8
_DEFAULT_SEQUENCING_ERROR_RATE = 0.005
_DEFAULT_DIRICHLET_DISPERSION = 1000.0
_DEFAULT_NUCLEOTIDE_FREQUENCIES = np.array([0.25, 0.25, 0.25, 0.25])
_FREQUENCY_SUM_TOLERANCE = 1e-8

_DEFAULT_EM_INITIAL_RATE = 0.01
_DEFAULT_EM_MAX_ITER = 100
_DEFAULT_EM_TOL = 1e-10


@dataclass(frozen=True, eq=False)
class ModelParameters:
    """
    Complete parameter set of the trio model.

    Immutable: "changing" a rate means building a new instance with
    ``replace`` and re-deriving the model matrices from it.

    Attributes
    ----------
    population_mutation_rate : float
        Population scaled mutation rate theta (> 0), drives genotype priors.
    germline_mutation_rate : float
        Per transmitted allele mutation probability, in [0, 1].
    somatic_mutation_rate : float
        Somatic mutation rate (>= 0) between germline and sequenced tissue.
    sequencing_error_rate : float
        Per read error probability, in [0, 1).
    dirichlet_dispersion : float
        Total Dirichlet concentration of the read model (> 0).
    nucleotide_frequencies : np.ndarray
        Population frequencies of A, C, G, T summing to 1.
    """

    population_mutation_rate: float = _DEFAULT_POPULATION_MUTATION_RATE
    germline_mutation_rate: float = _DEFAULT_GERMLINE_MUTATION_RATE
    somatic_mutation_rate: float = _DEFAULT_SOMATIC_MUTATION_RATE
    sequencing_error_rate: float = _DEFAULT_SEQUENCING_ERROR_RATE
    dirichlet_dispersion: float = _DEFAULT_DIRICHLET_DISPERSION
    nucleotide_frequencies: np.ndarray = field(
        default_factory=lambda: _DEFAULT_NUCLEOTIDE_FREQUENCIES.copy()
    )

    def __post_init__(self):
        for name in (
            "population_mutation_rate",
            "germline_mutation_rate",
            "somatic_mutation_rate",
            "sequencing_error_rate",
            "dirichlet_dispersion",
        ):
            value = float(getattr(self, name))
            if not np.isfinite(value):
                raise PreconditionViolation(f"{name} must be finite")
            object.__setattr__(self, name, value)

        if self.population_mutation_rate <= 0:
            raise PreconditionViolation("population_mutation_rate must be > 0")
        if not 0.0 <= self.germline_mutation_rate <= 1.0:
            raise PreconditionViolation("germline_mutation_rate must be in [0, 1]")
        if self.somatic_mutation_rate < 0:
            raise PreconditionViolation("somatic_mutation_rate must be >= 0")
        if not 0.0 <= self.sequencing_error_rate < 1.0:
            raise PreconditionViolation("sequencing_error_rate must be in [0, 1)")
        if self.dirichlet_dispersion <= 0:
            raise PreconditionViolation("dirichlet_dispersion must be > 0")

        freqs = np.array(self.nucleotide_frequencies, dtype=float)
        if freqs.shape != (NUCLEOTIDE_COUNT,):
            raise PreconditionViolation("nucleotide_frequencies must have shape (4,)")
        if np.any(freqs < 0) or not np.all(np.isfinite(freqs)):
            raise PreconditionViolation("nucleotide_frequencies must be non-negative")
        if not almost_equal(freqs.sum(), 1.0, _FREQUENCY_SUM_TOLERANCE):
            raise PreconditionViolation(
                "nucleotide_frequencies must sum to 1",
                details={"sum": float(freqs.sum())},
            )
        freqs.setflags(write=False)
        object.__setattr__(self, "nucleotide_frequencies", freqs)

    def replace(self, **changes) -> "ModelParameters":
        """Return a validated copy with some fields changed."""
        return dataclasses.replace(self, **changes)

    def equals(self, other: "ModelParameters", epsilon: float = DEFAULT_EPSILON) -> bool:
        """Field-wise equality within an absolute tolerance."""
        if not isinstance(other, ModelParameters):
            return False
        return all(
            almost_equal(getattr(self, f.name), getattr(other, f.name), epsilon)
            for f in dataclasses.fields(self)
        )

    def as_dict(self) -> dict:
        return {
            f.name: (
                getattr(self, f.name).tolist()
                if f.name == "nucleotide_frequencies"
                else getattr(self, f.name)
            )
            for f in dataclasses.fields(self)
        }


@dataclass
class EMSpec:
    """
    Settings of the sequencing error rate EM loop.

    ``tol`` is the absolute difference between consecutive estimates below
    which the loop stops; ``max_iter`` bounds the number of E/M rounds.
    """

    initial_sequencing_error_rate: float = _DEFAULT_EM_INITIAL_RATE
    max_iter: int = _DEFAULT_EM_MAX_ITER
    tol: float = _DEFAULT_EM_TOL
    raise_on_nonconvergence: bool = False

    def __post_init__(self):
        if not 0.0 <= self.initial_sequencing_error_rate < 1.0:
            raise PreconditionViolation("initial_sequencing_error_rate must be in [0, 1)")
        if self.max_iter < 1:
            raise PreconditionViolation("max_iter must be >= 1")
        if self.tol < 0:
            raise PreconditionViolation("tol must be >= 0")
