"""
Dirichlet-Multinomial Trio Model for De Novo Mutation Detection.
...
"""

from .exceptions import (
    TrioModelError,
    PreconditionViolation,
    NumericalInstabilityError,
    ConvergenceError,
)

from .params import (
    ModelParameters,
    EMSpec,
)

from .utils import (
    # Genotype encoding
    NUCLEOTIDES,
    GENOTYPE_LABELS,
    genotype_index,
    parent_pair_index,
    # Distribution functions
    dirichlet_multinomial_logpmf,
    # Tolerance comparison
    almost_equal,
)

from .trio_model import (
    TrioModel,
    MatrixBundle,
    ReadDependentData,
    TreePeel,
    derive_matrices,
    read_dependent_data,
    evaluate,
    peel_likelihoods,
)

from .sufficient_statistics import SufficientStatistics

from .em import (
    EMState,
    EMFitResult,
    SequencingErrorEM,
    fit_sequencing_error_rate,
)

from .simulation import (
    read_simulation_counts,
    empirical_mutation_probabilities,
    write_probabilities,
    counts_probability,
)

__all__ = [
    # Classes
    "TrioModel",
    "SufficientStatistics",
    "SequencingErrorEM",
    # Data classes
    "ModelParameters",
    "EMSpec",
    "MatrixBundle",
    "ReadDependentData",
    "TreePeel",
    "EMFitResult",
    "EMState",
    # Pure model functions
    "derive_matrices",
    "read_dependent_data",
    "evaluate",
    "peel_likelihoods",
    # Convenience functions
    "fit_sequencing_error_rate",
    "read_simulation_counts",
    "empirical_mutation_probabilities",
    "write_probabilities",
    "counts_probability",
    # Utilities
    "NUCLEOTIDES",
    "GENOTYPE_LABELS",
    "genotype_index",
    "parent_pair_index",
    "dirichlet_multinomial_logpmf",
    "almost_equal",
    # Exceptions
    "TrioModelError",
    "PreconditionViolation",
    "NumericalInstabilityError",
    "ConvergenceError",
]

__version__ = "0.1.0"
