import numpy as np
from scipy.special import gammaln

from .exceptions import PreconditionViolation


# =============================================================================
# Genotype encoding
# =============================================================================

NUCLEOTIDES = ("A", "C", "G", "T")
NUCLEOTIDE_COUNT = 4
GENOTYPE_COUNT = 16
PARENT_PAIR_COUNT = 256

# Row order of every per-site array
CHILD, MOTHER, FATHER = 0, 1, 2
INDIVIDUALS = ("child", "mother", "father")

# Ordered allele pairs, index = 4 * first + second
GENOTYPE_ALLELES = np.array(
    [[i, j] for i in range(NUCLEOTIDE_COUNT) for j in range(NUCLEOTIDE_COUNT)]
)
GENOTYPE_LABELS = tuple(
    NUCLEOTIDES[i] + NUCLEOTIDES[j] for i, j in GENOTYPE_ALLELES
)

# Number of copies of each nucleotide in each genotype (16 x 4)
GENOTYPE_ALLELE_COUNTS = np.zeros((GENOTYPE_COUNT, NUCLEOTIDE_COUNT), dtype=int)
for _g, (_i, _j) in enumerate(GENOTYPE_ALLELES):
    GENOTYPE_ALLELE_COUNTS[_g, _i] += 1
    GENOTYPE_ALLELE_COUNTS[_g, _j] += 1

HOMOZYGOUS = GENOTYPE_ALLELES[:, 0] == GENOTYPE_ALLELES[:, 1]

# Read classes used by the sequencing error statistics (16 x 4 masks)
HOMOZYGOUS_MATCH = (GENOTYPE_ALLELE_COUNTS == 2).astype(float)
HETEROZYGOUS_MATCH = (GENOTYPE_ALLELE_COUNTS == 1).astype(float)
MISMATCH = (GENOTYPE_ALLELE_COUNTS == 0).astype(float)

DEFAULT_EPSILON = 1e-10


def genotype_index(first: str, second: str) -> int:
    """Index of the ordered genotype ``first``/``second`` (e.g. 'A', 'C')."""
    try:
        return NUCLEOTIDE_COUNT * NUCLEOTIDES.index(first) + NUCLEOTIDES.index(
            second
        )
    except ValueError:
        raise PreconditionViolation(
            f"Unknown nucleotide in genotype {first!r}{second!r}"
        ) from None


def parent_pair_index(mother: int, father: int) -> int:
    """Index of the (mother, father) genotype pair in the 256-state space."""
    return GENOTYPE_COUNT * mother + father


def almost_equal(a, b, epsilon: float = DEFAULT_EPSILON) -> bool:
    """
    Absolute tolerance comparison of scalars or arrays.

    Parameters
    ----------
    a, b : float or array-like
        Values to compare (broadcast against each other).
    epsilon : float
        Largest absolute difference still considered equal.

    Returns
    -------
    bool
        True if every element differs by at most ``epsilon``.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape and a.size != 1 and b.size != 1:
        return False
    return bool(np.all(np.abs(a - b) <= epsilon))


# =============================================================================
# Read count validation
# =============================================================================


def _as_array(values, name: str) -> np.ndarray:
    # Ragged nesting fails in numpy itself, or yields an object array
    try:
        arr = np.asarray(values)
    except ValueError:
        raise PreconditionViolation(f"{name} must be a regular array of counts") from None
    if arr.dtype == object:
        raise PreconditionViolation(f"{name} must be a regular array of counts")
    return arr


def _as_counts(counts, shape_tail: tuple, name: str) -> np.ndarray:
    arr = _as_array(counts, name)
    if arr.ndim < len(shape_tail) or arr.shape[arr.ndim - len(shape_tail):] != shape_tail:
        raise PreconditionViolation(
            f"{name} must have trailing shape {shape_tail}, got {arr.shape}"
        )
    if arr.dtype.kind not in "iubf":
        raise PreconditionViolation(f"{name} must contain integer read counts")
    if arr.dtype.kind == "f":
        if not np.all(np.isfinite(arr)) or np.any(arr != np.round(arr)):
            raise PreconditionViolation(f"{name} must contain integer read counts")
    arr = arr.astype(np.int64)
    if np.any(arr < 0):
        raise PreconditionViolation(
            f"{name} must be non-negative", details={"min": int(arr.min())}
        )
    return arr


def as_nucleotide_counts(counts) -> np.ndarray:
    """Validate one individual's (A, C, G, T) read counts."""
    arr = _as_counts(counts, (NUCLEOTIDE_COUNT,), "nucleotide counts")
    if arr.ndim != 1:
        raise PreconditionViolation("nucleotide counts must be a single 4-vector")
    return arr


def as_trio_counts(site) -> np.ndarray:
    """Validate one site as a (3, 4) array ordered child, mother, father."""
    arr = _as_counts(site, (3, NUCLEOTIDE_COUNT), "trio read counts")
    if arr.ndim != 2:
        raise PreconditionViolation("trio read counts must have shape (3, 4)")
    return arr


def as_site_collection(sites) -> np.ndarray:
    """
    Validate a collection of sites as an (n, 3, 4) integer array.

    Accepts a single site, a list of sites, or an existing array.
    """
    if isinstance(sites, np.ndarray):
        arr = sites
    else:
        sites = list(sites)
        if len(sites) == 0:
            return np.zeros((0, 3, NUCLEOTIDE_COUNT), dtype=np.int64)
        arr = _as_array(sites, "site collection")
    if arr.ndim == 2:
        arr = arr[None, ...]
    arr = _as_counts(arr, (3, NUCLEOTIDE_COUNT), "site collection")
    if arr.ndim != 3:
        raise PreconditionViolation("site collection must have shape (n, 3, 4)")
    return arr


# =============================================================================
# Dirichlet-multinomial
# =============================================================================


def log_rising_factorial(alpha, n) -> np.ndarray:
    """
    log of the rising factorial alpha (alpha + 1) ... (alpha + n - 1).

    Zero counts contribute exactly 0 even when ``alpha`` is 0; positive
    counts on a zero concentration give ``-inf``.
    """
    alpha = np.asarray(alpha, dtype=float)
    n = np.asarray(n, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = gammaln(alpha + n) - gammaln(alpha)
    return np.where(n == 0, 0.0, out)


def dirichlet_multinomial_logpmf(counts, alpha, ordered: bool = False) -> np.ndarray:
    """
    Log probability mass function of the Dirichlet-multinomial distribution.

    The PMF of counts n (total N) under concentrations alpha (total A) is:
        P(n | alpha) = N! / prod(n_k!) * Gamma(A) / Gamma(A + N)
                       * prod Gamma(alpha_k + n_k) / Gamma(alpha_k)

    Evaluated entirely with log-gamma terms so that deep coverage never
    overflows; exponentiate only the final result.

    Parameters
    ----------
    counts : np.ndarray
        Category counts, last axis indexes categories.
    alpha : np.ndarray
        Concentrations, broadcast against ``counts`` (alpha >= 0).
    ordered : bool
        If True, drop the multinomial coefficient and return the probability
        of one particular ordered sequence of draws.

    Returns
    -------
    np.ndarray
        Log-probabilities over the broadcast leading axes.
    """
    counts = np.asarray(counts, dtype=float)
    alpha = np.asarray(alpha, dtype=float)
    total = counts.sum(axis=-1)
    concentration = alpha.sum(axis=-1)

    logp = log_rising_factorial(alpha, counts).sum(axis=-1) - log_rising_factorial(
        concentration, total
    )
    if not ordered:
        logp = logp + gammaln(total + 1.0) - gammaln(counts + 1.0).sum(axis=-1)
    return logp
