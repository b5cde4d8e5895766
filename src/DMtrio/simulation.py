"""
Empirical mutation probabilities from simulation count tables.

A simulation table has one row per reference trio with three whitespace
separated integers: the trio index, the number of matching simulated
trios that carried a mutation, and the number that did not. The empirical
probability of mutation for the trio is

    with_mutation / (with_mutation + without_mutation)

(0 for a row with no matching trios), and should agree with
``TrioModel.mutation_probability`` on the same trio.
"""

import logging
from pathlib import Path

import numpy as np

from .exceptions import PreconditionViolation

logger = logging.getLogger(__name__)


def read_simulation_counts(path) -> np.ndarray:
    """
    Parse a simulation count table.

    Parameters
    ----------
    path : str or Path
        Text file of ``index with_mutation without_mutation`` rows.

    Returns
    -------
    np.ndarray
        Integer array of shape (n, 3).
    """
    rows = []
    with open(path) as handle:
        for line_no, line in enumerate(handle, start=1):
            fields = line.split()
            if not fields:
                continue
            if len(fields) < 3:
                raise PreconditionViolation(
                    f"{path}:{line_no}: expected 3 columns, got {len(fields)}"
                )
            try:
                rows.append([int(value) for value in fields[:3]])
            except ValueError:
                raise PreconditionViolation(
                    f"{path}:{line_no}: non-integer count in {line.strip()!r}"
                ) from None
    logger.info("Read %d simulation rows from %s", len(rows), path)
    return np.array(rows, dtype=np.int64).reshape(-1, 3)


def empirical_mutation_probabilities(rows) -> np.ndarray:
    """
    Fraction of matching simulated trios that carried a mutation.

    Parameters
    ----------
    rows : array-like
        (n, 3) rows of index, with_mutation, without_mutation.

    Returns
    -------
    np.ndarray
        Shape (n,), 0 where a row has no matching trios.
    """
    rows = np.asarray(rows, dtype=np.int64).reshape(-1, 3)
    with_mutation = rows[:, 1].astype(float)
    without_mutation = rows[:, 2].astype(float)
    if np.any(with_mutation < 0) or np.any(without_mutation < 0):
        raise PreconditionViolation("simulation counts must be non-negative")

    total = with_mutation + without_mutation
    probabilities = np.zeros(rows.shape[0])
    nonzero = total > 0
    probabilities[nonzero] = with_mutation[nonzero] / total[nonzero]
    return probabilities


def write_probabilities(probabilities, path) -> Path:
    """Write one probability per line."""
    path = Path(path)
    with open(path, "w") as handle:
        for probability in np.asarray(probabilities, dtype=float):
            handle.write(f"{float(probability)!r}\n")
    return path


def counts_probability(input_path, output_path) -> np.ndarray:
    """Read a simulation table, write and return its empirical probabilities."""
    probabilities = empirical_mutation_probabilities(read_simulation_counts(input_path))
    write_probabilities(probabilities, output_path)
    return probabilities
