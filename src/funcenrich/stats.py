"""
Statistical functions for the functional enrichment engines.
"""

from typing import Dict, List, Sequence, Union

import numba as nb
import numpy as np
from scipy import stats
from statsmodels.stats.multitest import multipletests


#  Core numba-optimised functions for inner loops

@nb.njit
def _nanmean(arr):
    """Mean of the non-NaN entries, NaN if there are none"""
    total = 0.0
    count = 0
    for i in range(len(arr)):
        value = arr[i]
        if not np.isnan(value):
            total += value
            count += 1
    if count == 0:
        return np.nan
    return total / count

@nb.njit
def _count_exceeding_serial(threshold, values):
    count = 0
    for i in range(len(values)):
        if abs(values[i]) > threshold:
            count += 1
    return count

@nb.njit(parallel=True)
def _count_exceeding(threshold: float, values) -> int:
    """
    Count values whose magnitude is strictly greater than threshold.
    NaN values never count.

    Args:
        threshold: Non-negative magnitude to beat
        values: Array of null distribution statistics

    Returns:
        Count of |value| > threshold
    """
    # For small arrays, direct counting is faster than parallelisation overhead
    if len(values) < 10000:
        return _count_exceeding_serial(threshold, values)

    count = 0
    for i in nb.prange(len(values)):
        if abs(values[i]) > threshold:
            count += 1
    return count


def nanmean(values) -> float:
    """
    Mean of a score vector ignoring missing values.

    Args:
        values: Sequence of floats, NaN marking missing values

    Returns:
        Mean of the non-missing values, NaN when all are missing
    """
    return float(_nanmean(np.asarray(values, dtype=np.float64)))


def fisher_exact_greater(table: Sequence[Sequence[int]]) -> float:
    """
    One-sided Fisher's exact test for over-representation.

    Args:
        table: 2x2 contingency table [[a, b], [c, d]] where a counts
            selected members of the term

    Returns:
        P-value for the alternative that the odds ratio is greater than one
    """
    _, p_value = stats.fisher_exact(table, alternative='greater')
    return float(p_value)


def perform_fdr_analysis(p_values, alpha: float = 0.05) -> Dict[str, list]:
    """
    Perform Benjamini-Hochberg FDR analysis on p-values.

    Args:
        p_values: Array of p-values
        alpha: Significance level

    Returns:
        Dictionary with FDR results
    """
    if len(p_values) == 0:
        raise ValueError("Input p-values array cannot be empty")

    reject, pvals_corrected, _, _ = multipletests(
        p_values,
        alpha=alpha,
        method='fdr_bh'
    )

    return {
        'reject': reject.astype(bool).tolist(),
        'pvals_corrected': pvals_corrected.tolist()
    }


def bootstrap_null_means(
    values,
    n: int,
    nboot: int,
    rng: np.random.Generator
) -> np.ndarray:
    """
    Build a null distribution of set means by resampling.

    Each replicate draws ``n`` values without replacement from ``values``
    and records their mean, ignoring missing values.

    Args:
        values: Full score population
        n: Set size to draw
        nboot: Number of replicates
        rng: Random generator to draw from

    Returns:
        Array of ``nboot`` replicate means
    """
    values = np.asarray(values, dtype=np.float64)
    if n < 1 or n > len(values):
        raise ValueError(f"Cannot draw sets of size {n} from {len(values)} scores")

    means = np.empty(nboot, dtype=np.float64)
    for i in range(nboot):
        means[i] = _nanmean(rng.choice(values, size=n, replace=False))
    return means


def calculate_significance(
    observed_score: float,
    null_scores: Union[List[float], np.ndarray]
) -> float:
    """
    Two-sided empirical p-value on the magnitude of a score.

    Args:
        observed_score: Observed set mean
        null_scores: Null distribution of set means

    Returns:
        Fraction of null scores whose absolute value exceeds |observed_score|
    """
    null_scores = np.asarray(null_scores, dtype=np.float64)
    if len(null_scores) == 0:
        raise ValueError("Null scores array cannot be empty")

    count = _count_exceeding(abs(observed_score), null_scores)
    return count / len(null_scores)
