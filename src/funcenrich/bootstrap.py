"""
Bootstrap set-enrichment of functional terms.

Each entity carries a signed score (e.g. a log fold change). For every term
the mean score of its members is compared with the means of randomly drawn
sets of the same size; the p-value is the fraction of random means larger in
magnitude than the observed one. Null distributions depend only on set size,
so they are drawn once per size and reused within a call.
"""

import logging
import math
import platform
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Mapping, Optional, Union

import numpy as np
import polars as pl
from tqdm.auto import tqdm

from funcenrich.annotation import TermAnnotationIndex, resolve_term_names
from funcenrich.results import SET_ENRICHMENT_SCHEMA, SetEnrichmentResult, to_frame
from funcenrich.stats import bootstrap_null_means, calculate_significance, nanmean

logger = logging.getLogger(__name__)

tqdm_kwargs = {
    'leave': True,
    'dynamic_ncols': True,
    'ascii': platform.system() == 'Darwin',
}

RandomState = Union[None, int, np.random.Generator]


class BootstrapCache:
    """
    Null distributions of set means keyed by set size.

    Each size is computed at most once, also when several threads ask for
    the same size at the same time. With an integer (or no) seed every size
    draws from its own generator spawned from one SeedSequence, so a size's
    null distribution does not depend on which term asked for it first.
    """

    def __init__(self, values, nboot: int, random_state: RandomState = None):
        self.values = np.asarray(values, dtype=np.float64)
        self.nboot = nboot
        self._means: Dict[int, np.ndarray] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

        if isinstance(random_state, np.random.Generator):
            self._shared_rng = random_state
            self._seed_seq = None
        else:
            self._shared_rng = None
            self._seed_seq = np.random.SeedSequence(random_state)

    @property
    def shares_generator(self) -> bool:
        """True when all sizes draw from one caller-supplied generator."""
        return self._shared_rng is not None

    def _rng_for(self, n: int) -> np.random.Generator:
        if self._shared_rng is not None:
            return self._shared_rng
        return np.random.default_rng(
            np.random.SeedSequence(self._seed_seq.entropy, spawn_key=(int(n),))
        )

    def get(self, n: int) -> np.ndarray:
        """Return the null distribution for sets of size n, drawing it if needed."""
        means = self._means.get(n)
        if means is not None:
            return means

        with self._guard:
            lock = self._locks.setdefault(n, threading.Lock())
        with lock:
            if n not in self._means:
                logger.debug(f"Drawing {self.nboot} bootstrap sets of size {n}")
                self._means[n] = bootstrap_null_means(self.values, n, self.nboot, self._rng_for(n))
            return self._means[n]

    def __contains__(self, n) -> bool:
        return n in self._means

    def __len__(self) -> int:
        return len(self._means)


def _as_score(value) -> float:
    if value is None:
        return math.nan
    return float(value)


def enrich_set_bootstrap(
    score: Mapping[str, float],
    term_annotation: Union[pl.DataFrame, TermAnnotationIndex],
    term_names: Optional[pl.DataFrame] = None,
    minn: int = 3,
    nboot: int = 1000,
    random_state: RandomState = None,
    n_jobs: int = 1,
    verbose: bool = False,
    progress: Optional[Callable[[float], None]] = None
) -> pl.DataFrame:
    """
    Gene set enrichment based on bootstrapped mean scores.

    Args:
        score: Entity id -> score; None or NaN marks a missing score
        term_annotation: DataFrame with columns "id" and "term" associating
            entities with terms, or an already built TermAnnotationIndex
        term_names: Optional DataFrame with columns "term" and "name"
        minn: Minimum number of members with a score for a term to be tested
        nboot: Number of bootstrap replicates per set size
        random_state: Seed or numpy Generator for reproducible draws
        n_jobs: Number of threads processing terms
        verbose: Show a progress bar
        progress: Optional callable receiving the percentage of terms done,
            every 10 terms and at the end

    Returns:
        DataFrame with columns term, name, p, M, n and ids, one row per tested
        term in term id order. P-values are not corrected for multiple testing.
    """
    if isinstance(term_annotation, TermAnnotationIndex):
        index = term_annotation
    else:
        if not {'id', 'term'} <= set(term_annotation.columns):
            raise ValueError("term_annotation requires columns id and term.")
        index = None
    if term_names is not None and not {'term', 'name'} <= set(term_names.columns):
        raise ValueError("term_names requires columns term and name.")
    if minn < 1:
        raise ValueError(f"minn must be a positive integer, got {minn}")
    if nboot < 1:
        raise ValueError(f"nboot must be a positive integer, got {nboot}")
    if n_jobs < 1:
        raise ValueError(f"n_jobs must be at least 1, got {n_jobs}")

    if index is None:
        index = TermAnnotationIndex.from_relation(term_annotation)

    names = resolve_term_names(index, term_names)
    score_map = {str(k): _as_score(v) for k, v in score.items()}
    cache = BootstrapCache(list(score_map.values()), nboot, random_state)

    def score_term(term_id: str) -> Optional[SetEnrichmentResult]:
        ids = index.members(term_id)
        vals = np.array([score_map.get(i, math.nan) for i in ids], dtype=np.float64)
        n = int(np.count_nonzero(~np.isnan(vals)))
        if n < minn:
            logger.debug(f"Skipping term {term_id}: {n} scored members, need {minn}")
            return None
        mean_score = nanmean(vals)
        return SetEnrichmentResult(
            term=term_id,
            name=names.get(term_id, 'N/A'),
            p=calculate_significance(mean_score, cache.get(n)),
            M=mean_score,
            n=n,
            ids=','.join(ids),
        )

    term_ids = index.term_ids
    total = len(term_ids)
    logger.info(f"Bootstrap set enrichment of {total} terms against {len(score_map)} scores "
                f"({nboot} replicates per set size)")

    if n_jobs > 1 and cache.shares_generator:
        logger.warning("A shared random generator cannot be used from several threads; "
                       "processing terms sequentially")
        n_jobs = 1

    results: List[Optional[SetEnrichmentResult]] = [None] * total

    def report(done: int):
        if progress is not None and (done % 10 == 0 or done == total):
            progress(100.0 * done / total)

    with tqdm(total=total, desc="Set enrichment", unit="term", disable=not verbose, **tqdm_kwargs) as pbar:
        if n_jobs > 1:
            with ThreadPoolExecutor(max_workers=n_jobs) as executor:
                futures = {executor.submit(score_term, term_id): i for i, term_id in enumerate(term_ids)}
                for done, future in enumerate(as_completed(futures), start=1):
                    results[futures[future]] = future.result()
                    pbar.update(1)
                    report(done)
        else:
            for i, term_id in enumerate(term_ids):
                results[i] = score_term(term_id)
                pbar.update(1)
                report(i + 1)

    rows = [row for row in results if row is not None]
    logger.info(f"Tested {len(rows)} of {total} terms with at least {minn} scored members; "
                f"drew null distributions for {len(cache)} set sizes")
    return to_frame(rows, SET_ENRICHMENT_SCHEMA)
