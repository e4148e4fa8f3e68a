"""
Over-representation analysis of functional terms.

For every term, the members falling into a selection of interest are
compared to what is expected from the selection's share of the universe with
a one-sided Fisher's exact test. Raw p-values are Benjamini-Hochberg adjusted
across all tested terms before filtering.
"""

import logging
import multiprocessing
from concurrent.futures import ProcessPoolExecutor
from functools import partial
from typing import Collection, FrozenSet, List, Mapping, Optional, Sequence, Tuple

import polars as pl

from funcenrich.annotation import TermAnnotationIndex, TermInfo
from funcenrich.results import (
    ORA_SCHEMA,
    OverrepresentationResult,
    shape_overrepresentation,
    to_frame,
)
from funcenrich.stats import fisher_exact_greater

logger = logging.getLogger(__name__)

# (term_id, selected members, nuni, nsel, expected, raw p)
_TermTest = Tuple[str, List[str], int, int, float, float]


def _test_terms(
    chunk: Sequence[Tuple[str, Tuple[str, ...]]],
    universe: FrozenSet[str],
    selected: FrozenSet[str],
    n_sel: int,
    n_uni: int,
    min_count: int
) -> Tuple[List[_TermTest], List[str]]:
    """
    Run the Fisher test for a batch of terms.

    Module level so it can be shipped to worker processes. Members outside
    the universe are not counted. Terms whose table would still have a
    negative cell (a selection reaching outside the universe) are returned
    separately instead of being tested.
    """
    tested = []
    invalid = []
    for term_id, members in chunk:
        in_universe = [m for m in members if m in universe]
        tgenes_sel = [m for m in in_universe if m in selected]
        nsel = len(tgenes_sel)
        nuni = len(in_universe)

        if nsel < min_count:
            continue

        expected = nuni * n_sel / n_uni
        if expected == 0:
            raise RuntimeError(f"Expected count is zero for term {term_id} "
                               f"(term size {nuni}, selection size {n_sel})")

        table = [[nsel, nuni - nsel],
                 [n_sel - nsel, n_uni + nsel - n_sel - nuni]]
        if min(table[1]) < 0:
            invalid.append(term_id)
            continue
        p_value = fisher_exact_greater(table)
        tested.append((term_id, tgenes_sel, nuni, nsel, expected, p_value))
    return tested, invalid


def _chunk(items: list, n_chunks: int) -> List[list]:
    size = max(1, -(-len(items) // n_chunks))
    return [items[i:i + size] for i in range(0, len(items), size)]


def _display_ids(ids: List[str], id_to_name: Optional[Mapping[str, str]]) -> str:
    """
    Space-joined display ids for the selected members of a term.

    Without a mapping the raw ids keep member order. With one, translated
    names are sorted; ids the mapping has no name for are kept as raw ids
    and sorted along with the names rather than dropped.
    """
    if id_to_name is None:
        return ' '.join(ids)
    names = []
    for entity in ids:
        name = id_to_name.get(entity)
        names.append(str(name) if name is not None else entity)
    return ' '.join(sorted(names))


def enrich_overrepresentation(
    universe: Collection[str],
    selection: Collection[str],
    term_index: TermAnnotationIndex,
    id_to_name: Optional[Mapping[str, str]] = None,
    min_count: int = 3,
    sig_limit: float = 0.05,
    n_jobs: int = 1
) -> pl.DataFrame:
    """
    Functional enrichment of a selection against a universe.

    Args:
        universe: All entity ids under consideration (the background)
        selection: Entity ids of interest, expected to be part of the universe
        term_index: Term -> member mapping with optional term metadata
        id_to_name: Optional mapping translating entity ids into display names
        min_count: Terms with fewer selected members are not tested at all
        sig_limit: Significance limit on the BH-adjusted p-value
        n_jobs: Number of worker processes for the per-term tests

    Returns:
        DataFrame with columns term_id, name, description, tot, sel, expect,
        enrich, ids and P (adjusted), sorted by descending enrichment
    """
    universe = list(universe)
    selection = list(selection)

    if len(universe) == 0:
        raise ValueError("Universe cannot be empty")
    if min_count < 1:
        raise ValueError(f"min_count must be a positive integer, got {min_count}")
    if not 0 <= sig_limit <= 1:
        raise ValueError(f"sig_limit must be within [0, 1], got {sig_limit}")
    if n_jobs < 1:
        raise ValueError(f"n_jobs must be at least 1, got {n_jobs}")

    n_uni = len(universe)
    n_sel = len(selection)
    in_universe = frozenset(str(u) for u in universe)
    selected = frozenset(str(s) for s in selection)
    items = [(term_id, term_index.members(term_id)) for term_id in term_index.term_ids]

    logger.info(f"Testing {len(items)} terms for over-representation: "
                f"{n_sel} selected out of {n_uni} entities")

    test_func = partial(
        _test_terms,
        universe=in_universe,
        selected=selected,
        n_sel=n_sel,
        n_uni=n_uni,
        min_count=min_count
    )

    tested: List[_TermTest] = []
    invalid: List[str] = []
    if n_jobs > 1 and len(items) > 1:
        chunks = _chunk(items, n_jobs * 4)
        # Spawned workers; forking after numba has started its threads can hang
        with ProcessPoolExecutor(max_workers=n_jobs,
                                 mp_context=multiprocessing.get_context('spawn')) as executor:
            # map keeps chunk order, so results stay in term order
            for chunk_tested, chunk_invalid in executor.map(test_func, chunks):
                tested.extend(chunk_tested)
                invalid.extend(chunk_invalid)
    else:
        tested, invalid = test_func(items)

    if invalid:
        logger.warning(f"Skipped {len(invalid)} terms whose contingency table has a negative cell "
                       f"(selection not contained in the universe): {', '.join(invalid[:10])}")

    logger.info(f"{len(tested)} of {len(items)} terms have at least {min_count} selected members")

    rows = []
    for term_id, tgenes_sel, nuni, nsel, expected, p_value in tested:
        info = term_index.info(term_id) or TermInfo(term_id)
        rows.append(OverrepresentationResult(
            term_id=term_id,
            name=info.name,
            description=info.description,
            tot=nuni,
            sel=nsel,
            expect=expected,
            enrich=nsel / expected,
            ids=_display_ids(tgenes_sel, id_to_name),
            P=p_value,
        ))

    result = shape_overrepresentation(to_frame(rows, ORA_SCHEMA), sig_limit)
    logger.info(f"{result.height} terms significant at adjusted P <= {sig_limit}")
    return result
