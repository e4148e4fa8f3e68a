"""
Preranked gene set enrichment (GSEA) of functional terms.

Entities are ranked by their score and every term is tested with a running
enrichment score over that ranking, as in GSEA preranked mode. Term lists
are restricted to scored entities before testing. The permutation test
itself is delegated to gseapy.
"""

import logging
import math
from typing import Dict, List, Mapping, Optional, Union

import gseapy as gp
import numpy as np
import pandas as pd
import polars as pl

from funcenrich.annotation import TermAnnotationIndex, resolve_term_names
from funcenrich.results import PRERANKED_SCHEMA, PrerankedResult, to_frame
from funcenrich.stats import perform_fdr_analysis

logger = logging.getLogger(__name__)


def _ranking(score: Mapping[str, float]) -> Dict[str, float]:
    ranks = {}
    for entity, value in score.items():
        if value is None:
            continue
        value = float(value)
        if math.isfinite(value):
            ranks[str(entity)] = value
    return ranks


def _scored_term_lists(
    index: TermAnnotationIndex,
    ranks: Mapping[str, float],
    min_size: int,
    max_size: int
) -> Dict[str, List[str]]:
    """Term id -> scored members, for terms within the size limits."""
    term_lists = {}
    for term_id in index.term_ids:
        members = [m for m in index.members(term_id) if m in ranks]
        if min_size <= len(members) <= max_size:
            term_lists[term_id] = members
    return term_lists


def enrich_preranked(
    score: Mapping[str, float],
    term_annotation: Union[pl.DataFrame, TermAnnotationIndex],
    term_names: Optional[pl.DataFrame] = None,
    min_size: int = 3,
    max_size: int = 500,
    nperm: int = 1000,
    seed: Optional[int] = None,
    n_jobs: int = 1
) -> pl.DataFrame:
    """
    Preranked GSEA of every term against a scored ranking.

    Args:
        score: Entity id -> score; None, NaN and infinite values are left out
            of the ranking
        term_annotation: DataFrame with columns "id" and "term", or an
            already built TermAnnotationIndex
        term_names: Optional DataFrame with columns "term" and "name"
        min_size: Minimum number of scored members for a term to be tested
        max_size: Maximum number of scored members for a term to be tested
        nperm: Number of permutations of the null
        seed: Random seed handed to gseapy; drawn at random when None
        n_jobs: Number of threads gseapy uses

    Returns:
        DataFrame with columns term, term_name, pval, padj, ES, NES, size and
        leading_edge, sorted by ascending NES. padj is the Benjamini-Hochberg
        adjustment of pval over the tested terms.
    """
    if isinstance(term_annotation, TermAnnotationIndex):
        index = term_annotation
    else:
        if not {'id', 'term'} <= set(term_annotation.columns):
            raise ValueError("term_annotation requires columns id and term.")
        index = TermAnnotationIndex.from_relation(term_annotation)
    if term_names is not None and not {'term', 'name'} <= set(term_names.columns):
        raise ValueError("term_names requires columns term and name.")
    if min_size < 1 or max_size < min_size:
        raise ValueError(f"Invalid term size limits: min_size={min_size}, max_size={max_size}")
    if nperm < 1:
        raise ValueError(f"nperm must be a positive integer, got {nperm}")
    if n_jobs < 1:
        raise ValueError(f"n_jobs must be at least 1, got {n_jobs}")

    ranks = _ranking(score)
    if not ranks:
        raise ValueError("No finite scores to rank")

    term_lists = _scored_term_lists(index, ranks, min_size, max_size)
    logger.info(f"Preranked GSEA of {len(term_lists)} of {len(index)} terms "
                f"with {min_size}-{max_size} scored members over {len(ranks)} ranked entities")
    if not term_lists:
        return to_frame([], PRERANKED_SCHEMA)

    if seed is None:
        seed = int(np.random.SeedSequence().generate_state(1)[0])

    pre_res = gp.prerank(
        rnk=pd.Series(ranks, dtype=float),
        gene_sets=term_lists,
        min_size=min_size,
        max_size=max_size,
        permutation_num=nperm,
        threads=n_jobs,
        seed=seed,
        outdir=None,
        no_plot=True,
        verbose=False
    )

    records = sorted(pre_res.res2d.to_dict(orient='records'), key=lambda rec: str(rec['Term']))
    if not records:
        return to_frame([], PRERANKED_SCHEMA)

    pvals = [float(rec['NOM p-val']) for rec in records]
    padj = perform_fdr_analysis(np.array(pvals))['pvals_corrected']
    names = resolve_term_names(index, term_names)

    rows = []
    for rec, pval, adjusted in zip(records, pvals, padj):
        term_id = str(rec['Term'])
        lead = rec.get('Lead_genes') or ''
        rows.append(PrerankedResult(
            term=term_id,
            term_name=names.get(term_id),
            pval=pval,
            padj=adjusted,
            ES=float(rec['ES']),
            NES=float(rec['NES']),
            size=len(term_lists[term_id]),
            leading_edge=','.join(g for g in str(lead).split(';') if g),
        ))

    result = to_frame(rows, PRERANKED_SCHEMA).sort('NES', maintain_order=True)
    logger.info(f"Preranked GSEA tested {result.height} terms")
    return result
