"""Result records and table shaping for the enrichment engines."""

from dataclasses import dataclass, fields
from typing import Dict, Iterable, Optional

import polars as pl

from funcenrich.stats import perform_fdr_analysis


@dataclass(frozen=True)
class OverrepresentationResult:
    """One tested term from the over-representation engine."""

    term_id: str
    name: Optional[str]
    description: Optional[str]
    tot: int        # term members
    sel: int        # term members in the selection
    expect: float   # expected selected members under the null
    enrich: float   # sel / expect
    ids: str        # selected members, space separated
    P: float


@dataclass(frozen=True)
class SetEnrichmentResult:
    """One tested term from the bootstrap set-enrichment engine."""

    term: str
    name: str
    p: float
    M: float
    n: int
    ids: str


@dataclass(frozen=True)
class PrerankedResult:
    """One tested term from the preranked GSEA engine."""

    term: str
    term_name: Optional[str]
    pval: float
    padj: float      # BH over pval
    ES: float
    NES: float
    size: int        # scored members
    leading_edge: str


ORA_SCHEMA: Dict[str, pl.DataType] = {
    'term_id': pl.Utf8,
    'name': pl.Utf8,
    'description': pl.Utf8,
    'tot': pl.Int64,
    'sel': pl.Int64,
    'expect': pl.Float64,
    'enrich': pl.Float64,
    'ids': pl.Utf8,
    'P': pl.Float64,
}

SET_ENRICHMENT_SCHEMA: Dict[str, pl.DataType] = {
    'term': pl.Utf8,
    'name': pl.Utf8,
    'p': pl.Float64,
    'M': pl.Float64,
    'n': pl.Int64,
    'ids': pl.Utf8,
}

PRERANKED_SCHEMA: Dict[str, pl.DataType] = {
    'term': pl.Utf8,
    'term_name': pl.Utf8,
    'pval': pl.Float64,
    'padj': pl.Float64,
    'ES': pl.Float64,
    'NES': pl.Float64,
    'size': pl.Int64,
    'leading_edge': pl.Utf8,
}


def to_frame(rows: Iterable, schema: Dict[str, pl.DataType]) -> pl.DataFrame:
    """
    Build a table from result records.

    Args:
        rows: Result dataclass instances
        schema: Column schema of the table

    Returns:
        DataFrame with one row per record; empty but fully typed if there
        are no records
    """
    rows = list(rows)
    if rows:
        record_fields = [f.name for f in fields(rows[0])]
        if record_fields != list(schema):
            raise ValueError(f"Result fields {record_fields} do not match table columns {list(schema)}")
    columns = {col: [getattr(row, col) for row in rows] for col in schema}
    return pl.DataFrame(columns, schema=schema)


def shape_overrepresentation(frame: pl.DataFrame, sig_limit: float) -> pl.DataFrame:
    """
    Correct, filter, rank and round an over-representation table.

    P-values are adjusted with Benjamini-Hochberg across every row of the
    table, rows with adjusted P above ``sig_limit`` are dropped, the rest are
    sorted by descending enrichment and rounded for display.

    Args:
        frame: Table of tested terms with raw P values
        sig_limit: Threshold on the adjusted P value

    Returns:
        Shaped table with the same columns
    """
    if frame.height == 0:
        return frame

    fdr = perform_fdr_analysis(frame['P'].to_numpy())
    return (
        frame
        .with_columns(pl.Series('P', fdr['pvals_corrected'], dtype=pl.Float64))
        .filter(pl.col('P') <= sig_limit)
        .sort('enrich', descending=True, maintain_order=True)
        .with_columns([
            pl.col('enrich').round(1),
            pl.col('expect').round(2),
        ])
    )
