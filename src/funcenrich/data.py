"""
Loaders turning tab-delimited files into the enrichment engines' inputs.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging
import math

import polars as pl

logger = logging.getLogger(__name__)

_SELECTED_VALUES = {'yes', 'true', '1', 'y'}


def _read_tsv(file_path: Path, required: List[str]) -> pl.DataFrame:
    df = pl.read_csv(
        file_path,
        separator='\t',
        has_header=True,
        null_values=['NA'],
        # Everything as text so identifiers like 0012 keep their leading zeros
        infer_schema_length=0
    )
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"{file_path} is missing required columns: {', '.join(missing)}")
    return df


def load_term_annotation(file_path: Path) -> pl.DataFrame:
    """
    Load entity/term associations.

    Args:
        file_path: Path to a file with "id" and "term" columns

    Returns:
        DataFrame with string id and term columns
    """
    df = _read_tsv(file_path, ['id', 'term'])
    return df.select([pl.col('id').cast(pl.Utf8), pl.col('term').cast(pl.Utf8)])


def load_term_info(file_path: Path) -> pl.DataFrame:
    """
    Load term names and descriptions.

    Args:
        file_path: Path to a file with "term" (or "term_id") and "name"
            columns, and optionally "description"

    Returns:
        DataFrame with term, name and, if present, description columns
    """
    df = pl.read_csv(file_path, separator='\t', has_header=True, infer_schema_length=0)
    if 'term' not in df.columns and 'term_id' in df.columns:
        df = df.rename({'term_id': 'term'})
    missing = [col for col in ('term', 'name') if col not in df.columns]
    if missing:
        raise ValueError(f"{file_path} is missing required columns: {', '.join(missing)}")

    columns = ['term', 'name'] + (['description'] if 'description' in df.columns else [])
    return df.select([pl.col(col).cast(pl.Utf8) for col in columns])


def load_selection(file_path: Path) -> Tuple[List[str], List[str]]:
    """
    Load a universe of entities and the selected subset.

    The file lists every entity of the universe in an "id" column. An
    optional "selected" column flags the selection with yes/true/1; without
    it every listed entity is selected.

    Args:
        file_path: Path to selection file

    Returns:
        Tuple of (universe, selection), both de-duplicated in file order
    """
    df = _read_tsv(file_path, ['id']).with_columns(pl.col('id').cast(pl.Utf8)).drop_nulls('id')
    universe = df['id'].unique(maintain_order=True).to_list()

    if 'selected' in df.columns:
        flagged = df.filter(
            pl.col('selected').cast(pl.Utf8).str.to_lowercase().is_in(list(_SELECTED_VALUES))
        )
        selection = flagged['id'].unique(maintain_order=True).to_list()
    else:
        logger.warning(f"No 'selected' column in {file_path}; every entity is treated as selected")
        selection = list(universe)

    logger.info(f"Loaded universe of {len(universe)} entities with {len(selection)} selected")
    return universe, selection


def load_scores(file_path: Path, score_col: str = 'score') -> Dict[str, float]:
    """
    Load per-entity scores.

    Args:
        file_path: Path to a file with "id" and score columns
        score_col: Name of the score column

    Returns:
        Dictionary of entity id to score, NaN for missing scores
    """
    df = _read_tsv(file_path, ['id', score_col])
    df = df.select([pl.col('id').cast(pl.Utf8), pl.col(score_col).cast(pl.Float64)]).drop_nulls('id')
    scores = {
        entity: (math.nan if value is None else value)
        for entity, value in zip(df['id'].to_list(), df[score_col].to_list())
    }
    logger.info(f"Loaded {len(scores)} entity scores")
    return scores


def load_id_names(file_path: Optional[Path]) -> Optional[Dict[str, str]]:
    """
    Load entity id to display name mapping.

    Args:
        file_path: Path to a file with "id" and "name" columns, or None

    Returns:
        Dictionary of id to name, or None if no file provided
    """
    if file_path is None:
        return None

    df = _read_tsv(file_path, ['id', 'name'])
    df = df.select([pl.col('id').cast(pl.Utf8), pl.col('name').cast(pl.Utf8)]).drop_nulls()
    return dict(zip(df['id'].to_list(), df['name'].to_list()))
