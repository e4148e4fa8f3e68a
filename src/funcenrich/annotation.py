"""
Term-annotation index shared by both enrichment engines.

A term (GO term, pathway, ...) maps to the entities annotated with it, and
optionally to descriptive metadata. The index is built once by the caller
and only read by the engines.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import polars as pl

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TermInfo:
    """Descriptive metadata for a single term."""

    term_id: str
    name: Optional[str] = None
    description: Optional[str] = None


def _unique_in_order(ids: Iterable) -> Tuple[str, ...]:
    seen = {}
    for entity in ids:
        if entity is None:
            continue
        seen.setdefault(str(entity), None)
    return tuple(seen)


def group_members(
    relation: pl.DataFrame,
    id_col: str = 'id',
    term_col: str = 'term'
) -> Dict[str, Tuple[str, ...]]:
    """
    Group a flat (entity, term) relation into term -> members.

    Args:
        relation: DataFrame with one row per entity/term association
        id_col: Name of the entity identifier column
        term_col: Name of the term identifier column

    Returns:
        Dictionary keyed by term id in sorted order; members are de-duplicated
        and kept in the order they first appear in the relation

    Raises:
        ValueError: If the relation lacks the id or term column
    """
    missing = [col for col in (id_col, term_col) if col not in relation.columns]
    if missing:
        raise ValueError(f"Annotation relation requires columns {id_col} and {term_col}; "
                         f"missing: {', '.join(missing)}")

    grouped = (
        relation
        .select([pl.col(term_col).cast(pl.Utf8), pl.col(id_col).cast(pl.Utf8)])
        .drop_nulls()
        .group_by(term_col, maintain_order=True)
        .agg(pl.col(id_col))
        .sort(term_col)
    )

    return {
        term: _unique_in_order(ids)
        for term, ids in zip(grouped[term_col].to_list(), grouped[id_col].to_list())
    }


def _parse_term_info(term_info: pl.DataFrame) -> Dict[str, TermInfo]:
    if 'term' not in term_info.columns and 'term_id' in term_info.columns:
        term_info = term_info.rename({'term_id': 'term'})
    if 'term' not in term_info.columns or 'name' not in term_info.columns:
        raise ValueError("Term metadata requires columns term and name.")

    has_description = 'description' in term_info.columns
    counts = Counter(str(t) for t in term_info['term'].to_list())

    terms = {}
    for row in term_info.iter_rows(named=True):
        term_id = str(row['term'])
        if counts[term_id] != 1:
            continue
        terms[term_id] = TermInfo(
            term_id=term_id,
            name=row['name'],
            description=row['description'] if has_description else None,
        )

    ambiguous = sorted(t for t, c in counts.items() if c > 1)
    if ambiguous:
        logger.debug(f"{len(ambiguous)} terms have more than one metadata row and are left unnamed: "
                     f"{', '.join(ambiguous[:10])}")
    return terms


@dataclass
class TermAnnotationIndex:
    """Mapping of terms to member entities, with optional term metadata."""

    term2members: Dict[str, Tuple[str, ...]]
    terms: Dict[str, TermInfo] = field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls,
        term2members: Mapping[str, Iterable[str]],
        term_info: Optional[pl.DataFrame] = None
    ) -> 'TermAnnotationIndex':
        """Build an index from a plain term -> members mapping."""
        members = {
            str(term): _unique_in_order(ids)
            for term, ids in sorted(term2members.items(), key=lambda item: str(item[0]))
        }
        terms = _parse_term_info(term_info) if term_info is not None else {}
        return cls(members, terms)

    @classmethod
    def from_relation(
        cls,
        relation: pl.DataFrame,
        term_info: Optional[pl.DataFrame] = None,
        id_col: str = 'id',
        term_col: str = 'term'
    ) -> 'TermAnnotationIndex':
        """
        Build an index from a flat entity/term relation.

        Args:
            relation: DataFrame with entity and term id columns
            term_info: Optional DataFrame with term, name and description columns
            id_col: Name of the entity identifier column
            term_col: Name of the term identifier column

        Returns:
            TermAnnotationIndex
        """
        members = group_members(relation, id_col=id_col, term_col=term_col)
        terms = _parse_term_info(term_info) if term_info is not None else {}
        logger.debug(f"Built annotation index with {len(members)} terms "
                     f"({len(terms)} with metadata)")
        return cls(members, terms)

    @property
    def term_ids(self) -> List[str]:
        return sorted(self.term2members)

    def members(self, term_id: str) -> Tuple[str, ...]:
        return self.term2members[term_id]

    def size(self, term_id: str) -> int:
        return len(self.term2members[term_id])

    def info(self, term_id: str) -> Optional[TermInfo]:
        return self.terms.get(term_id)

    def __len__(self) -> int:
        return len(self.term2members)

    def __iter__(self) -> Iterator[str]:
        return iter(self.term_ids)

    def __contains__(self, term_id) -> bool:
        return term_id in self.term2members


def resolve_term_names(
    index: TermAnnotationIndex,
    term_names: Optional[pl.DataFrame] = None
) -> Dict[str, str]:
    """
    Term id -> display name.

    Only terms with exactly one row in ``term_names`` are named. Without a
    table the names come from the index metadata.
    """
    if term_names is None:
        return {
            term_id: info.name
            for term_id, info in index.terms.items()
            if info.name is not None
        }

    terms = [str(t) for t in term_names['term'].to_list()]
    counts = Counter(terms)
    return {
        term_id: str(name)
        for term_id, name in zip(terms, term_names['name'].to_list())
        if counts[term_id] == 1 and name is not None
    }
