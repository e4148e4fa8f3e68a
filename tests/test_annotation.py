"""Tests for the term-annotation index."""

import logging

import pytest
import polars as pl

from funcenrich.annotation import TermAnnotationIndex, TermInfo, group_members, resolve_term_names


@pytest.fixture
def relation():
    """Entity/term associations with a duplicate and a null."""
    return pl.DataFrame({
        'id': ['g2', 'g1', 'g3', 'g2', 'g1', None, 'g4'],
        'term': ['GO:2', 'GO:1', 'GO:2', 'GO:2', 'GO:3', 'GO:1', 'GO:1'],
    })


def test_group_members(relation):
    """Test grouping into sorted terms with de-duplicated, ordered members."""
    grouped = group_members(relation)

    assert list(grouped) == ['GO:1', 'GO:2', 'GO:3']
    assert grouped['GO:1'] == ('g1', 'g4')
    assert grouped['GO:2'] == ('g2', 'g3')
    assert grouped['GO:3'] == ('g1',)


def test_group_members_custom_columns():
    """Test grouping with other column names."""
    relation = pl.DataFrame({'gene_id': ['a', 'b'], 'term_id': ['T', 'T']})

    grouped = group_members(relation, id_col='gene_id', term_col='term_id')

    assert grouped == {'T': ('a', 'b')}


def test_group_members_missing_columns():
    """Test that a relation without the id or term column is rejected."""
    with pytest.raises(ValueError, match="requires columns id and term"):
        group_members(pl.DataFrame({'gene': ['a'], 'term': ['T']}))


def test_from_relation_with_metadata(relation):
    """Test building an index with term metadata."""
    term_info = pl.DataFrame({
        'term_id': ['GO:1', 'GO:2'],
        'name': ['one', 'two'],
        'description': ['first term', 'second term'],
    })

    index = TermAnnotationIndex.from_relation(relation, term_info)

    assert len(index) == 3
    assert index.term_ids == ['GO:1', 'GO:2', 'GO:3']
    assert list(index) == index.term_ids
    assert 'GO:2' in index
    assert 'GO:9' not in index
    assert index.size('GO:1') == 2
    assert index.info('GO:1') == TermInfo('GO:1', 'one', 'first term')
    assert index.info('GO:3') is None


def test_ambiguous_metadata_is_dropped(relation, caplog):
    """Test that a term with several metadata rows is left without metadata."""
    caplog.set_level(logging.DEBUG)
    term_info = pl.DataFrame({
        'term': ['GO:1', 'GO:1', 'GO:2'],
        'name': ['one', 'uno', 'two'],
    })

    index = TermAnnotationIndex.from_relation(relation, term_info)

    assert index.info('GO:1') is None
    assert index.info('GO:2').name == 'two'
    assert index.info('GO:2').description is None
    assert any("more than one metadata row" in record.message for record in caplog.records)


def test_term_info_requires_name(relation):
    """Test that metadata without a name column is rejected."""
    with pytest.raises(ValueError, match="term and name"):
        TermAnnotationIndex.from_relation(relation, pl.DataFrame({'term': ['GO:1']}))


def test_from_mapping():
    """Test building an index from a plain mapping."""
    index = TermAnnotationIndex.from_mapping({'b': ['x', 'y', 'x'], 'a': {'z'}})

    assert index.term_ids == ['a', 'b']
    assert index.members('b') == ('x', 'y')
    assert index.members('a') == ('z',)
    assert index.terms == {}


def test_resolve_term_names():
    """Test that only unambiguous names are resolved."""
    term_info = pl.DataFrame({'term': ['T1', 'T2'], 'name': ['first', None]})
    index = TermAnnotationIndex.from_mapping({'T1': ['a'], 'T2': ['b'], 'T3': ['c']}, term_info)

    assert resolve_term_names(index) == {'T1': 'first'}

    names = pl.DataFrame({'term': ['T1', 'T2', 'T2', 'T3'], 'name': ['one', 'two', 'deux', None]})
    assert resolve_term_names(index, names) == {'T1': 'one'}
