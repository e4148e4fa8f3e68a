"""Tests for the bootstrap set-enrichment engine."""

from unittest.mock import patch

import pytest
import numpy as np
import polars as pl

from funcenrich.annotation import TermAnnotationIndex
from funcenrich.bootstrap import BootstrapCache, enrich_set_bootstrap
from funcenrich.results import SET_ENRICHMENT_SCHEMA
from funcenrich.stats import bootstrap_null_means


@pytest.fixture
def score():
    """Five scores of both signs."""
    return {'a': 1.0, 'b': 2.0, 'c': 3.0, 'd': -5.0, 'e': 0.0}


@pytest.fixture
def annotation():
    """Terms of sizes 3, 3, 2 and 5 over the five scored entities."""
    return pl.DataFrame({
        'id': ['a', 'b', 'c', 'a', 'd', 'e', 'b', 'c', 'a', 'b', 'c', 'd', 'e'],
        'term': ['T1', 'T1', 'T1', 'T2', 'T2', 'T2', 'T3', 'T3', 'T4', 'T4', 'T4', 'T4', 'T4'],
    })


@pytest.fixture
def term_names():
    """Names for some of the terms; T2 is named twice."""
    return pl.DataFrame({
        'term': ['T1', 'T2', 'T2', 'T4'],
        'name': ['first', 'second', 'second again', 'everything'],
    })


def test_small_example(score):
    """Test the worked example: no size-3 subset has a mean above 2 in magnitude."""
    relation = pl.DataFrame({'id': ['a', 'b', 'c'], 'term': ['T', 'T', 'T']})

    result = enrich_set_bootstrap(score, relation, nboot=1000, random_state=0)

    assert result.height == 1
    row = result.row(0, named=True)
    assert row['term'] == 'T'
    assert row['M'] == pytest.approx(2.0)
    assert row['n'] == 3
    assert row['ids'] == 'a,b,c'
    assert row['name'] == 'N/A'
    # The largest size-3 mean over these scores is exactly 2.0 and the test is strict
    assert row['p'] == 0.0


def test_p_value_matches_cached_null(score, annotation):
    """Test that p is the fraction of null means beating |M|."""
    result = enrich_set_bootstrap(score, annotation, minn=2, nboot=500, random_state=11)

    cache = BootstrapCache(list(score.values()), 500, random_state=11)
    for row in result.iter_rows(named=True):
        null = cache.get(row['n'])
        expected = np.count_nonzero(np.abs(null) > abs(row['M'])) / 500
        assert row['p'] == pytest.approx(expected)


def test_output_columns_and_order(score, annotation, term_names):
    """Test the fixed columns and term id ordering."""
    result = enrich_set_bootstrap(score, annotation, term_names, minn=2, nboot=50, random_state=1)

    assert result.columns == list(SET_ENRICHMENT_SCHEMA)
    assert result['term'].to_list() == ['T1', 'T2', 'T3', 'T4']


def test_term_names(score, annotation, term_names):
    """Test that only terms with exactly one name row are named."""
    result = enrich_set_bootstrap(score, annotation, term_names, minn=2, nboot=50, random_state=1)
    names = dict(zip(result['term'].to_list(), result['name'].to_list()))

    assert names['T1'] == 'first'
    assert names['T2'] == 'N/A'
    assert names['T3'] == 'N/A'
    assert names['T4'] == 'everything'


def test_minn_skips_small_terms(score, annotation):
    """Test that terms with fewer scored members than minn are skipped."""
    result = enrich_set_bootstrap(score, annotation, minn=3, nboot=50, random_state=1)

    assert 'T3' not in result['term'].to_list()
    assert result['n'].min() >= 3


def test_missing_scores_are_excluded(score):
    """Test that unscored members do not count and do not lower the mean."""
    relation = pl.DataFrame({'id': ['a', 'b', 'x', 'y'], 'term': ['T'] * 4})
    sparse = dict(score, y=None)

    result = enrich_set_bootstrap(sparse, relation, minn=2, nboot=50, random_state=1)

    row = result.row(0, named=True)
    assert row['n'] == 2
    assert row['M'] == pytest.approx(1.5)
    assert row['ids'] == 'a,b,x,y'

    result = enrich_set_bootstrap(sparse, relation, minn=3, nboot=50, random_state=1)
    assert result.height == 0


def test_null_draw_once_per_size(score, annotation):
    """Test that terms of equal size share a single null distribution."""
    with patch('funcenrich.bootstrap.bootstrap_null_means', wraps=bootstrap_null_means) as mock_draw:
        result = enrich_set_bootstrap(score, annotation, minn=2, nboot=100, random_state=3)

    sizes = [call.args[1] for call in mock_draw.call_args_list]
    assert sorted(sizes) == [2, 3, 5]
    assert sorted(result['n'].to_list()) == [2, 3, 3, 5]


def test_cache_not_shared_between_calls(score, annotation):
    """Test that every call draws its own null distributions."""
    with patch('funcenrich.bootstrap.bootstrap_null_means', wraps=bootstrap_null_means) as mock_draw:
        enrich_set_bootstrap(score, annotation, minn=3, nboot=20, random_state=3)
        enrich_set_bootstrap(score, annotation, minn=3, nboot=20, random_state=3)

    sizes = [call.args[1] for call in mock_draw.call_args_list]
    assert sorted(sizes) == [3, 3, 5, 5]


def test_seed_reproducible(score, annotation):
    """Test that a fixed seed gives identical p-values."""
    first = enrich_set_bootstrap(score, annotation, minn=2, nboot=200, random_state=42)
    second = enrich_set_bootstrap(score, annotation, minn=2, nboot=200, random_state=42)

    assert first['p'].to_list() == second['p'].to_list()


def test_threads_match_sequential(score, annotation):
    """Test that threaded processing gives the same table as sequential processing."""
    sequential = enrich_set_bootstrap(score, annotation, minn=2, nboot=200, random_state=5)
    threaded = enrich_set_bootstrap(score, annotation, minn=2, nboot=200, random_state=5, n_jobs=3)

    assert sequential.equals(threaded)


def test_full_population_null_concentrates_on_mean(score):
    """Test that drawing the whole population always gives the global mean."""
    cache = BootstrapCache(list(score.values()), 100, random_state=0)

    null = cache.get(len(score))

    assert np.allclose(null, np.mean(list(score.values())))


def test_extreme_term_is_significant():
    """Test that a term far from the global mean gets a small p-value."""
    rng = np.random.default_rng(2024)
    score = {f"g{i}": float(v) for i, v in enumerate(rng.normal(0.0, 1.0, size=300))}
    score.update({f"hit{i}": 4.0 for i in range(10)})
    relation = pl.DataFrame({
        'id': [f"hit{i}" for i in range(10)] + [f"g{i}" for i in range(10)],
        'term': ['up'] * 10 + ['random'] * 10,
    })

    result = enrich_set_bootstrap(score, relation, nboot=1000, random_state=7)
    p_values = dict(zip(result['term'].to_list(), result['p'].to_list()))

    assert p_values['up'] < 0.01
    assert p_values['random'] > p_values['up']


def test_accepts_annotation_index(score, annotation, term_names):
    """Test that a prebuilt index gives the same result as the relation."""
    index = TermAnnotationIndex.from_relation(annotation, term_names)

    from_relation = enrich_set_bootstrap(score, annotation, term_names, minn=2, nboot=100, random_state=9)
    from_index = enrich_set_bootstrap(score, index, minn=2, nboot=100, random_state=9)

    assert from_relation.equals(from_index)


def test_contract_violations(score, annotation):
    """Test that malformed inputs are rejected before computing."""
    with pytest.raises(ValueError, match="term_annotation requires columns id and term"):
        enrich_set_bootstrap(score, pl.DataFrame({'gene': ['a'], 'term': ['T']}))
    with pytest.raises(ValueError, match="term_names requires columns term and name"):
        enrich_set_bootstrap(score, annotation, pl.DataFrame({'term': ['T1']}))
    with pytest.raises(ValueError, match="minn"):
        enrich_set_bootstrap(score, annotation, minn=0)
    with pytest.raises(ValueError, match="nboot"):
        enrich_set_bootstrap(score, annotation, nboot=0)


def test_progress_callback(score, annotation):
    """Test that progress is reported and ends at 100%."""
    reported = []

    enrich_set_bootstrap(score, annotation, minn=2, nboot=10, random_state=1, progress=reported.append)

    assert reported == [100.0]


def test_shared_generator_runs_sequentially(score, annotation):
    """Test that a caller-supplied generator is accepted with several threads."""
    result = enrich_set_bootstrap(
        score, annotation, minn=2, nboot=50,
        random_state=np.random.default_rng(0), n_jobs=2
    )

    assert result.height == 4


def test_bootstrap_cache():
    """Test the per-size cache."""
    cache = BootstrapCache([1.0, 2.0, 3.0, 4.0], nboot=25, random_state=0)

    first = cache.get(2)
    second = cache.get(2)

    assert first is second
    assert len(first) == 25
    assert 2 in cache
    assert 3 not in cache
    assert len(cache) == 1
    assert not cache.shares_generator
