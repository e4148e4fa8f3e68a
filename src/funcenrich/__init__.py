"""
Functional Enrichment
=====================

A Python package for testing functional terms (GO terms, pathways, ...) for
enrichment: by over-representation in a selection of entities, by
bootstrapped mean scores, or by preranked GSEA over the scores.
"""

from .annotation import (
    TermAnnotationIndex,
    TermInfo,
    group_members as group_members,
    resolve_term_names as resolve_term_names,
)
from .ora import enrich_overrepresentation as enrich_overrepresentation
from .bootstrap import BootstrapCache, enrich_set_bootstrap as enrich_set_bootstrap
from .preranked import enrich_preranked as enrich_preranked
from .results import OverrepresentationResult, SetEnrichmentResult, PrerankedResult
from .config import EnrichmentConfig
from .pipeline import EnrichmentPipeline
from .data import (
    load_term_annotation as load_term_annotation,
    load_term_info as load_term_info,
    load_selection as load_selection,
    load_scores as load_scores,
    load_id_names as load_id_names,
)
from .stats import (
    fisher_exact_greater as fisher_exact_greater,
    perform_fdr_analysis as perform_fdr_analysis,
    bootstrap_null_means as bootstrap_null_means,
    calculate_significance as calculate_significance,
)
from .utils import setup_logging as setup_logging, ensure_dir as ensure_dir

__version__ = "0.1.0"

__all__ = [
    "TermAnnotationIndex",
    "TermInfo",
    "group_members",
    "resolve_term_names",
    "enrich_overrepresentation",
    "BootstrapCache",
    "enrich_set_bootstrap",
    "enrich_preranked",
    "OverrepresentationResult",
    "SetEnrichmentResult",
    "PrerankedResult",
    "EnrichmentConfig",
    "EnrichmentPipeline",
    "load_term_annotation",
    "load_term_info",
    "load_selection",
    "load_scores",
    "load_id_names",
    "fisher_exact_greater",
    "perform_fdr_analysis",
    "bootstrap_null_means",
    "calculate_significance",
    "setup_logging",
    "ensure_dir",
]
