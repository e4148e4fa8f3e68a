"""Pipeline wiring input files to the enrichment engines."""

import json
import logging
import os
import time
from pathlib import Path
from typing import Dict, Optional, Union

import polars as pl

from funcenrich.annotation import TermAnnotationIndex
from funcenrich.bootstrap import enrich_set_bootstrap
from funcenrich.config import EnrichmentConfig
from funcenrich.data import (
    load_id_names,
    load_scores,
    load_selection,
    load_term_annotation,
    load_term_info,
)
from funcenrich.ora import enrich_overrepresentation
from funcenrich.preranked import enrich_preranked
from funcenrich.utils import ensure_dir


class EnrichmentPipeline:
    """Main class for running functional enrichment analysis."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialise the pipeline with a configuration file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config = EnrichmentConfig(config_path)
        self.logger = logging.getLogger(__name__)
        self.results: Dict[str, pl.DataFrame] = {}
        self._load_input_data()

    def _load_input_data(self):
        """Load and validate input data files."""
        self.logger.debug("Starting to load input data files")

        for file_key, file_path in self.config.input_files.items():
            if isinstance(file_path, (str, bytes, os.PathLike)) and not Path(file_path).is_file():
                error_msg = f"Input file not found: {file_path} (specified as {file_key})"
                self.logger.error(error_msg)
                raise FileNotFoundError(error_msg)

        self.term_annotation = load_term_annotation(self.config.get_input_path('annotation_file'))

        term_info_path = self.config.get_input_path('term_info_file')
        self.term_info = load_term_info(term_info_path) if term_info_path else None

        self.term_index = TermAnnotationIndex.from_relation(self.term_annotation, self.term_info)

        selection_path = self.config.get_input_path('selection_file')
        if selection_path:
            self.universe, self.selection = load_selection(selection_path)
        else:
            self.universe, self.selection = None, None

        scores_path = self.config.get_input_path('scores_file')
        self.scores = load_scores(scores_path) if scores_path else None

        self.id_to_name = load_id_names(self.config.get_input_path('id_names_file'))

        self.logger.info(f"Loaded {self.term_annotation.height} annotations over {len(self.term_index)} terms")
        self.logger.debug("Finished loading input data files")

    def run_overrepresentation(self) -> pl.DataFrame:
        """Run the over-representation test on the configured selection."""
        params = self.config.overrepresentation_params
        result = enrich_overrepresentation(
            self.universe,
            self.selection,
            self.term_index,
            id_to_name=self.id_to_name,
            min_count=params['min_count'],
            sig_limit=params['sig_limit'],
            n_jobs=self.config.num_threads
        )
        self.results['overrepresentation'] = result
        return result

    def run_set_enrichment(self, verbose: bool = False) -> pl.DataFrame:
        """Run the bootstrap set-enrichment test on the configured scores."""
        params = self.config.bootstrap_params
        if self.term_info is not None:
            term_names = self.term_info.select(['term', 'name'])
        else:
            term_names = None
        result = enrich_set_bootstrap(
            self.scores,
            self.term_index,
            term_names=term_names,
            minn=params['minn'],
            nboot=params['nboot'],
            random_state=params['seed'],
            n_jobs=self.config.num_threads,
            verbose=verbose
        )
        self.results['set_enrichment'] = result
        return result

    def run_preranked(self) -> pl.DataFrame:
        """Run preranked GSEA on the configured scores."""
        params = self.config.preranked_params
        if self.term_info is not None:
            term_names = self.term_info.select(['term', 'name'])
        else:
            term_names = None
        result = enrich_preranked(
            self.scores,
            self.term_index,
            term_names=term_names,
            min_size=params['min_size'],
            max_size=params['max_size'],
            nperm=params['nperm'],
            seed=params['seed'],
            n_jobs=self.config.num_threads
        )
        self.results['preranked'] = result
        return result

    def run(self, verbose: bool = False):
        """Run every enabled and configured analysis, then save the results."""
        self.logger.info("Starting functional enrichment analysis pipeline")
        start_time = time.time()

        if self.selection is not None and self.config.overrepresentation_params['run']:
            self.logger.info("Running over-representation analysis")
            self.run_overrepresentation()
        else:
            self.logger.info("Skipping over-representation analysis")

        if self.scores is not None and self.config.bootstrap_params['run']:
            self.logger.info("Running bootstrap set-enrichment analysis")
            self.run_set_enrichment(verbose=verbose)
        else:
            self.logger.info("Skipping bootstrap set-enrichment analysis")

        if self.scores is not None and self.config.preranked_params['run']:
            self.logger.info("Running preranked GSEA")
            self.run_preranked()
        else:
            self.logger.info("Skipping preranked GSEA")

        if not self.results:
            self.logger.warning("No analysis was run; configure selection_file and/or scores_file")

        self.logger.info("Saving results")
        self.save_results()

        elapsed_time = time.time() - start_time
        self.logger.info(f"Pipeline completed in {elapsed_time:.2f} seconds")

    def save_results(self, output_dir: Optional[Union[str, Path]] = None):
        """Save analysis results.

        Args:
            output_dir: Optional output directory path. If not provided,
                        uses the directory from the configuration.
        """
        if not self.results:
            self.logger.warning("No results to save. Run the pipeline first.")
            return

        output_path = Path(output_dir) if output_dir is not None else self.config.get_output_path()
        data_path = ensure_dir(output_path / 'data')

        for name, table in self.results.items():
            result_file = data_path / f"{name}.tsv"
            table.write_csv(result_file, separator='\t')
            self.logger.info(f"Saved {table.height} {name} results to {result_file}")

        config_file = data_path / 'pipeline_config.json'
        with open(config_file, 'w') as f:
            config_dict = {
                'input_files': {k: str(v) for k, v in self.config.input_files.items()
                                if isinstance(v, (str, bytes, os.PathLike))},
                'output': self.config.output_config,
                'overrepresentation': self.config.overrepresentation_params,
                'bootstrap': self.config.bootstrap_params,
                'preranked': self.config.preranked_params,
                'num_threads': self.config.num_threads
            }
            json.dump(config_dict, f, indent=2)

        self.logger.info(f"Saved configuration to {config_file}")
