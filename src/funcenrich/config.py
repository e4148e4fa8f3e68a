"""Configuration handling for the functional enrichment pipeline."""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import tomli
import tomli_w


DEFAULT_OVERREPRESENTATION = {
    'run': True,
    'min_count': 3,
    'sig_limit': 0.05,
}

DEFAULT_BOOTSTRAP = {
    'run': True,
    'minn': 3,
    'nboot': 1000,
    'seed': None,
}

DEFAULT_PRERANKED = {
    'run': False,
    'min_size': 3,
    'max_size': 500,
    'nperm': 1000,
    'seed': None,
}


class EnrichmentConfig:
    """Configuration class for the functional enrichment pipeline."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialise the configuration from a TOML file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config_path = config_path

        try:
            with open(config_path, "rb") as f:
                self.config = tomli.load(f)
        except FileNotFoundError:
            raise ValueError(f"Error loading configuration file: {config_path} does not exist")
        except tomli.TOMLDecodeError as e:
            raise ValueError(f"Error loading configuration file: {str(e)}")

        required_sections = ['input', 'output']
        missing_sections = [section for section in required_sections if section not in self.config]
        if missing_sections:
            raise ValueError(f"Missing required sections in configuration: {', '.join(missing_sections)}")

        self.input_files: Dict[str, Any] = self.config.get("input", {})
        if 'annotation_file' not in self.input_files:
            raise ValueError("Missing required input files in configuration: annotation_file")

        self.output_config: Dict[str, Any] = self.config.get("output", {})
        self.analysis_params: Dict[str, Any] = self.config.get("analysis", {})

        self.num_threads = int(self.analysis_params.get("num_threads", 1))
        if self.num_threads < 1:
            raise ValueError(f"num_threads must be at least 1, got {self.num_threads}")

    @property
    def overrepresentation_params(self) -> Dict[str, Any]:
        """Over-representation settings merged over the defaults."""
        return {**DEFAULT_OVERREPRESENTATION, **self.config.get("overrepresentation", {})}

    @property
    def bootstrap_params(self) -> Dict[str, Any]:
        """Bootstrap set-enrichment settings merged over the defaults."""
        return {**DEFAULT_BOOTSTRAP, **self.config.get("bootstrap", {})}

    @property
    def preranked_params(self) -> Dict[str, Any]:
        """Preranked GSEA settings merged over the defaults."""
        return {**DEFAULT_PRERANKED, **self.config.get("preranked", {})}

    def get_input_path(self, key: str) -> Optional[Path]:
        """Path of an optional input file, or None when not configured."""
        value = self.input_files.get(key)
        return Path(value) if value else None

    def get_output_path(self, subdir: Optional[str] = None) -> Path:
        """Get the path to the output directory or a subdirectory within it.

        Args:
            subdir: Optional subdirectory name within the output directory

        Returns:
            Path object for the requested directory
        """
        output_dir = self.output_config.get("directory", self.output_config.get("output_dir", "results"))
        base_path = Path(output_dir)

        if subdir:
            return base_path / subdir

        return base_path

    def save_config(self, output_path: Union[str, Path]) -> None:
        """Save the configuration to a TOML file.

        Args:
            output_path: Path to save the configuration file
        """
        with open(output_path, "wb") as f:
            tomli_w.dump(self.config, f)
