import json
import os
import hashlib
import sys
import copy
import logging
import jsonschema
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

from modules.model_factory import ModelFactory, ModelSpec, Formula
from utils.exceptions import ConfigurationError
from utils import constants

class ConfigurationManager:
    """
    Manages workflow configuration loading, validation, and access.
    Acts as the single source of truth for every engine in a run.
    """

    DEFAULTS: Dict[str, Any] = {
        'splitting': {
            'train_fraction': constants.DEFAULT_TRAIN_FRACTION,
            'stratify_by': None,
            'seed': 42,
            'numeric_strata_bins': constants.DEFAULT_NUMERIC_STRATA_BINS,
        },
        'preprocessing': {
            'enabled': True,
            'correlation_filter': True,
            'correlation_threshold': constants.DEFAULT_CORRELATION_THRESHOLD,
            'center': True,
            'scale': True,
            'exclude_columns': [],
        },
        'cross_validation': {
            'enabled': False,
            'folds': constants.DEFAULT_CV_FOLDS,
            'repeats': 1,
            'stratify_by': None,
            'refit_preprocessing': True,
        },
        'evaluation': {'per_class': False, 'event_level': None},
        'diagnostics': {'enabled': False, 'dpi': 150},
        'outputs': {
            'base_results_dir': 'results',
            'save_models': True,
            'save_predictions': True,
            'save_excel_copy': False,
        },
        'execution': {'n_jobs': 1},
        'logging': {'level': 'INFO', 'log_to_console': True, 'log_to_file': True, 'colorful_console': True},
    }

    def __init__(self, config_path: str = "config/config.json",
                 schema_path: str = "config/schema.json"):
        """
        Initialize the ConfigurationManager.

        Args:
            config_path (str): Path to the user configuration JSON.
            schema_path (str): Path to the JSON schema definition.
        """
        self.config_path = config_path
        self.schema_path = schema_path
        self.config: Dict[str, Any] = {}
        self.schema: Dict[str, Any] = {}
        self.run_id: Optional[str] = None
        self.logger = logging.getLogger("config_manager")

    def load_and_validate(self) -> Dict[str, Any]:
        """
        Main entry point. Loads config, validates schema and logic,
        applies defaults, and propagates seeds.

        Returns:
            Dict[str, Any]: The fully validated and hydrated configuration.

        Raises:
            ConfigurationError: If any validation step fails.
        """
        self.config = self._load_json(self.config_path)
        self.schema = self._load_json(self.schema_path)

        self._validate_schema()
        self._apply_defaults()
        self._validate_logic()
        self._propagate_seeds()

        return self.config

    def generate_run_id(self) -> str:
        """
        Generate or retrieve a unique run identifier based on timestamp.
        """
        if not self.run_id:
            self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.run_id

    def save_artifacts(self, output_dir: str) -> None:
        """
        Save configuration artifacts to the run directory for full reproducibility.

        Saves:
        1. config_used.json: The exact config object in memory.
        2. config_hash.txt: SHA256 hash for versioning.
        3. run_metadata.json: Environment details (Python version, Platform, etc.).
        """
        config_dir = Path(output_dir) / constants.CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)

        with open(config_dir / constants.CONFIG_USED_FILE, 'w') as f:
            json.dump(self.config, f, indent=2)

        config_str = json.dumps(self.config, sort_keys=True)
        config_hash = hashlib.sha256(config_str.encode()).hexdigest()

        with open(config_dir / constants.CONFIG_HASH_FILE, 'w') as f:
            f.write(config_hash)

        metadata = {
            'run_id': self.run_id,
            'start_time': datetime.now().isoformat(),
            'python_version': sys.version,
            'platform': sys.platform,
            'config_hash': config_hash,
            'working_directory': os.getcwd()
        }

        with open(config_dir / constants.RUN_METADATA_FILE, 'w') as f:
            json.dump(metadata, f, indent=2)

    def _load_json(self, path: str) -> Dict[str, Any]:
        """Safely load a JSON file."""
        if not os.path.exists(path):
            raise ConfigurationError(f"File not found: {path}")
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {str(e)}")

    def _validate_schema(self) -> None:
        """Validate config structure against JSON schema."""
        try:
            jsonschema.validate(instance=self.config, schema=self.schema)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Schema validation failed: {e.message}")

    def _apply_defaults(self) -> None:
        """Fill missing keys section by section; user values always win."""
        for section, defaults in self.DEFAULTS.items():
            merged = copy.deepcopy(defaults)
            merged.update(self.config.get(section) or {})
            self.config[section] = merged

    def _validate_logic(self) -> None:
        """Logical validation beyond what the schema can express."""
        # --- Data Section ---
        data = self.config.get('data', {})
        for key in ['file_path', 'target']:
            if not data.get(key):
                raise ConfigurationError(f"Data '{key}' must be specified and non-empty.")
        for join in data.get('joins', []):
            if not join.get('file_path') or not join.get('on'):
                raise ConfigurationError("Every entry in data.joins needs 'file_path' and 'on'.")

        # --- Formula ---
        formula = Formula.parse(self.config.get('formula', f"{data['target']} ~ ."))
        if formula.target != data['target']:
            raise ConfigurationError(
                f"Formula target '{formula.target}' does not match data.target '{data['target']}'."
            )

        # --- Splitting Section ---
        split = self.config['splitting']
        fraction = split['train_fraction']
        if not (0.0 < fraction < 1.0):
            raise ConfigurationError(f"train_fraction must be between 0 and 1 (exclusive), got {fraction}")
        if split['seed'] < 0:
            raise ConfigurationError("Splitting seed must be non-negative.")
        if split['numeric_strata_bins'] < 2:
            raise ConfigurationError(f"numeric_strata_bins must be >= 2, got {split['numeric_strata_bins']}")

        # --- Preprocessing Section ---
        prep = self.config['preprocessing']
        if prep['enabled']:
            if prep.get('correlation_scope') not in (constants.CORRELATION_SCOPE_FEATURES,
                                                     constants.CORRELATION_SCOPE_ALL_NUMERIC):
                raise ConfigurationError(
                    "preprocessing.correlation_scope must be stated explicitly as "
                    f"'{constants.CORRELATION_SCOPE_FEATURES}' or '{constants.CORRELATION_SCOPE_ALL_NUMERIC}'."
                )
            threshold = prep['correlation_threshold']
            if not (0.0 < threshold <= 1.0):
                raise ConfigurationError(f"correlation_threshold must be in (0, 1], got {threshold}")

        # --- Models Section ---
        models = self.config.get('models') or []
        if not models:
            raise ConfigurationError("At least one model must be configured under 'models'.")
        specs = [ModelSpec.from_config(m) for m in models]
        for spec in specs:
            # Raises UnsupportedModeError for invalid kind/mode/engine combinations
            ModelFactory.create(spec)
        # Unnamed models are labelled kind_mode; labels name output files
        names = [spec.label for spec in specs]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Model labels must be unique, got {names}")

        # --- Cross-Validation Section ---
        cv = self.config['cross_validation']
        if cv['enabled']:
            if cv['folds'] < 2:
                raise ConfigurationError(f"cross_validation.folds must be >= 2, got {cv['folds']}.")
            if cv['repeats'] < 1:
                raise ConfigurationError(f"cross_validation.repeats must be >= 1, got {cv['repeats']}.")
            unknown = set(cv.get('models', names)) - set(names)
            if unknown:
                raise ConfigurationError(f"cross_validation.models references unknown models: {sorted(unknown)}")

        # --- Execution Section ---
        n_jobs = self.config['execution']['n_jobs']
        if n_jobs == 0 or n_jobs < -1:
            raise ConfigurationError(f"execution.n_jobs must be -1 (all cores) or a positive integer, got {n_jobs}")

    def _propagate_seeds(self) -> None:
        """
        Propagate master seed to internal components to ensure full workflow reproducibility.
        Uses large, non-overlapping offsets to avoid correlation between components.
        """
        master_seed = self.config['splitting']['seed']

        self.config['_internal_seeds'] = {
            'split': master_seed,
            'cv': master_seed + 1000,
            'model': master_seed + 2000,
        }
        logging.debug(f"Seeds propagated from master ({master_seed}): {self.config['_internal_seeds']}")
