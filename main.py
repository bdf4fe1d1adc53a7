#!/usr/bin/env python
"""
Tabular Model Workflow - Main Entry Point
Loads a dataset, splits it, fits the preprocessing pipeline on the training
subset, trains every configured model and evaluates it on train/test data
(optionally with k-fold cross-validation and diagnostic plots).
"""
import sys
import logging
import argparse
import traceback
import random
from pathlib import Path

import pandas as pd
import numpy as np

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from modules.config_manager import ConfigurationManager
from modules.logging_config import LoggingConfigurator
from modules.data_manager import DataManager
from modules.split_engine import SplitEngine
from modules.preprocessing_engine import PreprocessingEngine
from modules.model_factory import Formula, ModelSpec
from modules.training_engine import TrainingEngine
from modules.prediction_engine import PredictionEngine
from modules.evaluation_engine import EvaluationEngine
from modules.cross_validation_engine import CrossValidationEngine, fold_summary
from modules.diagnostics_engine import DiagnosticsEngine
from utils.exceptions import WorkflowException
from utils.file_io import save_dataframe
from utils import constants


def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Tabular Model Workflow - split, preprocess, train, evaluate",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config/config.json",
        help="Path to the configuration JSON file"
    )

    parser.add_argument(
        "--run-id",
        type=str,
        default=None,
        help="Optional run identifier (appended to the results directory name)"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and setup without running the workflow"
    )

    return parser.parse_args(argv)


def setup_global_determinism(config: dict, logger: logging.Logger):
    """Seed the global random generators from the master seed."""
    seed = config.get('splitting', {}).get('seed', 42)
    logger.info(f"Setting Global Deterministic Seed: {seed}")
    random.seed(seed)
    np.random.seed(seed)


def setup_run_directory(config: dict, run_id: str = None, logger: logging.Logger = None):
    """
    Create the run directory.

    Returns:
        tuple: (run_dir Path, run_id string)
    """
    base_results_dir = config.get('outputs', {}).get('base_results_dir', 'results')

    if run_id:
        run_dir = Path(f"{base_results_dir}_{run_id}").absolute()
    else:
        run_dir = Path(base_results_dir).absolute()
        run_id = run_dir.name

    run_dir.mkdir(parents=True, exist_ok=True)
    if logger:
        logger.info(f"Created run directory: {run_dir}")

    return run_dir, run_id


def log_phase(logger: logging.Logger, title: str):
    logger.info("\n" + "=" * 60)
    logger.info(title)
    logger.info("=" * 60)


def run_workflow(config: dict, run_id: str, logger: logging.Logger) -> dict:
    """
    Execute every phase for an already validated configuration.

    Returns:
        dict: model name -> {'train': metrics, 'test': metrics, 'cv': CrossValidationResult | None}
    """
    formula = Formula.parse(config.get('formula', f"{config['data']['target']} ~ ."))

    # PHASE 1: DATA INGESTION & SPLITTING
    log_phase(logger, "PHASE 1: DATA INGESTION & SPLITTING")
    data = DataManager(config, logger).execute(run_id)
    logger.info(f"Data loaded: {len(data)} samples")

    train_raw, test_raw = SplitEngine(config, logger).execute(data, run_id)
    logger.info(f"Splits created - Train: {len(train_raw)}, Test: {len(test_raw)}")

    # PHASE 2: PREPROCESSING (fitted on training data only)
    log_phase(logger, "PHASE 2: PREPROCESSING")
    if config['preprocessing'].get('enabled', True):
        features = formula.resolve(train_raw.columns)
        pipeline = PreprocessingEngine(config, logger).execute(train_raw, features, formula.target, run_id)
        train_df = pipeline.transform(train_raw)
        test_df = pipeline.transform(test_raw)
        # Explicit feature lists lose the columns the correlation filter removed
        model_formula = formula.without(pipeline.dropped_columns)
    else:
        logger.info("Preprocessing disabled (config: preprocessing.enabled = false)")
        train_df, test_df = train_raw, test_raw
        model_formula = formula

    # PHASE 3: TRAINING & EVALUATION
    log_phase(logger, "PHASE 3: TRAINING & EVALUATION")
    trainer = TrainingEngine(config, logger)
    predictor = PredictionEngine(config, logger)
    evaluator = EvaluationEngine(config, logger)
    diagnostics = DiagnosticsEngine(config, logger) if config['diagnostics'].get('enabled') else None

    results = {}
    specs = [ModelSpec.from_config(m) for m in config['models']]
    predictions = {}
    for spec in specs:
        model = trainer.execute(train_df, spec, model_formula, run_id)
        train_pred = predictor.execute(model, train_df, 'train', run_id)
        test_pred = predictor.execute(model, test_df, 'test', run_id)
        train_metrics = evaluator.execute(train_pred, spec.mode, 'train', spec.label, run_id)
        test_metrics = evaluator.execute(test_pred, spec.mode, 'test', spec.label, run_id)
        evaluator.compare_splits(train_metrics, test_metrics, spec.label)
        predictions[spec.label] = test_pred
        results[spec.label] = {'train': train_metrics, 'test': test_metrics, 'cv': None}

    # PHASE 4: CROSS-VALIDATION
    cv_cfg = config['cross_validation']
    if cv_cfg.get('enabled'):
        log_phase(logger, "PHASE 4: CROSS-VALIDATION")
        # Raw rows when the pipeline is refit per fold, otherwise the transformed ones
        refit = cv_cfg.get('refit_preprocessing', True) and config['preprocessing'].get('enabled', True)
        cv_data, cv_formula = (train_raw, formula) if refit else (train_df, model_formula)
        cv_engine = CrossValidationEngine(config, logger)
        cv_results = []
        for spec in specs:
            if spec.label not in cv_cfg.get('models', [s.label for s in specs]):
                continue
            cv_result = cv_engine.execute(spec, cv_formula, cv_data, run_id=run_id)
            results[spec.label]['cv'] = cv_result
            cv_results.append(cv_result)
        if cv_engine.writes_artifacts and cv_results:
            save_dataframe(fold_summary(cv_results), cv_engine.output_dir / "cv_summary_all_models.parquet",
                           excel_copy=cv_engine.excel_copy, index=False)
    else:
        logger.info("Cross-validation disabled (config: cross_validation.enabled = false)")

    # PHASE 5: DIAGNOSTICS
    if diagnostics is not None:
        log_phase(logger, "PHASE 5: DIAGNOSTICS")
        for spec in specs:
            cv_result = results[spec.label]['cv']
            diagnostics.execute(
                predictions[spec.label], 'test', spec.mode, spec.label,
                cv_fold_table=cv_result.fold_table() if cv_result is not None else None,
                run_id=run_id,
            )

    summary_rows = [
        {'model': name, 'split': split, **metrics}
        for name, res in results.items()
        for split, metrics in (('train', res['train']), ('test', res['test']))
    ]
    if evaluator.writes_artifacts:
        save_dataframe(pd.DataFrame(summary_rows), evaluator.output_dir / "metrics_summary.parquet",
                       excel_copy=evaluator.excel_copy, index=False)
    return results


def main(argv=None):
    """
    Workflow orchestration.

    Returns:
        int: Exit code (0 for success, 1 for errors, 130 when interrupted)
    """
    logger = None

    try:
        args = parse_arguments(argv)

        print("\n" + "=" * 80)
        print("    TABULAR MODEL WORKFLOW")
        print("=" * 80 + "\n")

        # 1. Load and validate configuration
        config_manager = ConfigurationManager(config_path=args.config)
        config = config_manager.load_and_validate()

        if args.verbose:
            config['logging']['level'] = 'DEBUG'

        # 2. Setup logging
        logging_configurator = LoggingConfigurator(config)
        logging_configurator.setup()
        logger = logging_configurator.get_logger('workflow')

        logger.info("Workflow initialization started")
        logger.info(f"Configuration loaded from: {args.config}")

        # 3. Setup run directory
        run_dir, run_id = setup_run_directory(config, run_id=args.run_id, logger=logger)
        config_manager.run_id = run_id
        config['outputs']['base_results_dir'] = str(run_dir)

        # 4. Save configuration artifacts
        config_manager.save_artifacts(str(run_dir))

        # 5. Set global determinism
        setup_global_determinism(config, logger)

        logger.info(f"Run ID: {run_id}")
        logger.info(f"Output Directory: {run_dir}")

        if args.dry_run:
            logger.info("Dry run mode: validation complete. Exiting without running the workflow.")
            print("\n[SUCCESS] Configuration validated successfully.")
            return 0

        results = run_workflow(config, run_id, logger)

        logger.info("\n" + "-" * 60)
        logger.info("WORKFLOW COMPLETED SUCCESSFULLY")
        for name, res in results.items():
            headline = ", ".join(
                f"{k}={v:.4f}" for k, v in res['test'].items() if not k.startswith(('precision_', 'recall_'))
            )
            logger.info(f"  {name} (test): {headline}")
        logger.info(f"Output Directory: {run_dir}")
        logger.info("-" * 60 + "\n")

        print(f"\n[SUCCESS] Workflow completed. Results saved to: {run_dir}")
        return 0

    except WorkflowException as e:
        msg = f"Workflow Error: {str(e)}"
        print(f"\n[ERROR] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1

    except KeyboardInterrupt:
        print("\n[INTERRUPTED] Workflow interrupted by user.")
        if logger:
            logger.warning("Workflow interrupted by user (Ctrl+C)")
        return 130

    except Exception as e:
        msg = f"Unexpected Error: {str(e)}"
        print(f"\n[CRITICAL] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
