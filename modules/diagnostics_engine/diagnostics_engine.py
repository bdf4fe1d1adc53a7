import pandas as pd
import numpy as np
import matplotlib
matplotlib.use('Agg')  # Set backend before importing pyplot
import matplotlib.pyplot as plt
import seaborn as sns
import logging
from pathlib import Path
from typing import Optional, Callable, List, Tuple
from contextlib import contextmanager
import warnings
from modules.base.base_engine import BaseEngine
from modules.evaluation_engine import EvaluationEngine
from utils.error_handling import handle_engine_errors
from utils.exceptions import DataValidationError, WorkflowException
from utils import constants


def scatter_points(predictions: pd.DataFrame) -> pd.DataFrame:
    """Truth vs prediction points (regression), with residual = prediction - truth."""
    missing = [c for c in (constants.TRUTH_COLUMN, constants.PREDICTION_COLUMN) if c not in predictions.columns]
    if missing:
        raise DataValidationError(f"Scatter points need columns {missing}.")
    points = pd.DataFrame({
        'truth': predictions[constants.TRUTH_COLUMN].astype(float),
        'prediction': predictions[constants.PREDICTION_COLUMN].astype(float),
    }, index=predictions.index)
    points['residual'] = points['prediction'] - points['truth']
    return points


def curve_points(curves: pd.DataFrame, curve: str = "roc") -> pd.DataFrame:
    """
    Ordered (x, y, class) points for a ROC or gain curve table.

    ROC: x = false positive rate, y = true positive rate.
    Gain: x = percent tested, y = percent found.
    """
    axes = {
        'roc': ('false_positive_rate', 'true_positive_rate'),
        'gain': ('percent_tested', 'percent_found'),
    }
    if curve not in axes:
        raise DataValidationError(f"Unknown curve '{curve}'. Expected one of {list(axes)}.")
    x_col, y_col = axes[curve]
    points = pd.DataFrame({'x': curves[x_col].to_numpy(), 'y': curves[y_col].to_numpy()})
    points['class'] = curves['class'].astype(str).to_numpy() if 'class' in curves.columns else 'event'
    return points


def fold_metric_points(fold_table: pd.DataFrame, metrics: Optional[List[str]] = None) -> pd.DataFrame:
    """Long table (fold, repeat, metric, value) from a per-fold metrics table."""
    id_cols = [c for c in ('fold', 'repeat') if c in fold_table.columns]
    skip = set(id_cols) | {'n_train', 'n_validation'}
    if metrics is None:
        metrics = [c for c in fold_table.columns if c not in skip]
    points = fold_table.melt(id_vars=id_cols, value_vars=metrics, var_name='metric', value_name='value')
    return points.dropna(subset=['value']).reset_index(drop=True)


class DiagnosticsEngine(BaseEngine):
    """
    Renders diagnostic plots for one model's predictions: truth-vs-prediction
    scatter and residuals (regression), ROC and gain curves (classification),
    and fold metric box plots when a cross-validation result is given.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.diag_config = config.get('diagnostics', {})
        self.dpi = self.diag_config.get('dpi', 150)
        self.fmt = self.diag_config.get('save_format', 'png')

    def _get_engine_directory_name(self) -> str:
        return constants.DIAGNOSTICS_DIR

    @contextmanager
    def _plot_context(self):
        """
        Apply plot settings for one task and restore them afterwards, so global
        matplotlib/seaborn state does not leak between tasks.
        """
        original_rcParams = plt.rcParams.copy()
        original_seaborn_theme = sns.axes_style()
        figs = []
        try:
            sns.set_theme(style="whitegrid")
            plt.rcParams.update({'figure.max_open_warning': 0})
            yield figs
        finally:
            plt.rcParams.update(original_rcParams)
            sns.set_theme(style=original_seaborn_theme)
            for fig in figs:
                plt.close(fig)

    def _generate_plot_task(self, plot_func: Callable, data, name: str, output_dir: Path) -> str:
        """Run one plot function in its own plot context and report the outcome."""
        try:
            with self._plot_context() as figs:
                plot_func(data, name, output_dir, figs)
            return f"Success: {plot_func.__name__}"
        except (ValueError, KeyError, TypeError, OSError, WorkflowException) as e:
            self.logger.error(f"Failed to generate {plot_func.__name__}: {e}")
            return f"Failed: {plot_func.__name__} - {str(e)}"

    @handle_engine_errors("Diagnostics")
    def execute(self, predictions: pd.DataFrame, split_name: str, kind: str,
                model_name: str = "model", cv_fold_table: Optional[pd.DataFrame] = None,
                run_id: str = None) -> List[str]:
        """
        Generate all plots that apply to ``kind``.

        Returns:
            list: Status message per plot task.
        """
        if predictions.empty:
            self.logger.warning("Predictions dataframe is empty. Skipping diagnostics generation.")
            return []

        self.logger.info(f"Generating diagnostics for {model_name} on {split_name} set...")
        if not self.writes_artifacts:
            self.logger.info("Artifact writing disabled; no plots rendered.")
            return []

        label = f"{model_name}_{split_name}"
        plot_tasks: List[Tuple[Callable, object]] = []

        if kind == constants.MODE_REGRESSION:
            if self.diag_config.get('generate_scatter_plots', True):
                points = scatter_points(predictions)
                plot_tasks.append((self._plot_scatter, points))
                plot_tasks.append((self._plot_residuals, points))
        else:
            proba = EvaluationEngine.probability_columns(predictions)
            if not proba.empty and self.diag_config.get('generate_curve_plots', True):
                curves = EvaluationEngine(self._compute_only_config(), self.logger).compute_curves(
                    predictions[constants.TRUTH_COLUMN].astype(str), proba
                )
                if curves:
                    plot_tasks.append((self._plot_roc, curve_points(curves['roc_curve'], 'roc')))
                    plot_tasks.append((self._plot_gain, curve_points(curves['gain_curve'], 'gain')))

        if cv_fold_table is not None and not cv_fold_table.empty:
            plot_tasks.append((self._plot_cv_folds, fold_metric_points(cv_fold_table)))

        # Sequential: pyplot state is not thread-safe
        results = [
            self._generate_plot_task(plot_func, data, label, self.output_dir)
            for plot_func, data in plot_tasks
        ]

        successes = sum(1 for r in results if r.startswith("Success"))
        failures = sum(1 for r in results if r.startswith("Failed"))
        self.logger.info(f"Diagnostics generation complete: {successes} successful, {failures} failed")
        return results

    def _compute_only_config(self) -> dict:
        cfg = dict(self.config)
        cfg['outputs'] = {**self.config.get('outputs', {}), 'skip_dir_creation': True}
        return cfg

    def _save_fig(self, output_dir: Path, filename: str, fig, figs: list):
        """Helper to save and close figures."""
        path = output_dir / f"{filename}.{self.fmt}"
        fig.savefig(path, dpi=self.dpi, bbox_inches='tight')
        figs.append(fig)

    def _plot_scatter(self, points: pd.DataFrame, label: str, output_dir: Path, figs: list):
        """Scatter plot: Truth vs Predicted."""
        fig = plt.figure(figsize=(8, 8))
        plt.scatter(points['truth'], points['prediction'], c=points['residual'].abs(),
                    cmap='viridis', s=15, alpha=0.6)

        lo = float(np.nanmin([points['truth'].min(), points['prediction'].min()]))
        hi = float(np.nanmax([points['truth'].max(), points['prediction'].max()]))
        plt.plot([lo, hi], [lo, hi], 'r--', alpha=0.75, zorder=0, label='Perfect')

        plt.colorbar(label='Abs Residual')
        plt.title(f'{label}: Truth vs Predicted')
        plt.xlabel('Truth')
        plt.ylabel('Predicted')
        plt.legend()
        self._save_fig(output_dir, f"truth_vs_pred_{label}", fig, figs)

    def _plot_residuals(self, points: pd.DataFrame, label: str, output_dir: Path, figs: list):
        """Residuals vs Predicted Value."""
        fig = plt.figure(figsize=(10, 6))
        plt.scatter(points['prediction'], points['residual'], alpha=0.5, s=15)
        plt.axhline(0, color='r', linestyle='--')
        plt.title(f'{label}: Residuals vs Predicted')
        plt.xlabel('Predicted')
        plt.ylabel('Residual')
        self._save_fig(output_dir, f"residuals_vs_pred_{label}", fig, figs)

    def _plot_roc(self, points: pd.DataFrame, label: str, output_dir: Path, figs: list):
        fig = plt.figure(figsize=(7, 7))
        sns.lineplot(data=points, x='x', y='y', hue='class', drawstyle='steps-post',
                     estimator=None, sort=False)
        plt.plot([0, 1], [0, 1], color='grey', linestyle='--', linewidth=1)
        plt.title(f'{label}: ROC Curve')
        plt.xlabel('False Positive Rate')
        plt.ylabel('True Positive Rate')
        self._save_fig(output_dir, f"roc_curve_{label}", fig, figs)

    def _plot_gain(self, points: pd.DataFrame, label: str, output_dir: Path, figs: list):
        fig = plt.figure(figsize=(7, 7))
        sns.lineplot(data=points, x='x', y='y', hue='class', estimator=None, sort=False)
        plt.plot([0, 100], [0, 100], color='grey', linestyle='--', linewidth=1)
        plt.title(f'{label}: Gain Curve')
        plt.xlabel('% Tested')
        plt.ylabel('% Found')
        self._save_fig(output_dir, f"gain_curve_{label}", fig, figs)

    def _plot_cv_folds(self, points: pd.DataFrame, label: str, output_dir: Path, figs: list):
        """Per-metric fold distributions."""
        fig = plt.figure(figsize=(max(6, 1.5 * points['metric'].nunique()), 6))
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=PendingDeprecationWarning)
            sns.boxplot(data=points, x='metric', y='value', hue='metric', palette="Blues", legend=False)
        sns.stripplot(data=points, x='metric', y='value', color='black', size=3, alpha=0.6)
        plt.title(f'{label}: Cross-Validation Fold Metrics')
        plt.xlabel('Metric')
        plt.ylabel('Fold Value')
        self._save_fig(output_dir, f"cv_folds_{label}", fig, figs)
