"""
Diagnostics Engine Module
=========================

Responsibility:
- Point tables for truth-vs-prediction scatter, ROC / gain curves and fold metrics.
- Rendering of those tables with matplotlib / seaborn.
"""

from .diagnostics_engine import DiagnosticsEngine, scatter_points, curve_points, fold_metric_points

__all__ = ['DiagnosticsEngine', 'scatter_points', 'curve_points', 'fold_metric_points']
