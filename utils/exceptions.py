"""
Custom exception hierarchy for the tabular modeling workflow.
"""

class WorkflowException(Exception):
    """Base exception for all workflow errors."""
    pass

class ConfigurationError(WorkflowException):
    """Configuration validation failed."""
    pass

class DataValidationError(WorkflowException):
    """Data validation failed."""
    pass

class ModelTrainingError(WorkflowException):
    """Model training failed."""
    pass

class PredictionError(WorkflowException):
    """Prediction generation failed."""
    pass

class InvalidFractionError(WorkflowException):
    """Train fraction outside the open interval (0, 1)."""

    def __init__(self, fraction):
        self.fraction = fraction
        super().__init__(f"train_fraction must be between 0 and 1 (exclusive), got {fraction}")

class EmptyGroupError(WorkflowException):
    """A stratification group is too small to be split."""

    def __init__(self, column: str, groups: dict, min_rows: int = 2):
        self.column = column
        self.groups = dict(groups)
        self.min_rows = min_rows
        super().__init__(
            f"Stratification column '{column}' has groups with fewer than {min_rows} rows: {self.groups}"
        )

class DegenerateColumnError(WorkflowException):
    """Column has zero standard deviation and cannot be scaled."""

    def __init__(self, columns):
        self.columns = list(columns)
        super().__init__(
            f"Cannot scale constant column(s) {self.columns}: standard deviation is zero. "
            "Exclude them explicitly to pass them through."
        )

class UnsupportedModeError(WorkflowException):
    """Model kind, mode and engine combination is not supported."""

    def __init__(self, message: str, kind: str = None, mode: str = None):
        self.kind = kind
        self.mode = mode
        super().__init__(message)

class SchemaMismatchError(WorkflowException):
    """Dataset lacks columns (or types) the fitted artifact expects."""

    def __init__(self, missing, context: str = "dataset"):
        self.missing = list(missing)
        super().__init__(f"{context} is missing required column(s): {self.missing}")
