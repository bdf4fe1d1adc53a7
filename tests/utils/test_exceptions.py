import pytest
from utils.exceptions import (
    WorkflowException,
    ConfigurationError,
    DataValidationError,
    InvalidFractionError,
    EmptyGroupError,
    DegenerateColumnError,
    UnsupportedModeError,
    SchemaMismatchError,
)

def test_exception_inheritance():
    err = ConfigurationError("Test error")
    assert isinstance(err, WorkflowException)
    assert isinstance(err, Exception)
    assert str(err) == "Test error"

@pytest.mark.parametrize("exc", [
    InvalidFractionError(1.5),
    EmptyGroupError('species', {'setosa': 1}),
    DegenerateColumnError(['const']),
    UnsupportedModeError("nope", kind='linear', mode='classification'),
    SchemaMismatchError(['a']),
    DataValidationError("bad"),
])
def test_workflow_errors_share_base(exc):
    assert isinstance(exc, WorkflowException)

def test_error_payloads():
    assert InvalidFractionError(0).fraction == 0
    assert "(exclusive)" in str(InvalidFractionError(0))

    err = EmptyGroupError('species', {'virginica': 1}, min_rows=2)
    assert err.column == 'species'
    assert err.groups == {'virginica': 1}
    assert "virginica" in str(err)

    assert DegenerateColumnError(('c',)).columns == ['c']

    mode_err = UnsupportedModeError("x", kind='linear', mode='classification')
    assert (mode_err.kind, mode_err.mode) == ('linear', 'classification')

    schema_err = SchemaMismatchError(['petal_width'], context="Prediction input")
    assert schema_err.missing == ['petal_width']
    assert str(schema_err) == "Prediction input is missing required column(s): ['petal_width']"
