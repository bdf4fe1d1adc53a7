import pytest
from unittest.mock import Mock
from utils.error_handling import handle_engine_errors
from utils.exceptions import WorkflowException, DataValidationError

class Dummy:
    def __init__(self):
        self.logger = Mock()

    @handle_engine_errors("Dummy Op")
    def fail_known(self):
        raise DataValidationError("known")

    @handle_engine_errors("Dummy Op")
    def fail_unknown(self):
        raise KeyError("boom")

    @handle_engine_errors("Dummy Op")
    def succeed(self):
        return 7

def test_known_errors_pass_through():
    d = Dummy()
    with pytest.raises(DataValidationError, match="known"):
        d.fail_known()
    d.logger.error.assert_not_called()

def test_unknown_errors_are_wrapped_and_logged():
    d = Dummy()
    with pytest.raises(WorkflowException, match="Dummy Op failed") as exc_info:
        d.fail_unknown()
    assert isinstance(exc_info.value.__cause__, KeyError)
    d.logger.error.assert_called_once()

def test_return_value_preserved():
    assert Dummy().succeed() == 7
