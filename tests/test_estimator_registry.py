import importlib
import pytest

from core.estimator import OffsetEstimator, get_estimator, list_estimators, register_estimator


def test_symmetric_registered():
    """
    Importing the plugin module should register 'symmetric'
    in the global estimator registry.
    """
    importlib.import_module("algorithms.symmetric")

    assert "symmetric" in list_estimators()
    EstimatorCls = get_estimator("symmetric")
    assert issubclass(EstimatorCls, OffsetEstimator)


def test_missing_estimator():
    """
    Accessing an unknown key must raise KeyError.
    """
    with pytest.raises(KeyError):
        get_estimator("__does_not_exist__")


def test_register_rejects_non_estimator():
    with pytest.raises(TypeError):
        register_estimator("__not_an_estimator__")(object)


def test_register_rejects_duplicate_name():
    importlib.import_module("algorithms.symmetric")
    with pytest.raises(KeyError):

        @register_estimator("symmetric")
        class Again(OffsetEstimator):
            def estimate(self, sample):
                return None


@pytest.mark.parametrize("kwargs", [
    {"max_rtt_ms": 0},
    {"quality_thresholds": (150, 50, 400)},
    {"quality_thresholds": (50, 150)},
])
def test_invalid_estimator_params(kwargs):
    EstimatorCls = get_estimator("symmetric")
    with pytest.raises(ValueError):
        EstimatorCls(**kwargs)
