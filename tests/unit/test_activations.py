import numpy as np
import pytest

from digitnet.core.activations import ActivationFunction, CupyAccelerator, default_accelerator
from digitnet.core.matrix import Matrix


class _FailingAccelerator:
    def __init__(self):
        self.calls = 0

    def evaluate(self, function, entries):
        self.calls += 1
        raise RuntimeError("device lost")


class _UnavailableAccelerator:
    def evaluate(self, function, entries):
        return None


class _ShortAccelerator:
    def evaluate(self, function, entries):
        return np.zeros(entries.size - 1, dtype=np.float32)


class _HostAccelerator:
    """Runs the kernel formula on the host, as a device would."""

    def evaluate(self, function, entries):
        if function is ActivationFunction.SIGMOID:
            return (1.0 / (1.0 + np.exp(-entries))).astype(np.float32)
        return entries.copy()


def test_sigmoid_of_zero_is_one_half():
    result = ActivationFunction.SIGMOID.apply(Matrix(1, 1, [0.0]))
    assert result[0, 0] == 0.5


def test_identity_returns_input():
    values = np.random.default_rng(0).standard_normal(12).astype(np.float32)
    m = Matrix(3, 4, values)
    assert ActivationFunction.IDENTITY.apply(m) == m


def test_sigmoid_saturates_without_warnings():
    m = Matrix(1, 2, [-1000.0, 1000.0])
    with np.errstate(all="raise"):
        result = ActivationFunction.SIGMOID.apply(m)
    assert result.entries.tolist() == [0.0, 1.0]


def test_wire_tags_are_stable():
    assert int(ActivationFunction.IDENTITY) == 1
    assert int(ActivationFunction.SIGMOID) == 2


def test_parse_accepts_names_and_tags():
    assert ActivationFunction.parse("Sigmoid") is ActivationFunction.SIGMOID
    assert ActivationFunction.parse(1) is ActivationFunction.IDENTITY
    with pytest.raises(ValueError):
        ActivationFunction.parse("relu")


@pytest.mark.parametrize(
    "accelerator", [_FailingAccelerator(), _UnavailableAccelerator(), _ShortAccelerator()]
)
def test_broken_accelerator_falls_back_to_cpu(accelerator):
    m = Matrix(2, 1, [0.0, 2.0])
    expected = ActivationFunction.SIGMOID.apply(m)
    assert ActivationFunction.SIGMOID.apply(m, accelerator) == expected


def test_accelerated_result_matches_cpu():
    m = Matrix(4, 1, [-3.0, -0.5, 0.25, 4.0])
    cpu = ActivationFunction.SIGMOID.apply(m)
    device = ActivationFunction.SIGMOID.apply(m, _HostAccelerator())
    assert np.allclose(cpu.entries, device.entries, atol=1e-6)
    assert device.shape == m.shape


def test_cupy_accelerator_without_device_is_unavailable(monkeypatch):
    accelerator = CupyAccelerator()
    monkeypatch.setattr(accelerator, "_load", lambda: False)
    assert accelerator.available is False
    assert accelerator.evaluate(ActivationFunction.SIGMOID, np.zeros(3, dtype=np.float32)) is None
    m = Matrix(3, 1)
    assert ActivationFunction.SIGMOID.apply(m, accelerator).entries.tolist() == [0.5] * 3


def test_default_accelerator_is_shared_and_optional():
    assert default_accelerator(False) is None
    assert default_accelerator(True) is default_accelerator(True)
