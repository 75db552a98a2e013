import numpy as np
import pytest

from digitnet.core.activations import ActivationFunction
from digitnet.core.config import DEFAULT_CONFIG, LayerConfig, NetworkConfig, build_network


def test_default_config_matches_reference_network():
    assert DEFAULT_CONFIG.validate() is DEFAULT_CONFIG
    assert DEFAULT_CONFIG.inputs == 784
    assert [layer.punits for layer in DEFAULT_CONFIG.layers] == [100, 10]
    assert DEFAULT_CONFIG.alpha == 0.3
    assert DEFAULT_CONFIG.mini_batch_size == 10
    assert all(layer.activation is ActivationFunction.SIGMOID for layer in DEFAULT_CONFIG.layers)


def test_mapping_chains_layer_inputs():
    config = NetworkConfig.from_mapping(
        {
            "epochs": 2,
            "mini_batch_size": 4,
            "alpha": 0.5,
            "inputs": 16,
            "layers": [
                {"punits": 8, "activation": "sigmoid"},
                {"punits": 3, "activation": "identity", "try_on_gpu": True},
            ],
        }
    )
    assert [(l.inputs, l.punits) for l in config.layers] == [(16, 8), (8, 3)]
    assert config.layers[1].activation is ActivationFunction.IDENTITY
    assert config.layers[1].try_on_gpu is True
    assert NetworkConfig.from_mapping(config.to_mapping()) == config


@pytest.mark.parametrize(
    "changes",
    [
        {"epochs_wanted": 0},
        {"mini_batch_size": 0},
        {"alpha": 0.0},
        {"layers": []},
        {"inputs": 5},
        {"layers": [LayerConfig(784, 100), LayerConfig(50, 10)]},
    ],
)
def test_validate_rejects_inconsistent_configs(changes):
    with pytest.raises(ValueError):
        DEFAULT_CONFIG.with_overrides(**changes).validate()


def test_build_network_uses_config_shape():
    config = NetworkConfig(1, 1, 0.1, 3, [LayerConfig(3, 2), LayerConfig(2, 1)])
    first = build_network(config, rng=np.random.default_rng(5))
    second = build_network(config, rng=np.random.default_rng(5))
    assert first.shape == [3, 2, 1]
    assert first == second
    assert all(layer.accelerator is None for layer in first.layers)


def test_gpu_layers_share_one_accelerator():
    config = NetworkConfig(
        1, 1, 0.1, 3, [LayerConfig(3, 2, try_on_gpu=True), LayerConfig(2, 1, try_on_gpu=True)]
    )
    network = build_network(config)
    first, second = network.layers
    assert first.accelerator is not None
    assert first.accelerator is second.accelerator
