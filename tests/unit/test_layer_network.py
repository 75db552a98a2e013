import numpy as np
import pytest

from digitnet.core.activations import ActivationFunction
from digitnet.core.distributions import GaussianDistribution
from digitnet.core.layer import Layer
from digitnet.core.matrix import Matrix
from digitnet.core.network import BatchPolicy, Network


def _column(*values):
    return Matrix.column([float(v) for v in values])


def _sigmoid(x):
    return 1.0 / (1.0 + np.exp(-x))


# ---------------------------------------------------------------------------
# GaussianDistribution


def test_gaussian_sample_statistics():
    dist = GaussianDistribution(0.0, 0.05, rng=np.random.default_rng(0))
    values = dist.sample(20000)
    assert values.dtype == np.float32
    assert abs(float(values.mean())) < 0.002
    assert float(values.std()) == pytest.approx(0.05, rel=0.05)


def test_gaussian_zero_deviation_returns_mean():
    dist = GaussianDistribution(1.5, 0.0)
    assert dist.next_float() == 1.5
    assert dist.sample(3).tolist() == [1.5, 1.5, 1.5]


def test_gaussian_rejects_negative_deviation():
    with pytest.raises(ValueError):
        GaussianDistribution(0.0, -1.0)


def test_gaussian_next_float_is_finite():
    dist = GaussianDistribution(0.0, 1.0, rng=np.random.default_rng(3))
    assert all(np.isfinite(dist.next_float()) for _ in range(1000))


# ---------------------------------------------------------------------------
# Layer


def test_layer_default_weights_follow_fan_in():
    layer = Layer(400, 50, rng=np.random.default_rng(1))
    weights = layer.weights.to_numpy()
    assert weights.shape == (50, 400)
    assert weights.dtype == np.float32
    assert float(weights.std()) == pytest.approx(400 ** -0.5, rel=0.1)


def test_layer_rejects_wrong_weight_shape():
    with pytest.raises(ValueError):
        Layer(3, 2, weights=Matrix(3, 2))


@pytest.mark.parametrize("activation", list(ActivationFunction))
def test_layer_query_shape_is_punits_by_one(activation):
    rng = np.random.default_rng(2)
    layer = Layer(5, 3, activation, rng=rng)
    for _ in range(5):
        output = layer.query(Matrix.column(rng.standard_normal(5)))
        assert output.shape == (3, 1)


def test_layer_query_rejects_wrong_input_shape():
    layer = Layer(3, 2)
    with pytest.raises(ValueError):
        layer.query(Matrix(1, 3))


def test_layer_train_propagates_error_with_old_weights():
    weights = Matrix(1, 2, [0.5, -0.25])
    layer = Layer(2, 1, ActivationFunction.SIGMOID, weights)
    input = _column(1.0, 2.0)
    output = layer.query(input)
    assert output[0, 0] == 0.5
    error = _column(0.3)

    propagated = layer.train(input, output, error, 0.5)

    assert np.allclose(propagated.entries, [0.15, -0.075], atol=1e-6)
    # gradient = (0.3 * 0.5 * 0.5) * [1, 2] = [0.075, 0.15]
    assert np.allclose(layer.weights.entries, [0.5375, -0.175], atol=1e-5)


def test_layer_equality():
    a = Layer(2, 1, weights=Matrix(1, 2, [1.0, 2.0]))
    b = Layer(2, 1, weights=Matrix(1, 2, [1.0, 2.0]))
    c = Layer(2, 1, ActivationFunction.SIGMOID, weights=Matrix(1, 2, [1.0, 2.0]))
    assert a == b
    assert a != c


# ---------------------------------------------------------------------------
# Network


def test_zero_identity_network_queries_zero():
    network = Network(
        [
            Layer(3, 2, ActivationFunction.IDENTITY, Matrix(2, 3)),
            Layer(2, 1, ActivationFunction.IDENTITY, Matrix(1, 2)),
        ],
        alpha=0.1,
    )
    result = network.query(_column(1, 1, 1))
    assert result.shape == (1, 1)
    assert result.entries.tolist() == [0.0]


def test_single_sample_update_matches_hand_computation():
    network = Network([Layer(2, 1, ActivationFunction.SIGMOID, Matrix(1, 2))], alpha=0.5)
    loss = network.train(_column(1, 1), _column(1))
    # o = sigmoid(0) = 0.5, E = 0.5, dW = 0.5 * (0.5 * 0.5 * 0.5) = 0.0625
    assert np.allclose(network.layers[0].weights.entries, [0.0625, 0.0625], atol=1e-5)
    assert loss == pytest.approx(0.25)


def test_network_rejects_bad_chaining():
    with pytest.raises(ValueError):
        Network([Layer(3, 2), Layer(3, 1)], alpha=0.1)
    with pytest.raises(ValueError):
        Network([], alpha=0.1)


def test_network_alpha_is_float32():
    network = Network([Layer(1, 1)], alpha=0.1)
    assert network.alpha == float(np.float32(0.1))


def test_network_shape_and_depth():
    network = Network([Layer(4, 3), Layer(3, 2)], alpha=0.1)
    assert network.depth == 2
    assert network.shape == [4, 3, 2]
    assert "4->3->2" in repr(network)


def _batch_fixture():
    weights = np.array([[0.2, -0.4]], dtype=np.float32)
    inputs = [_column(1.0, 0.5), _column(0.1, 0.9), _column(0.7, 0.3)]
    targets = [_column(0.99), _column(0.01), _column(0.99)]
    return weights, inputs, targets


def _single_layer_network(weights, alpha=0.5):
    return Network(
        [Layer(2, 1, ActivationFunction.SIGMOID, Matrix.from_numpy(weights))], alpha=alpha
    )


def test_last_sample_policy_averages_output_error_only():
    weights, inputs, targets = _batch_fixture()
    network = _single_layer_network(weights)
    network.train_batch(inputs, targets)

    W = weights.astype(np.float64)
    xs = [i.to_numpy().astype(np.float64) for i in inputs]
    ts = [t.to_numpy().astype(np.float64) for t in targets]
    error = ts[0] - _sigmoid(W @ xs[0])
    error = (error + (ts[1] - _sigmoid(W @ xs[1]))) / 2
    last = _sigmoid(W @ xs[2])
    error = (error + (ts[2] - last)) / 2
    expected = W + 0.5 * ((error * last * (1 - last)) @ xs[2].T)

    assert np.allclose(network.layers[0].weights.to_numpy(), expected, atol=1e-5)


def test_last_sample_policy_backpropagates_averaged_error_through_hidden_layer():
    _, inputs, targets = _batch_fixture()
    hidden = np.array([[0.3, -0.2], [0.5, 0.1], [-0.4, 0.6]], dtype=np.float32)
    output = np.array([[0.7, -0.3, 0.2]], dtype=np.float32)
    network = Network(
        [
            Layer(2, 3, ActivationFunction.SIGMOID, Matrix.from_numpy(hidden)),
            Layer(3, 1, ActivationFunction.SIGMOID, Matrix.from_numpy(output)),
        ],
        alpha=0.5,
    )
    network.train_batch(inputs, targets)

    W1 = hidden.astype(np.float64)
    W2 = output.astype(np.float64)
    xs = [i.to_numpy().astype(np.float64) for i in inputs]
    ts = [t.to_numpy().astype(np.float64) for t in targets]

    def forward(x):
        h = _sigmoid(W1 @ x)
        return h, _sigmoid(W2 @ h)

    error = ts[0] - forward(xs[0])[1]
    error = (error + (ts[1] - forward(xs[1])[1])) / 2
    h_last, o_last = forward(xs[2])
    error = (error + (ts[2] - o_last)) / 2
    hidden_error = W2.T @ error
    expected_output = W2 + 0.5 * ((error * o_last * (1 - o_last)) @ h_last.T)
    expected_hidden = W1 + 0.5 * ((hidden_error * h_last * (1 - h_last)) @ xs[2].T)

    assert np.allclose(network.layers[1].weights.to_numpy(), expected_output, atol=1e-5)
    assert np.allclose(network.layers[0].weights.to_numpy(), expected_hidden, atol=1e-5)


def test_mean_gradient_policy_averages_per_sample_gradients():
    weights, inputs, targets = _batch_fixture()
    network = _single_layer_network(weights)
    network.train_batch(inputs, targets, BatchPolicy.MEAN_GRADIENT)

    W = weights.astype(np.float64)
    grads = []
    for i, t in zip(inputs, targets):
        x = i.to_numpy().astype(np.float64)
        o = _sigmoid(W @ x)
        e = t.to_numpy().astype(np.float64) - o
        grads.append((e * o * (1 - o)) @ x.T)
    expected = W + 0.5 * np.mean(grads, axis=0)

    assert np.allclose(network.layers[0].weights.to_numpy(), expected, atol=1e-5)


def test_batch_policies_disagree_on_the_same_batch():
    weights, inputs, targets = _batch_fixture()
    last = _single_layer_network(weights)
    mean = _single_layer_network(weights)
    last.train_batch(inputs, targets, BatchPolicy.LAST_SAMPLE)
    mean.train_batch(inputs, targets, BatchPolicy.MEAN_GRADIENT)
    assert last != mean


def test_batch_of_one_equals_single_sample_training():
    weights, inputs, targets = _batch_fixture()
    batched = _single_layer_network(weights)
    single = _single_layer_network(weights)
    assert batched.train_batch(inputs[:1], targets[:1]) == single.train(inputs[0], targets[0])
    assert batched == single


def test_batch_rejects_mismatched_or_empty_input():
    network = _single_layer_network(np.zeros((1, 2), dtype=np.float32))
    with pytest.raises(ValueError):
        network.train_batch([_column(1, 1)], [])
    with pytest.raises(ValueError):
        network.train_batch([], [])


def test_multilayer_training_reduces_loss():
    rng = np.random.default_rng(0)
    network = Network(
        [
            Layer(4, 6, ActivationFunction.SIGMOID, rng=rng),
            Layer(6, 2, ActivationFunction.SIGMOID, rng=rng),
        ],
        alpha=0.5,
    )
    x = _column(0.9, 0.1, 0.8, 0.2)
    t = _column(0.99, 0.01)
    first = network.train(x, t)
    for _ in range(200):
        last = network.train(x, t)
    assert last < first
