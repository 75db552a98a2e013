import threading

import numpy as np
import pytest

from digitnet.data import registry
from digitnet.data.samples import Dataset, Purpose, Split
from digitnet.data.transforms import canvas_input, normalize_image, one_hot_target


def _dataset(n_train=6, n_test=3, pixels=4):
    images = np.arange(n_train * pixels, dtype=np.uint8).reshape(n_train, pixels)
    labels = np.arange(n_train, dtype=np.uint8) % 10
    test_images = np.full((n_test, pixels), 255, dtype=np.uint8)
    test_labels = np.zeros(n_test, dtype=np.uint8)
    return Dataset(
        [Split(Purpose.TRAIN, images, labels), Split(Purpose.TEST, test_images, test_labels)]
    )


def test_normalize_image_maps_bytes_into_range():
    m = normalize_image(bytes([0, 255, 128]))
    assert m.shape == (3, 1)
    assert m[0, 0] == pytest.approx(0.01)
    assert m[1, 0] == pytest.approx(1.0)
    assert m[2, 0] == pytest.approx(128 / 255 * 0.99 + 0.01)


def test_one_hot_target():
    t = one_hot_target(3)
    assert t.shape == (10, 1)
    assert t.argmax() == 3
    assert t[3, 0] == pytest.approx(0.99)
    assert t[0, 0] == pytest.approx(0.01)
    with pytest.raises(ValueError):
        one_hot_target(10)


def test_canvas_input_checks_length():
    assert canvas_input(bytes(16), 4, 4).shape == (16, 1)
    with pytest.raises(ValueError):
        canvas_input(bytes(15), 4, 4)


def test_split_requires_equal_lengths():
    with pytest.raises(ValueError):
        Split(Purpose.TRAIN, np.zeros((3, 4)), np.zeros(2))


@pytest.mark.parametrize("labels", [[1, 256, 2], [1, -1, 2]])
def test_split_rejects_labels_outside_byte_range(labels):
    with pytest.raises(ValueError, match="0..255"):
        Split(Purpose.TRAIN, np.zeros((3, 4), dtype=np.uint8), np.array(labels))


def test_split_rejects_pixels_outside_byte_range():
    with pytest.raises(ValueError):
        Split(Purpose.TEST, np.full((2, 4), 300), [0, 1])


def test_snapshot_keeps_split_after_replace():
    dataset = _dataset()
    dataset.shuffle(seed=2)
    order = [dataset.fetch(i, Purpose.TRAIN)[1] for i in range(6)]
    images, labels = dataset.snapshot(Purpose.TRAIN)
    dataset.replace(Split(Purpose.TRAIN, np.ones((2, 4), dtype=np.uint8), [7, 8]))
    assert labels.tolist() == order
    assert images.shape == (6, 4)
    assert dataset.snapshot(Purpose.TRAIN)[1].tolist() == [7, 8]
    assert len(Dataset().snapshot(Purpose.TEST)[1]) == 0


def test_fetch_follows_shuffled_training_order():
    dataset = _dataset()
    before = [dataset.fetch(i, Purpose.TRAIN)[1] for i in range(6)]
    assert before == [0, 1, 2, 3, 4, 5]
    dataset.shuffle(seed=1)
    after = [dataset.fetch(i, Purpose.TRAIN)[1] for i in range(6)]
    assert sorted(after) == before
    images, labels = dataset.fetch_range(0, 6, Purpose.TRAIN)
    assert labels.tolist() == after
    assert images.shape == (6, 4)


def test_test_split_is_never_shuffled():
    dataset = _dataset()
    dataset.shuffle(seed=3)
    images, labels = dataset.fetch_range(1, 3, Purpose.TEST)
    assert images.shape == (2, 4)
    assert labels.tolist() == [0, 0]


def test_fetch_bounds():
    dataset = _dataset()
    with pytest.raises(IndexError):
        dataset.fetch(6, Purpose.TRAIN)
    with pytest.raises(IndexError):
        dataset.fetch_range(2, 7, Purpose.TRAIN)
    assert Dataset().count(Purpose.TRAIN) == 0
    with pytest.raises(LookupError):
        Dataset().fetch(0, Purpose.TEST)


def test_replace_is_wholesale():
    dataset = _dataset()
    assert dataset.is_loaded()
    dataset.replace(Split(Purpose.TRAIN, np.ones((2, 4), dtype=np.uint8), [7, 8]))
    assert dataset.count(Purpose.TRAIN) == 2
    assert dataset.fetch_range(0, 2, Purpose.TRAIN)[1].tolist() == [7, 8]
    assert dataset.pixels == 4


def test_concurrent_replace_and_fetch_are_consistent():
    dataset = _dataset(n_train=50)
    errors = []

    def reader():
        for _ in range(200):
            n = dataset.count(Purpose.TRAIN)
            try:
                images, labels = dataset.fetch_range(0, n, Purpose.TRAIN)
            except IndexError as exc:  # count and fetch are separate calls
                errors.append(exc)
                continue
            assert images.shape[0] == labels.shape[0]

    def writer():
        for i in range(50):
            size = 10 + i % 40
            dataset.replace(
                Split(Purpose.TRAIN, np.zeros((size, 4), dtype=np.uint8), np.zeros(size))
            )

    threads = [threading.Thread(target=reader), threading.Thread(target=writer)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert dataset.count(Purpose.TRAIN) == 10 + 49 % 40


def test_synthetic_dataset_is_deterministic():
    first = registry.get_dataset("synthetic", train_size=40, test_size=10, seed=4)
    second = registry.get_dataset("synthetic", train_size=40, test_size=10, seed=4)
    assert first.pixels == 784
    assert first.splits == {"train": 40, "test": 10}
    a = first.dataset.fetch_range(0, 40, Purpose.TRAIN)
    b = second.dataset.fetch_range(0, 40, Purpose.TRAIN)
    assert np.array_equal(a[0], b[0])
    assert np.array_equal(a[1], b[1])


def test_npz_dataset(tmp_path):
    path = tmp_path / "digits.npz"
    rng = np.random.default_rng(0)
    np.savez(
        path,
        X_train=rng.random((8, 2, 2)),
        y_train=np.arange(8) % 10,
        X_test=rng.integers(0, 256, size=(3, 4), dtype=np.uint8),
        y_test=np.zeros(3),
    )
    spec = registry.get_dataset("npz", path=path)
    assert spec.pixels == 4
    assert spec.splits == {"train": 8, "test": 3}


def test_registry_lookup_and_registration():
    assert {"synthetic", "npz"} <= set(registry.available_datasets())
    with pytest.raises(KeyError):
        registry.get_dataset("missing")

    @registry.register_dataset("tiny-test")
    def _tiny(**_):
        images = np.zeros((2, 4), dtype=np.uint8)
        return registry.DatasetSpec(
            "tiny-test",
            Dataset([Split(Purpose.TRAIN, images, [0, 1]), Split(Purpose.TEST, images, [1, 0])]),
            num_classes=2,
        )

    assert registry.get_dataset("tiny-test").splits == {"train": 2, "test": 2}
