import os

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest
from PIL import Image

from facerec.matrix import Matrix
from facerec.preprocessing import Entry, Label

N_CLASSES = 4
N_PER_CLASS = 4
IMAGE_SHAPE = (8, 8)

# small ICA subspace keeps the fixed-point iteration quick on tiny datasets
TEST_PARAMS = {
    'ica_n_components': 3,
    'ica_max_iterations': 2000,
    'ica_epsilon': 1e-4
}


def make_prototypes(n_classes=N_CLASSES, shape=IMAGE_SHAPE, seed=0):
    rng = np.random.RandomState(seed)
    return [rng.uniform(30, 225, size=shape) for _ in range(n_classes)]


def write_dataset(root, prototypes, n_per_class=N_PER_CLASS, noise_seed=1, noise=8.0):
    rng = np.random.RandomState(noise_seed)
    os.makedirs(root, exist_ok=True)
    for c, prototype in enumerate(prototypes):
        person_dir = os.path.join(root, f"s{c}")
        os.makedirs(person_dir, exist_ok=True)
        for i in range(n_per_class):
            pixels = np.clip(prototype + rng.normal(0, noise, size=prototype.shape), 0, 255)
            Image.fromarray(pixels.astype(np.uint8)).save(os.path.join(person_dir, f"img_{i}.png"))
    return str(root)


def make_faces(n_classes=N_CLASSES, n_per_class=N_PER_CLASS, d=64, seed=0, label_order=None):
    """Synthetic raw image matrix with entries and labels, no files involved."""
    rng = np.random.RandomState(seed)
    prototypes = rng.uniform(30, 225, size=(n_classes, d))

    order = label_order if label_order is not None else list(range(n_classes))
    labels = [Label(new_id, f"s{c}") for new_id, c in enumerate(order)]
    by_class = {int(label.name[1:]): label for label in labels}

    columns = []
    entries = []
    for c in range(n_classes):
        for i in range(n_per_class):
            columns.append(prototypes[c] + rng.normal(0, 8.0, size=d))
            entries.append(Entry(f"s{c}/img_{i}.png", by_class[c]))

    X = Matrix.from_array(np.array(columns).T)
    return X, entries, labels


@pytest.fixture
def prototypes():
    return make_prototypes()


@pytest.fixture
def train_dir(tmp_path, prototypes):
    return write_dataset(tmp_path / "train", prototypes, noise_seed=1)


@pytest.fixture
def test_dir(tmp_path, prototypes):
    return write_dataset(tmp_path / "test", prototypes, n_per_class=2, noise_seed=2)
