"""
This module handles loading labeled face image datasets from disk.

It provides functionality for:
- Enumerating a dataset directory into labels and entries
- Decoding images into flat pixel vectors with Pillow
- Stacking a dataset into an image matrix with one image per column

Two directory layouts are supported. If the dataset directory contains
subdirectories, each subdirectory is one person and its images are that
person's entries. Otherwise the directory is flat and the person name is the
file name prefix before the first underscore (e.g. "s12_3.pgm" -> "s12").
"""

import os
import numpy as np
from PIL import Image, UnidentifiedImageError
import config
from facerec.errors import DimensionMismatch, EmptyDataset, IOFailure
from facerec.matrix import Matrix


class Label:
    """A person: unique integer id and display name."""

    def __init__(self, id, name):
        self.id = id
        self.name = name

    def __repr__(self):
        return f"Label({self.id}, {self.name!r})"


class Entry:
    """A dataset image: its path and a reference to its (shared) Label."""

    def __init__(self, name, label):
        self.name = name
        self.label = label

    def __repr__(self):
        return f"Entry({self.name!r}, {self.label.name!r})"


def is_image_file(filename, extensions=config.IMAGE_EXTENSIONS):
    return os.path.splitext(filename)[1].lower() in extensions


def label_from_filename(filename):
    stem = os.path.splitext(os.path.basename(filename))[0]
    return stem.split('_', 1)[0]


def load_directory(path):
    """
    Enumerate a dataset directory.

    Args:
        path: Dataset directory

    Returns:
        tuple: (entries, labels). Labels get ids 0..c-1 in discovery order
               and every entry references the Label object of its person.

    Raises:
        IOFailure: If path is not a readable directory
        EmptyDataset: If no image is found
    """
    if not os.path.isdir(path):
        raise IOFailure(f"dataset directory not found: {path}")

    try:
        names = sorted(os.listdir(path))
    except OSError as e:
        raise IOFailure(f"cannot read dataset directory {path}: {e}") from e

    labels = []
    by_name = {}
    entries = []

    def get_label(name):
        if name not in by_name:
            by_name[name] = Label(len(labels), name)
            labels.append(by_name[name])
        return by_name[name]

    subdirs = [name for name in names if os.path.isdir(os.path.join(path, name)) and not name.startswith('.')]

    if subdirs:
        for person in subdirs:
            person_dir = os.path.join(path, person)
            files = sorted(f for f in os.listdir(person_dir) if is_image_file(f))
            for filename in files:
                entries.append(Entry(os.path.join(person_dir, filename), get_label(person)))
    else:
        for filename in names:
            if is_image_file(filename):
                entries.append(Entry(os.path.join(path, filename), get_label(label_from_filename(filename))))

    if not entries:
        raise EmptyDataset(f"no images found in {path}")

    return entries, labels


def read_image(path):
    """
    Decode an image into a flat float64 vector (height x width x channels).

    Grayscale and RGB images keep their mode; any other mode is converted
    to RGB.

    Raises:
        IOFailure: If the file cannot be opened or decoded
    """
    try:
        with Image.open(path) as image:
            if image.mode not in ('L', 'RGB'):
                image = image.convert('RGB')
            pixels = np.asarray(image, dtype=np.float64)
    except (OSError, UnidentifiedImageError) as e:
        raise IOFailure(f"cannot read image {path}: {e}") from e

    return pixels.ravel(), pixels.shape


def get_image_matrix(entries):
    """
    Map a collection of images to the columns of a matrix.

    The result has size d x n, where d is the number of values per image and
    n the number of images. All images must have the same size.

    Raises:
        EmptyDataset: If entries is empty
        DimensionMismatch: If an image differs in size from the first one
    """
    if not entries:
        raise EmptyDataset("cannot build an image matrix from zero entries")

    first, shape = read_image(entries[0].name)
    X = Matrix(len(first), len(entries))
    X[:, 0] = first

    for j in range(1, len(entries)):
        pixels, found = read_image(entries[j].name)
        if found != shape:
            raise DimensionMismatch(
                f"{entries[j].name}: expected image of shape {shape}, found {found}"
            )
        X[:, j] = pixels

    return X, shape


class DatasetLoader:
    """
    Loads a dataset directory into entries, labels and an image matrix.

    Attributes:
        data_info: Dictionary containing metadata of the last loaded dataset
    """

    def __init__(self):
        self.data_info = {}

    def load_dataset(self, path):
        """
        Load every image of a dataset directory.

        Args:
            path: Dataset directory

        Returns:
            tuple: (X, entries, labels) with X of shape (n_pixels, n_images)
        """
        entries, labels = load_directory(path)
        X, image_shape = get_image_matrix(entries)

        self.data_info = {
            "path": path,
            "n_samples": len(entries),
            "n_features": X.rows,
            "n_classes": len(labels),
            "image_shape": image_shape,
            "label_names": [label.name for label in labels]
        }

        return X, entries, labels

    def get_data_info(self):
        return self.data_info
