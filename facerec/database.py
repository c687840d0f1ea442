"""
This module implements the face database: the trained state of every
subspace algorithm and the train / save / load / recognize operations built
on top of it.

Training runs as a small dependency graph. PCA is a prerequisite task whose
fitted model is handed to the LDA and ICA tasks, so requesting LDA or ICA
always trains PCA as well, even when PCA itself is excluded from
recognition.

Each algorithm slot carries its own basis W (d x k), the projected training
set P (k x n) and the distance metric used to classify in its subspace.
"""

import os
import tempfile
import time
import config
from facerec.classification import knn_vote
from facerec.errors import DimensionMismatch, EmptyDataset, IOFailure
from facerec.ica import ICA
from facerec.lda import LDA
from facerec.matrix import Matrix, get_distance, product
from facerec.metrics import compute_recognition_metrics, print_recognition_report
from facerec.pca import PCA
from facerec.preprocessing import DatasetLoader, Entry, Label
from facerec.storage import RecordReader, RecordWriter


def _train_pca(params, X, entries, models):
    return PCA(n_components=params['pca_n1']).fit(X)


def _train_lda(params, X, entries, models):
    return LDA(n1=params['lda_n1'], n2=params['lda_n2']).fit(models['PCA'], X, entries)


def _train_ica(params, X, entries, models):
    ica = ICA(
        max_iterations=params['ica_max_iterations'],
        epsilon=params['ica_epsilon'],
        n_components=params['ica_n_components']
    )
    return ica.fit(models['PCA'], X)


# (name, prerequisites, task) in the fixed order used for training and storage
TRAINING_TASKS = (
    ('PCA', (), _train_pca),
    ('LDA', ('PCA',), _train_lda),
    ('ICA', ('PCA',), _train_ica),
)


class AlgorithmSlot:
    """
    State of one subspace algorithm.

    Attributes:
        name: Algorithm name ("PCA", "LDA" or "ICA")
        train: Whether the algorithm is trained
        recognize: Whether the algorithm takes part in recognition
        metric: Name of the distance metric
        dist_func: Distance function bound to the slot
        W: Basis, d x k (None until trained or loaded)
        P: Projected training images, k x n
    """

    def __init__(self, name, train, recognize, metric):
        self.name = name
        self.train = train
        self.recognize = recognize
        self.metric = metric
        self.dist_func = get_distance(metric)
        self.W = None
        self.P = None

    @property
    def is_trained(self):
        return self.W is not None

    def __repr__(self):
        return f"AlgorithmSlot({self.name}, train={self.train}, recognize={self.recognize}, metric={self.metric})"


class FaceDatabase:
    """
    Face database holding labels, entries, the mean face and one slot per
    algorithm.

    Attributes:
        params: Hyperparameters (see config.get_default_params)
        verbose: Print the hyperparameters and the verbose recognition report
        labels: Label of every person, indexed by id
        entries: Training entries, in the column order of every P
        mean_face: d x 1 mean of the training images
        slots: AlgorithmSlot per algorithm, in TRAINING_TASKS order
        execution_time: Wall-clock seconds of the last train / recognize
    """

    def __init__(self, pca=False, lda=False, ica=False, params=None, verbose=config.VERBOSE):
        """
        Construct an empty database.

        Args:
            pca: Train PCA and use it for recognition
            lda: Train LDA and use it for recognition
            ica: Train ICA and use it for recognition
            params: Optional dictionary overriding config.get_default_params()
            verbose: Print hyperparameters now and verbose reports later

        Raises:
            ValueError: If params contains an unknown key
        """
        self.params = config.get_default_params()
        if params:
            unknown = sorted(set(params) - set(self.params))
            if unknown:
                raise ValueError(f"Unknown hyperparameters: {unknown}")
            self.params.update(params)

        if self.params['knn_k'] < 1:
            raise ValueError(f"knn_k must be at least 1, got {self.params['knn_k']}")

        self.verbose = verbose
        self.labels = []
        self.entries = []
        self.mean_face = None
        self.execution_time = {}

        requested = {'PCA': pca, 'LDA': lda, 'ICA': ica}
        train = dict(requested)

        # dependents force their prerequisites on
        for name, requires, _ in reversed(TRAINING_TASKS):
            if train[name]:
                for prerequisite in requires:
                    train[prerequisite] = True

        self.slots = [
            AlgorithmSlot(name, train[name], requested[name], config.DISTANCE_METRICS[name])
            for name, _, _ in TRAINING_TASKS
        ]

        if self.verbose:
            self.print_hyperparameters()

    def slot(self, name):
        for slot in self.slots:
            if slot.name == name:
                return slot
        raise KeyError(name)

    @property
    def is_trained(self):
        return self.mean_face is not None

    def print_hyperparameters(self):
        print("Hyperparameters")
        print("PCA")
        print("  pca_n1   %10d" % self.params['pca_n1'])
        print("LDA")
        print("  lda_n1   %10d" % self.params['lda_n1'])
        print("  lda_n2   %10d" % self.params['lda_n2'])
        print("ICA")
        print("  ica_mi   %10d" % self.params['ica_max_iterations'])
        print("  ica_eps  %10f" % self.params['ica_epsilon'])
        print()

    # Training

    def train(self, path):
        """
        Train every enabled algorithm on the images of a dataset directory.

        Args:
            path: Training dataset directory

        Returns:
            FaceDatabase: self
        """
        X, entries, labels = DatasetLoader().load_dataset(path)
        return self.fit(X, entries, labels)

    def fit(self, X, entries, labels):
        """
        Train on an image matrix whose columns are the images of entries.

        X is not modified. Nothing is stored until every algorithm has been
        trained, so a failure leaves the database unchanged.

        Args:
            X: d x n raw image matrix
            entries: The n training entries
            labels: Every label referenced by entries

        Returns:
            FaceDatabase: self
        """
        if not entries:
            raise EmptyDataset("cannot train on zero entries")
        if not labels:
            raise EmptyDataset("cannot train with zero labels")
        if X.cols != len(entries):
            raise DimensionMismatch(f"image matrix has {X.cols} columns for {len(entries)} entries")

        start_time = time.time()

        # subtract the mean face from a private copy of X
        mean_face = X.mean_column()
        X = X.copy()
        X.subtract_columns(mean_face)

        models = {}
        for name, _, task in TRAINING_TASKS:
            if self.slot(name).train:
                models[name] = task(self.params, X, entries, models)

        self.labels = list(labels)
        self.entries = list(entries)
        self.mean_face = mean_face
        for slot in self.slots:
            model = models.get(slot.name)
            slot.W = model.W if model is not None else None
            slot.P = model.P if model is not None else None

        self.execution_time['train'] = time.time() - start_time
        return self

    # Persistence

    def _trained_mask(self):
        mask = 0
        for i, slot in enumerate(self.slots):
            if slot.is_trained:
                mask |= 1 << i
        return mask

    def save(self, path):
        """
        Save the database to a binary file.

        The record is written to a temporary file next to path, which then
        replaces path, so a failed save keeps any previous database intact.

        Raises:
            EmptyDataset: If the database has not been trained
            IOFailure: If the file cannot be written
        """
        if not self.is_trained:
            raise EmptyDataset("cannot save a database that has not been trained")

        directory = os.path.dirname(path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory or os.curdir
            )
        except OSError as e:
            raise IOFailure(f"cannot write database {path}: {e}") from e

        try:
            with os.fdopen(fd, 'wb') as f:
                self._write_records(RecordWriter(f))
            os.replace(temp_path, path)
        except OSError as e:
            raise IOFailure(f"cannot write database {path}: {e}") from e
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)

    def _write_records(self, writer):
        writer.write_bytes(config.DATABASE_MAGIC)
        writer.write_int(config.DATABASE_VERSION)
        writer.write_int(self._trained_mask())

        writer.write_int(len(self.labels))
        for label in self.labels:
            writer.write_int(label.id)
            writer.write_string(label.name)

        writer.write_int(len(self.entries))
        for entry in self.entries:
            writer.write_int(entry.label.id)
            writer.write_string(entry.name)

        self.mean_face.write(writer)

        for slot in self.slots:
            if slot.is_trained:
                slot.W.write(writer)
                slot.P.write(writer)

    def load(self, path):
        """
        Load a database saved by save().

        Every field is validated before the database is modified: label ids
        must be unique and inside [0, num_labels), entries must reference an
        existing label, matrix shapes must agree and the file must end
        exactly after the last matrix.

        Raises:
            IOFailure: If the file is missing, truncated or corrupt, or lacks
                       an algorithm configured for recognition
        """
        try:
            f = open(path, 'rb')
        except OSError as e:
            raise IOFailure(f"cannot open database {path}: {e}") from e

        with f:
            reader = RecordReader(f, path)

            magic = reader.read_bytes(len(config.DATABASE_MAGIC), "magic number")
            if magic != config.DATABASE_MAGIC:
                raise IOFailure(f"{path}: not a face database (bad magic number)")

            version = reader.read_int("version")
            if version != config.DATABASE_VERSION:
                raise IOFailure(f"{path}: unsupported database version {version}")

            mask = reader.read_int("algorithm mask")
            if mask < 0 or mask >> len(self.slots):
                raise IOFailure(f"{path}: invalid algorithm mask {mask}")

            # labels
            num_labels = reader.read_count("label count")
            labels = [None] * num_labels
            for _ in range(num_labels):
                label_id = reader.read_int("label id")
                name = reader.read_string("label name")
                if not 0 <= label_id < num_labels:
                    raise IOFailure(f"{path}: label id {label_id} out of range [0, {num_labels})")
                if labels[label_id] is not None:
                    raise IOFailure(f"{path}: duplicate label id {label_id}")
                labels[label_id] = Label(label_id, name)

            # entries
            num_entries = reader.read_count("entry count")
            entries = []
            for _ in range(num_entries):
                label_id = reader.read_int("entry label id")
                if not 0 <= label_id < num_labels:
                    raise IOFailure(f"{path}: entry label id {label_id} out of range [0, {num_labels})")
                name = reader.read_string("entry name")
                entries.append(Entry(name, labels[label_id]))

            mean_face = Matrix.read(reader, "mean face")
            if mean_face.cols != 1:
                raise IOFailure(f"{path}: mean face has {mean_face.cols} columns, expected 1")

            matrices = {}
            for i, slot in enumerate(self.slots):
                if not mask & (1 << i):
                    continue
                W = Matrix.read(reader, f"{slot.name} basis")
                P = Matrix.read(reader, f"{slot.name} projection")
                if W.rows != mean_face.rows or P.rows != W.cols or P.cols != num_entries:
                    raise IOFailure(
                        f"{path}: inconsistent {slot.name} data (W {W.rows} x {W.cols}, "
                        f"P {P.rows} x {P.cols}, {mean_face.rows} pixels, {num_entries} entries)"
                    )
                matrices[slot.name] = (W, P)

            reader.expect_end()

        for slot in self.slots:
            if slot.recognize and slot.name not in matrices:
                raise IOFailure(f"{path}: database has no {slot.name} data")

        self.labels = labels
        self.entries = entries
        self.mean_face = mean_face
        for slot in self.slots:
            slot.W, slot.P = matrices.get(slot.name, (None, None))

        return self

    # Recognition

    def classify(self, X):
        """
        Match every column of a raw image matrix against the training set.

        Args:
            X: d x m raw (not centered) image matrix

        Returns:
            dict: algorithm name -> list of m training entry indices, for
                  every slot enabled for recognition
        """
        if not self.is_trained:
            raise EmptyDataset("the database has not been trained")
        if X.rows != self.mean_face.rows:
            raise DimensionMismatch(
                f"test images have {X.rows} values, training images have {self.mean_face.rows}"
            )

        # always center with the training mean
        X = X.copy()
        X.subtract_columns(self.mean_face)

        labels = [entry.label for entry in self.entries]
        k = self.params['knn_k']

        matches = {}
        for slot in self.slots:
            if not slot.recognize:
                continue
            if not slot.is_trained:
                raise EmptyDataset(f"{slot.name} has not been trained")

            P_test = product(slot.W, X, True, False)
            matches[slot.name] = [
                knn_vote(slot.P, P_test, j, slot.dist_func, k, labels)
                for j in range(P_test.cols)
            ]

        return matches

    def recognize(self, path):
        """
        Recognize the images of a dataset directory and print the report.

        Args:
            path: Test dataset directory

        Returns:
            dict: algorithm name -> result dictionary with predictions,
                  num_correct, num_total, accuracy, metrics, execution_time
        """
        if not self.is_trained:
            raise EmptyDataset("the database has not been trained")

        start_time = time.time()
        X_test, entries, _ = DatasetLoader().load_dataset(path)
        matches = self.classify(X_test)

        results = {}
        for slot in self.slots:
            if slot.name not in matches:
                continue

            predicted = [self.entries[index].label for index in matches[slot.name]]
            predictions = [
                {
                    "name": entry.name,
                    "predicted": label.name,
                    "actual": entry.label.name,
                    "match_index": index
                }
                for entry, label, index in zip(entries, predicted, matches[slot.name])
            ]

            metrics = compute_recognition_metrics(
                [p["actual"] for p in predictions], [p["predicted"] for p in predictions]
            )

            results[slot.name] = {
                "predictions": predictions,
                "num_correct": metrics["num_correct"],
                "num_total": metrics["num_total"],
                "accuracy": metrics["accuracy"],
                "metrics": metrics,
                "execution_time": time.time() - start_time
            }

            print_recognition_report(slot.name, results[slot.name], self.verbose)

        self.execution_time['recognize'] = time.time() - start_time
        return results
