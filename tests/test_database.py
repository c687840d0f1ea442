import os

import numpy as np
import pytest

from conftest import N_CLASSES, N_PER_CLASS, TEST_PARAMS, make_faces
from facerec.database import TRAINING_TASKS, FaceDatabase
from facerec.errors import ConvergenceFailure, DimensionMismatch, EmptyDataset, IOFailure
from facerec.matrix import Matrix
from facerec.storage import RecordWriter

N_IMAGES = N_CLASSES * N_PER_CLASS


def trained_db(pca=True, lda=True, ica=True):
    X, entries, labels = make_faces()
    db = FaceDatabase(pca, lda, ica, params=TEST_PARAMS, verbose=False)
    return db.fit(X, entries, labels), X


def noisy(X, seed=3):
    rng = np.random.RandomState(seed)
    return Matrix.from_array(X.data + rng.normal(0, 4.0, size=X.shape))


def predicted_names(db, matches):
    return {name: [db.entries[j].label.name for j in indices] for name, indices in matches.items()}


def test_training_order_puts_pca_first():
    assert [name for name, _, _ in TRAINING_TASKS] == ['PCA', 'LDA', 'ICA']
    assert TRAINING_TASKS[1][1] == ('PCA',)
    assert TRAINING_TASKS[2][1] == ('PCA',)


def test_lda_forces_pca_training():
    db = FaceDatabase(lda=True, verbose=False)

    assert db.slot('PCA').train and not db.slot('PCA').recognize
    assert db.slot('LDA').train and db.slot('LDA').recognize
    assert not db.slot('ICA').train and not db.slot('ICA').recognize


def test_slot_metrics():
    db = FaceDatabase(True, True, True, verbose=False)
    assert [slot.metric for slot in db.slots] == ['L2', 'L2', 'COS']


def test_hyperparameter_printout(capsys):
    FaceDatabase(pca=True, verbose=True)
    lines = capsys.readouterr().out.split("\n")

    assert lines == [
        "Hyperparameters",
        "PCA",
        "  pca_n1" + " " * 11 + "-1",
        "LDA",
        "  lda_n1" + " " * 11 + "-1",
        "  lda_n2" + " " * 11 + "-1",
        "ICA",
        "  ica_mi" + " " * 9 + "1000",
        "  ica_eps" + " " * 4 + "0.000100",
        "",
        ""
    ]


def test_quiet_construction_prints_nothing(capsys):
    FaceDatabase(pca=True, verbose=False)
    assert capsys.readouterr().out == ""


def test_rejects_unknown_or_invalid_params():
    with pytest.raises(ValueError):
        FaceDatabase(pca=True, params={'pca_components': 3}, verbose=False)
    with pytest.raises(ValueError):
        FaceDatabase(pca=True, params={'knn_k': 0}, verbose=False)


def test_fit_stores_subspaces():
    db, X = trained_db()

    assert db.is_trained
    assert db.mean_face.shape == (X.rows, 1)
    assert len(db.entries) == N_IMAGES
    assert db.slot('LDA').W.shape == (X.rows, N_CLASSES - 1)
    assert db.slot('ICA').W.shape == (X.rows, TEST_PARAMS['ica_n_components'])
    for slot in db.slots:
        assert slot.P.shape == (slot.W.cols, N_IMAGES)
    assert db.execution_time['train'] >= 0


def test_fit_does_not_modify_images():
    X, entries, labels = make_faces()
    before = X.copy()
    FaceDatabase(pca=True, verbose=False).fit(X, entries, labels)
    assert X == before


def test_fit_rejects_inconsistent_input():
    X, entries, labels = make_faces()
    db = FaceDatabase(pca=True, verbose=False)

    with pytest.raises(DimensionMismatch):
        db.fit(X, entries[:-1], labels)
    with pytest.raises(EmptyDataset):
        db.fit(Matrix(X.rows, 0), [], labels)


def test_training_images_recognize_themselves():
    db, X = trained_db()
    matches = db.classify(X)

    assert set(matches) == {'PCA', 'LDA', 'ICA'}
    for name, indices in matches.items():
        assert indices == list(range(N_IMAGES)), name


def test_prerequisite_is_not_classified():
    X, entries, labels = make_faces()
    db = FaceDatabase(lda=True, verbose=False).fit(X, entries, labels)

    assert db.slot('PCA').is_trained
    assert set(db.classify(X)) == {'LDA'}


def test_noisy_images_keep_their_labels():
    db, X = trained_db()
    expected = [entry.label.name for entry in db.entries]

    predictions = predicted_names(db, db.classify(noisy(X)))
    for name in ('PCA', 'LDA'):
        assert predictions[name] == expected, name

    # three ICA components keep less of each face, so allow some errors
    correct = sum(p == e for p, e in zip(predictions['ICA'], expected))
    assert correct >= N_IMAGES // 2


def test_default_ica_recognizes_training_images():
    X, entries, labels = make_faces()
    db = FaceDatabase(ica=True, verbose=False).fit(X, entries, labels)

    # every PCA component enters ICA by default
    assert db.slot('ICA').W.shape == (X.rows, N_IMAGES - 1)
    assert db.classify(X)['ICA'] == list(range(N_IMAGES))


def test_knn_vote_classification():
    X, entries, labels = make_faces()
    db = FaceDatabase(pca=True, params={'knn_k': 3}, verbose=False).fit(X, entries, labels)

    predicted = predicted_names(db, db.classify(noisy(X)))['PCA']
    assert predicted == [entry.label.name for entry in entries]


def test_label_order_does_not_change_predictions():
    X, entries, labels = make_faces()
    X_reordered, entries_reordered, labels_reordered = make_faces(label_order=[2, 0, 3, 1])
    assert X == X_reordered

    db = FaceDatabase(True, True, False, verbose=False).fit(X, entries, labels)
    db_reordered = FaceDatabase(True, True, False, verbose=False).fit(
        X_reordered, entries_reordered, labels_reordered
    )

    Q = noisy(X)
    assert predicted_names(db, db.classify(Q)) == predicted_names(db_reordered, db_reordered.classify(Q))


def test_classify_wrong_pixel_count():
    db, _ = trained_db(lda=False, ica=False)
    with pytest.raises(DimensionMismatch):
        db.classify(Matrix(10, 2))


def test_untrained_database():
    db = FaceDatabase(pca=True, verbose=False)
    assert not db.is_trained

    with pytest.raises(EmptyDataset):
        db.classify(Matrix(64, 1))
    with pytest.raises(EmptyDataset):
        db.save("unused.dat")


def test_save_load_round_trip(tmp_path):
    path = str(tmp_path / "nested" / "database.dat")
    db, X = trained_db()
    db.save(path)

    loaded = FaceDatabase(True, True, True, verbose=False).load(path)

    assert [(label.id, label.name) for label in loaded.labels] == [(label.id, label.name) for label in db.labels]
    assert [entry.name for entry in loaded.entries] == [entry.name for entry in db.entries]
    assert loaded.mean_face == db.mean_face
    for slot in db.slots:
        assert loaded.slot(slot.name).W == slot.W
        assert loaded.slot(slot.name).P == slot.P

    # loaded entries share the Label objects of the loaded labels
    for entry in loaded.entries:
        assert entry.label is loaded.labels[entry.label.id]

    Q = noisy(X)
    assert loaded.classify(Q) == db.classify(Q)


def test_file_header(tmp_path):
    path = tmp_path / "database.dat"
    db, _ = trained_db(lda=False, ica=False)
    db.save(str(path))

    data = path.read_bytes()
    assert data[:4] == b'FRDB'
    assert np.frombuffer(data[4:12], dtype='<i4').tolist() == [1, 1]


def test_load_prerequisite_only_file(tmp_path):
    path = str(tmp_path / "database.dat")
    X, entries, labels = make_faces()
    FaceDatabase(lda=True, verbose=False).fit(X, entries, labels).save(path)

    # the PCA prerequisite is stored, so a PCA database can load the file
    loaded = FaceDatabase(pca=True, verbose=False).load(path)
    assert set(loaded.classify(X)) == {'PCA'}


def test_failed_save_keeps_previous_database(tmp_path, monkeypatch):
    path = tmp_path / "database.dat"
    db, _ = trained_db(lda=False, ica=False)
    db.save(str(path))
    before = path.read_bytes()

    def fail(self, values):
        raise OSError("No space left on device")

    monkeypatch.setattr(RecordWriter, "write_array", fail)

    with pytest.raises(IOFailure):
        db.save(str(path))

    assert path.read_bytes() == before
    assert os.listdir(tmp_path) == ["database.dat"]


def test_save_to_bare_file_name(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    db, _ = trained_db(lda=False, ica=False)
    db.save("database.dat")

    assert os.listdir(tmp_path) == ["database.dat"]
    assert FaceDatabase(pca=True, verbose=False).load("database.dat").is_trained


def test_load_missing_algorithm(tmp_path):
    path = str(tmp_path / "database.dat")
    db, _ = trained_db(lda=False, ica=False)
    db.save(path)

    with pytest.raises(IOFailure):
        FaceDatabase(lda=True, verbose=False).load(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(IOFailure):
        FaceDatabase(pca=True, verbose=False).load(str(tmp_path / "missing.dat"))


@pytest.fixture
def saved_bytes(tmp_path):
    path = tmp_path / "database.dat"
    db, _ = trained_db(lda=False, ica=False)
    db.save(str(path))
    return path.read_bytes()


@pytest.mark.parametrize("corrupt", [
    lambda data: b'XXXX' + data[4:],
    lambda data: data[:4] + np.array([2], dtype='<i4').tobytes() + data[8:],
    lambda data: data[:-10],
    lambda data: data[:6],
    lambda data: data + b'\0',
])
def test_corrupt_files(tmp_path, saved_bytes, corrupt):
    path = tmp_path / "corrupt.dat"
    path.write_bytes(corrupt(saved_bytes))

    with pytest.raises(IOFailure):
        FaceDatabase(pca=True, verbose=False).load(str(path))


def write_header(f, num_labels, label_ids):
    writer = RecordWriter(f)
    writer.write_bytes(b'FRDB')
    writer.write_int(1)
    writer.write_int(0)
    writer.write_int(num_labels)
    for label_id in label_ids:
        writer.write_int(label_id)
        writer.write_string(f"s{label_id}")
    return writer


def test_label_id_out_of_range(tmp_path):
    path = tmp_path / "bad_labels.dat"
    with open(path, "wb") as f:
        write_header(f, 1, [5])

    with pytest.raises(IOFailure):
        FaceDatabase(verbose=False).load(str(path))


def test_duplicate_label_id(tmp_path):
    path = tmp_path / "duplicate_labels.dat"
    with open(path, "wb") as f:
        write_header(f, 2, [0, 0])

    with pytest.raises(IOFailure):
        FaceDatabase(verbose=False).load(str(path))


def test_entry_with_unknown_label(tmp_path):
    path = tmp_path / "bad_entry.dat"
    with open(path, "wb") as f:
        writer = write_header(f, 1, [0])
        writer.write_int(1)
        writer.write_int(3)
        writer.write_string("s3/img_0.png")
        Matrix(4, 1).write(writer)

    with pytest.raises(IOFailure):
        FaceDatabase(verbose=False).load(str(path))


def test_failed_load_leaves_database_unchanged(tmp_path, saved_bytes):
    path = tmp_path / "truncated.dat"
    path.write_bytes(saved_bytes[:-10])

    db, _ = trained_db()
    mean_face, W = db.mean_face, db.slot('ICA').W

    with pytest.raises(IOFailure):
        db.load(str(path))

    assert db.mean_face is mean_face
    assert db.slot('ICA').W is W


def test_failed_training_leaves_database_unchanged():
    db, X = trained_db(pca=False, lda=False, ica=True)
    mean_face, W = db.mean_face, db.slot('ICA').W

    db.params['ica_max_iterations'] = 1
    db.params['ica_epsilon'] = 0.0
    _, entries, labels = make_faces()

    with pytest.raises(ConvergenceFailure):
        db.fit(noisy(X), entries, labels)

    assert db.mean_face is mean_face
    assert db.slot('ICA').W is W


def test_recognize_terse_report(train_dir, capsys):
    db = FaceDatabase(True, True, True, params=TEST_PARAMS, verbose=False)
    db.train(train_dir)
    results = db.recognize(train_dir)

    assert capsys.readouterr().out.splitlines() == ["100.00", "100.00", "100.00"]
    for name in ('PCA', 'LDA', 'ICA'):
        assert results[name]['num_correct'] == results[name]['num_total'] == N_IMAGES
        assert results[name]['accuracy'] == 100.0


def test_recognize_verbose_report(train_dir, capsys):
    db = FaceDatabase(pca=True, verbose=True)
    db.train(train_dir)
    capsys.readouterr()

    db.recognize(train_dir)
    lines = capsys.readouterr().out.splitlines()

    assert lines[0] == "  PCA"
    assert lines[1] == "    img_0.png  -> s0   "
    assert len(lines) == 1 + N_IMAGES + 2
    assert lines[-2] == "    %d / %d matched, 100.00%%" % (N_IMAGES, N_IMAGES)
    assert lines[-1] == ""
    assert not any("(!)" in line for line in lines)


def test_recognize_separate_test_set(train_dir, test_dir):
    db = FaceDatabase(True, True, False, verbose=False)
    db.train(train_dir)
    results = db.recognize(test_dir)

    for name in ('PCA', 'LDA'):
        assert results[name]['num_total'] == N_CLASSES * 2
        assert results[name]['accuracy'] == 100.0
        for prediction in results[name]['predictions']:
            assert prediction['predicted'] == prediction['actual']


def test_recognize_after_load(tmp_path, train_dir, test_dir):
    path = str(tmp_path / "database.dat")
    trained = FaceDatabase(True, True, False, verbose=False)
    trained.train(train_dir)
    trained.save(path)

    loaded = FaceDatabase(True, True, False, verbose=False).load(path)
    expected = trained.recognize(test_dir)
    results = loaded.recognize(test_dir)

    for name in ('PCA', 'LDA'):
        assert [p['match_index'] for p in results[name]['predictions']] == \
            [p['match_index'] for p in expected[name]['predictions']]
