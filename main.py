# main.py
import argparse
import os
import sys

import config
from facerec.database import FaceDatabase
from facerec.errors import FaceRecognitionError
from facerec.metrics import compare_algorithms, save_metrics_to_json
from facerec.preprocessing import load_directory, read_image
from facerec.utils import (
    plot_mean_face, plot_basis_images, plot_confusion_matrix, plot_accuracy_comparison
)


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Train and evaluate PCA / LDA / ICA face recognition.")
    ap.add_argument("--train", metavar="DIR", help="Train a database on the images in DIR")
    ap.add_argument("--rec", metavar="DIR", help="Recognize the images in DIR")
    ap.add_argument("--db", default=config.DATABASE_PATH, help="Database file to save to / load from")

    ap.add_argument("--pca", action="store_true", help="Use PCA")
    ap.add_argument("--lda", action="store_true", help="Use LDA")
    ap.add_argument("--ica", action="store_true", help="Use ICA")
    ap.add_argument("--all", action="store_true", help="Use PCA, LDA and ICA")

    ap.add_argument("--pca_n1", type=int, default=config.PCA_N1, help="Number of PCA components (-1: all)")
    ap.add_argument("--lda_n1", type=int, default=config.LDA_N1, help="PCA components entering LDA (-1: n - c)")
    ap.add_argument("--lda_n2", type=int, default=config.LDA_N2, help="LDA components (-1: c - 1)")
    ap.add_argument("--ica_mi", type=int, default=config.ICA_MAX_ITERATIONS, help="ICA iteration cap")
    ap.add_argument("--ica_eps", type=float, default=config.ICA_EPSILON, help="ICA convergence threshold")
    ap.add_argument("--ica_nc", type=int, default=config.ICA_N_COMPONENTS, help="PCA components entering ICA (-1: all)")
    ap.add_argument("--knn_k", type=int, default=config.KNN_K, help="Number of neighbors for classification")

    verbosity = ap.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", dest="verbose", action="store_true", default=config.VERBOSE,
                           help="Print hyperparameters and per-image tables")
    verbosity.add_argument("--quiet", dest="verbose", action="store_false",
                           help="Print only the accuracy of each algorithm")

    ap.add_argument("--metrics", metavar="DIR", nargs="?", const=config.METRICS_PATH,
                    help="Write metrics JSON and a comparison CSV to DIR (default: results/metrics)")
    ap.add_argument("--plots", metavar="DIR", nargs="?", const=config.OUTPUT_PATH,
                    help="Write figures to DIR (default: results/figures)")
    ap.add_argument("--show_config", action="store_true", help="Print the default configuration")

    args = ap.parse_args(argv)
    if not args.train and not args.rec and not args.show_config:
        ap.error("nothing to do, give --train and/or --rec")
    return args


def run(args):
    if args.show_config:
        config.print_config()
        print()

    use_pca = args.pca or args.all
    use_lda = args.lda or args.all
    use_ica = args.ica or args.all

    params = {
        'pca_n1': args.pca_n1,
        'lda_n1': args.lda_n1,
        'lda_n2': args.lda_n2,
        'ica_max_iterations': args.ica_mi,
        'ica_epsilon': args.ica_eps,
        'ica_n_components': args.ica_nc,
        'knn_k': args.knn_k
    }

    db = FaceDatabase(use_pca, use_lda, use_ica, params=params, verbose=args.verbose)

    # 1. TRAINING
    if args.train:
        db.train(args.train)
        db.save(args.db)

    # 2. RECOGNITION
    if args.rec:
        if not args.train:
            db.load(args.db)

        results = db.recognize(args.rec)

        if args.metrics:
            os.makedirs(args.metrics, exist_ok=True)
            for name, result in results.items():
                save_metrics_to_json(result, os.path.join(args.metrics, f"{name.lower()}.json"))
            df_comparison = compare_algorithms(results)
            df_comparison.to_csv(os.path.join(args.metrics, "comparison.csv"), index=False)

        if args.plots:
            for name, result in results.items():
                plot_confusion_matrix(result["metrics"], name, output_dir=args.plots)
            if results:
                plot_accuracy_comparison(compare_algorithms(results), output_dir=args.plots)

    # 3. FIGURES OF THE TRAINED STATE
    if args.plots and args.train:
        entries, _ = load_directory(args.train)
        _, image_shape = read_image(entries[0].name)

        plot_mean_face(db.mean_face, image_shape, output_dir=args.plots)
        for slot in db.slots:
            if slot.is_trained:
                plot_basis_images(slot.W, image_shape, slot.name, output_dir=args.plots)

    return 0


def main(argv=None):
    args = parse_args(argv)
    try:
        return run(args)
    except FaceRecognitionError as e:
        print(f"error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
