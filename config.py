# config.py
import os

RANDOM_STATE = 42
VERBOSE = True

# -1 selects the automatic value (see facerec.pca / facerec.lda)
PCA_N1 = -1
LDA_N1 = -1
LDA_N2 = -1

ICA_MAX_ITERATIONS = 1000
ICA_EPSILON = 0.0001
ICA_N_COMPONENTS = -1

KNN_K = 1

DISTANCE_METRICS = {
    'PCA': 'L2',
    'LDA': 'L2',
    'ICA': 'COS'
}

IMAGE_EXTENSIONS = ('.pgm', '.ppm', '.png', '.jpg', '.jpeg', '.bmp', '.tif', '.tiff')

# Numerical tolerances of the matrix engine
SYMMETRY_TOLERANCE = 1e-8
SQRTM_NEGATIVE_TOLERANCE = 1e-8
# eigenvalues below this fraction of the largest one count as zero
EIGENVALUE_RANK_TOLERANCE = 1e-10

DATABASE_MAGIC = b'FRDB'
DATABASE_VERSION = 1

PLOT_STYLE = 'seaborn-v0_8-whitegrid'
PLOT_DPI = 150
PLOT_FIGSIZE_SMALL = (8, 6)

N_BASIS_DISPLAY = 16

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATABASE_PATH = os.path.join(BASE_DIR, "results", "database.dat")
OUTPUT_PATH = os.path.join(BASE_DIR, "results", "figures")
METRICS_PATH = os.path.join(BASE_DIR, "results", "metrics")


def get_default_params():
    return {
        'pca_n1': PCA_N1,
        'lda_n1': LDA_N1,
        'lda_n2': LDA_N2,
        'ica_max_iterations': ICA_MAX_ITERATIONS,
        'ica_epsilon': ICA_EPSILON,
        'ica_n_components': ICA_N_COMPONENTS,
        'knn_k': KNN_K
    }


def get_config_summary():
    return {
        'PCA': {
            'Components': PCA_N1,
            'Distance': DISTANCE_METRICS['PCA']
        },
        'LDA': {
            'Components In': LDA_N1,
            'Components Out': LDA_N2,
            'Distance': DISTANCE_METRICS['LDA']
        },
        'ICA': {
            'Max Iterations': ICA_MAX_ITERATIONS,
            'Epsilon': ICA_EPSILON,
            'Components': ICA_N_COMPONENTS,
            'Distance': DISTANCE_METRICS['ICA']
        },
        'Classifier': {
            'k': KNN_K,
            'Random State': RANDOM_STATE
        }
    }


def print_config():
    print("CONFIGURATION")
    summary = get_config_summary()
    for section, params in summary.items():
        print(f"\n{section}:")
        for key, value in params.items():
            print(f"  {key}: {value}")
