"""
Subspace face recognition package.

This package provides modules for:
- matrix: Dense matrix engine (decompositions, inverse, distances)
- storage: Binary record codec for persisted databases
- pca, lda, ica: Subspace training algorithms
- classification: Nearest-neighbor and k-NN classification
- preprocessing: Dataset enumeration and image decoding
- database: Training, persistence and recognition orchestration
- metrics: Recognition reports and comparison tables
- utils: Visualization functions
- errors: Exception types
"""
