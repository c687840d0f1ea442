# facerec/classification.py
from facerec.errors import EmptyDataset
from facerec.matrix import get_distance


def _resolve(metric):
    if isinstance(metric, str):
        return get_distance(metric)
    return metric


def nearest_neighbor(P, Q, i, metric):
    """
    Find the column of P closest to column i of Q.

    Only a strict improvement replaces the running minimum, so ties resolve
    to the lowest index.

    Args:
        P: Reference matrix (k x n), one projected training image per column
        Q: Query matrix (k x m)
        i: Column of Q to classify
        metric: Distance function or its name ('L1', 'L2', 'COS')

    Returns:
        int: Index of the matching column of P
    """
    if P.cols == 0:
        raise EmptyDataset("nearest neighbor search over an empty reference set")

    dist_func = _resolve(metric)

    min_index = -1
    min_dist = None
    for j in range(P.cols):
        dist = dist_func(Q, i, P, j)
        if min_dist is None or dist < min_dist:
            min_index = j
            min_dist = dist

    return min_index


def k_nearest_neighbors(P, Q, i, metric, k):
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")
    if P.cols == 0:
        raise EmptyDataset("nearest neighbor search over an empty reference set")

    dist_func = _resolve(metric)
    distances = [(dist_func(Q, i, P, j), j) for j in range(P.cols)]
    # stable: equal distances keep ascending index order
    distances.sort(key=lambda item: item[0])
    return [j for _, j in distances[:min(k, P.cols)]]


def knn_vote(P, Q, i, metric, k, labels):
    """
    Classify column i of Q by majority vote among its k nearest neighbors.

    Args:
        P: Reference matrix
        Q: Query matrix
        i: Column of Q to classify
        metric: Distance function or its name
        k: Number of neighbors
        labels: Label of every column of P

    Returns:
        int: Index of the reference column whose label wins the vote. Ties
             between labels go to the label whose nearest member is closest.
    """
    if k == 1:
        return nearest_neighbor(P, Q, i, metric)

    neighbors = k_nearest_neighbors(P, Q, i, metric, k)

    counts = {}
    first_seen = {}
    for rank, j in enumerate(neighbors):
        key = labels[j].id
        counts[key] = counts.get(key, 0) + 1
        first_seen.setdefault(key, (rank, j))

    winner = max(counts, key=lambda key: (counts[key], -first_seen[key][0]))
    return first_seen[winner][1]
