"""
This module provides functions for reporting and comparing recognition
results: the fixed-format recognition report, accuracy and confusion
metrics, comparison tables and JSON export.
"""

import json
import os
import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix


def compute_recognition_metrics(y_true, y_pred):
    """
    Compute recognition metrics from actual and predicted label names.

    Args:
        y_true: Actual label name of every test image
        y_pred: Predicted label name of every test image

    Returns:
        dict: num_correct, num_total, accuracy (percent), confusion matrix
              over the sorted union of label names and a per-class report
    """
    y_true = np.asarray(y_true, dtype=object)
    y_pred = np.asarray(y_pred, dtype=object)

    num_total = len(y_true)
    num_correct = int(np.sum(y_true == y_pred))

    metrics = {
        "num_correct": num_correct,
        "num_total": num_total,
        "accuracy": 100.0 * num_correct / num_total if num_total > 0 else 0.0
    }

    if num_total > 0:
        class_names = sorted(set(y_true) | set(y_pred))
        metrics["accuracy_score"] = accuracy_score(y_true, y_pred)
        metrics["class_names"] = class_names
        metrics["confusion_matrix"] = confusion_matrix(y_true, y_pred, labels=class_names).tolist()
        metrics["classification_report"] = classification_report(
            y_true, y_pred, labels=class_names, output_dict=True, zero_division=0
        )

    return metrics


def print_recognition_report(name, result, verbose=True):
    """
    Print the recognition report of one algorithm.

    Verbose mode prints a table of predicted versus actual label per image,
    marking mismatches with "(!)", followed by a summary line. Terse mode
    prints only the accuracy percentage.

    Args:
        name: Algorithm name
        result: Result dictionary as returned by FaceDatabase.recognize
        verbose: Select the verbose table or the terse single line
    """
    if not verbose:
        print("%.2f" % result["accuracy"])
        return

    print("  %s" % name)

    for prediction in result["predictions"]:
        marker = "(!)" if prediction["predicted"] != prediction["actual"] else ""
        print("    %-10s -> %-4s %s" % (os.path.basename(prediction["name"]), prediction["predicted"], marker))

    print("    %d / %d matched, %.2f%%" % (result["num_correct"], result["num_total"], result["accuracy"]))
    print()


def compare_algorithms(results):
    """
    Aggregate recognition results of several algorithms.

    Args:
        results: Dictionary mapping algorithm name to its result dictionary

    Returns:
        pd.DataFrame: One row per algorithm sorted by accuracy
    """
    rows = []
    for name, result in results.items():
        rows.append({
            "algorithm": name,
            "num_correct": result["num_correct"],
            "num_total": result["num_total"],
            "accuracy": result["accuracy"],
            "execution_time": result.get("execution_time", np.nan)
        })

    if not rows:
        return pd.DataFrame()

    df_comparison = pd.DataFrame(rows)
    df_comparison = df_comparison.sort_values("accuracy", ascending=False, kind="stable")

    return df_comparison.reset_index(drop=True)


def save_metrics_to_json(metrics, path):
    """
    Save a metrics dictionary to a JSON file, converting numpy types.

    Args:
        metrics: Dictionary of metrics
        path: Destination file
    """
    def convert(value):
        if isinstance(value, np.ndarray):
            return value.tolist()
        if isinstance(value, np.generic):
            return value.item()
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(path, "w") as f:
        json.dump(metrics, f, indent=2, default=convert)
