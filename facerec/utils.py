# facerec/utils.py
import os
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
import config


def _output_file(output_dir, filename):
    os.makedirs(output_dir, exist_ok=True)
    return os.path.join(output_dir, filename)


def _as_image(vector, image_shape):
    image = np.asarray(vector, dtype=np.float64).reshape(image_shape)
    # stretch to [0, 1] so bases with negative weights stay visible
    low, high = image.min(), image.max()
    if high > low:
        image = (image - low) / (high - low)
    return image


def plot_mean_face(mean_face, image_shape, output_dir=config.OUTPUT_PATH):
    """Save the mean face of the training set as an image."""
    plt.figure(figsize=config.PLOT_FIGSIZE_SMALL)
    plt.imshow(_as_image(mean_face.data[:, 0], image_shape), cmap='gray')
    plt.title("Mean Face")
    plt.axis('off')
    path = _output_file(output_dir, "mean_face.png")
    plt.savefig(path, dpi=config.PLOT_DPI, bbox_inches='tight')
    plt.close()
    return path


def plot_basis_images(W, image_shape, name, n_top=config.N_BASIS_DISPLAY, output_dir=config.OUTPUT_PATH):
    """Show the first basis vectors (eigenfaces, fisherfaces, ICA components) as images."""
    n_top = min(n_top, W.cols)
    n_cols = 4
    n_rows = max(1, int(np.ceil(n_top / n_cols)))

    plt.figure(figsize=(3 * n_cols, 3 * n_rows))
    for i in range(n_top):
        plt.subplot(n_rows, n_cols, i + 1)
        plt.imshow(_as_image(W.data[:, i], image_shape), cmap='gray')
        plt.title(f"{name} {i + 1}")
        plt.axis('off')
    plt.suptitle(f"{name} Basis")
    path = _output_file(output_dir, f"basis_{name.lower()}.png")
    plt.savefig(path, dpi=config.PLOT_DPI, bbox_inches='tight')
    plt.close()
    return path


def plot_confusion_matrix(metrics, name, output_dir=config.OUTPUT_PATH):
    """Heatmap of the confusion matrix computed by compute_recognition_metrics."""
    cm = np.array(metrics["confusion_matrix"])
    class_names = metrics["class_names"]

    plt.figure(figsize=(10, 8))
    sns.heatmap(cm, annot=True, fmt='d', cmap='Blues',
                xticklabels=class_names, yticklabels=class_names)
    plt.title(f"Confusion Matrix: {name}")
    plt.ylabel('Actual Label')
    plt.xlabel('Predicted Label')
    path = _output_file(output_dir, f"cm_{name.lower().replace(' ', '_')}.png")
    plt.savefig(path, dpi=config.PLOT_DPI, bbox_inches='tight')
    plt.close()
    return path


def plot_accuracy_comparison(df_comparison, output_dir=config.OUTPUT_PATH):
    plt.style.use(config.PLOT_STYLE)
    plt.figure(figsize=config.PLOT_FIGSIZE_SMALL)
    sns.barplot(data=df_comparison, x="algorithm", y="accuracy", color='tab:blue')
    plt.ylim(0, 100)
    plt.ylabel("Accuracy (%)")
    plt.title("Recognition Accuracy by Algorithm", fontsize=14, fontweight='bold')
    plt.tight_layout()
    path = _output_file(output_dir, "accuracy_comparison.png")
    plt.savefig(path, dpi=config.PLOT_DPI, bbox_inches='tight')
    plt.close()
    return path
