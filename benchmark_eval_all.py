import logging
import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from multilabel_arff import read_multilabel_arff
from prequential_evaluation_multilabel import PrequentialMultiLabelResults, prequential_evaluation_multilabel
from punitive_sam_knn import PunitiveSAMkNN
from synthetic_streams import MultiLabelStreamConfig, drifting_multilabel_stream, header_for


def plot_window_sizes(results: PrequentialMultiLabelResults, output_file: str):
    """Plots the learner's window size against the number of processed instances."""
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(range(1, len(results.window_sizes) + 1), results.window_sizes, linewidth=1)
    ax.set_xlabel("Instances")
    ax.set_ylabel("Window size")
    ax.set_title(f"{results.learner} on {results.stream}")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(output_file)
    plt.close(fig)


def run_evaluation(stream, header, output_dir: str, window_size: int = 1000,
                   max_instances: int = 1_000_000_000, progress_bar: bool = True,
                   **model_params) -> pd.DataFrame:
    """
    Run a prequential multi-label evaluation on one stream, save windowed metrics
    and the window-size plot, and return the cumulative metrics as a DataFrame.
    """
    logging.info(f"Processing stream: {header.relation}")

    model = PunitiveSAMkNN(**model_params)

    results = prequential_evaluation_multilabel(
        stream=stream,
        learner=model,
        header=header,
        max_instances=max_instances,
        window_size=window_size,
        progress_bar=progress_bar,
    )

    model_name = type(model).__name__
    df_metrics = results.cumulative_frame()
    df_metrics["Punitive Evictions"] = model.n_punitive_evictions
    df_metrics["Shrink Evictions"] = model.n_shrink_evictions

    windows_csv = os.path.join(output_dir, f"windows_{model_name}_{header.relation}.csv")
    results.metrics_per_window().to_csv(windows_csv, index=False)
    logging.info(f"Saved windowed metrics to {windows_csv}")

    plot_window_sizes(results, os.path.join(output_dir, f"window_size_{model_name}_{header.relation}.png"))

    return df_metrics


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    data_dir = "./data"
    output_dir = "./results"
    os.makedirs(output_dir, exist_ok=True)

    dataset_files = [
        "20NG.arff", "Bibtex.arff", "Enron.arff", "IMDB.arff", "Mediamill.arff",
        "Ohsumed.arff", "Scene.arff", "Slashdot.arff", "Tmc2007.arff", "Yeast.arff",
    ]

    all_metrics: list[pd.DataFrame] = []
    for fname in dataset_files:
        file_path = os.path.join(data_dir, fname)
        if not os.path.isfile(file_path):
            logging.warning(f"File not found: {file_path}")
            continue
        header, stream = read_multilabel_arff(file_path)
        all_metrics.append(run_evaluation(stream, header, output_dir))

    if not all_metrics:
        logging.info("No ARFF streams found, falling back to the synthetic drifting stream.")
        cfg = MultiLabelStreamConfig()
        all_metrics.append(run_evaluation(drifting_multilabel_stream(cfg), header_for(cfg), output_dir,
                                          max_instances=cfg.n_instances))

    all_df = pd.concat(all_metrics, ignore_index=True)
    model_name = all_df.at[0, "Learner"].split("(")[0].strip()
    combined_csv = os.path.join(output_dir, f"metrics_{model_name}_all_streams.csv")
    all_df.to_csv(combined_csv, index=False)
    logging.info(f"Saved combined cumulative metrics to {combined_csv}")
