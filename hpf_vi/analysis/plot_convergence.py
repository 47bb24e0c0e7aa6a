import pandas as pd
import matplotlib
import matplotlib.pyplot as plt
import argparse
import os

OUTPUT_DIR = 'reports/figures/convergence'


def plot_training_trace(trace, output_path=None, title='HPF validation log likelihood'):
    """
    Plot average predictive log likelihood and its relative change per
    checkpoint. `trace` is the frame returned by HPF_Parallel.training_trace().
    """
    if trace.empty:
        raise ValueError("Training trace is empty; nothing to plot")

    fig, (ax_pll, ax_change) = plt.subplots(1, 2, figsize=(12, 4))

    ax_pll.plot(trace['iteration'], trace['avg_pll'], marker='o')
    ax_pll.set_title(title)
    ax_pll.set_xlabel('Iteration')
    ax_pll.set_ylabel('Avg. predictive log likelihood')

    ax_change.semilogy(trace['iteration'], trace['relative_change'], marker='o', color='tab:orange')
    ax_change.set_title('Relative change')
    ax_change.set_xlabel('Iteration')

    plt.tight_layout()
    if output_path is not None:
        os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)
        fig.savefig(output_path)
        print(f"Saved plot to {output_path}")
    return fig


if __name__ == "__main__":
    matplotlib.use('Agg')
    parser = argparse.ArgumentParser(description='Plot an HPF training trace')
    parser.add_argument('trace_csv', type=str, help='training_trace.csv written by train_hpf_parallel_full')
    parser.add_argument('--output', type=str, default=os.path.join(OUTPUT_DIR, 'training_trace.png'))
    args = parser.parse_args()

    if not os.path.exists(args.trace_csv):
        raise FileNotFoundError(f"File not found: {args.trace_csv}")
    plot_training_trace(pd.read_csv(args.trace_csv), args.output)
