import pandas as pd
import os
import time
from dataclasses import asdict

from hpf_vi.data.load_data import load_all_splits, build_training_split
from hpf_vi.experiments.hyperparams import load_config
from hpf_vi.models.hpf_parallel import HPF_Parallel
from hpf_vi.evaluation.metrics import rmse, macro_mae
from hpf_vi.utils.mapping import save_embeddings

import argparse


def train_full_hpf_parallel(dataset_mode='train', n_jobs=None, data_dir='data/processed',
                            output_dir='data/embeddings/hpf_parallel',
                            pred_dir='data/predictions/hpf_parallel',
                            hyperparams_file='best_hyperparams.txt', rating_shift=1.0):
    print(f"=== Training Full HPF (parallel VI) | Mode: {dataset_mode} ===")

    # 1. Load Data
    print("Loading data using load_all_splits...")
    train_df, val_df, test_df = load_all_splits(data_dir)

    # Preprocessing: Shift Ratings
    print(f"Shifting ratings by {rating_shift:+g} for HPF...")
    train_df = train_df.assign(rating=train_df["rating"] + rating_shift)
    val_df = val_df.assign(rating=val_df["rating"] + rating_shift)

    split = build_training_split(train_df, val_df, dataset_mode)

    # 2. Configure Model
    print("Loading best hyperparameters...")
    config = load_config(hyperparams_file, n_jobs=n_jobs)

    model = HPF_Parallel(config)

    # 3. Train
    print("Starting training...")
    start_time = time.time()
    model.fit_split(split)
    print(f"Training finished in {time.time() - start_time:.1f}s")

    # 4. Save Embeddings
    save_embeddings(model.model, output_dir)

    # Save config and convergence trace
    with open(os.path.join(output_dir, 'config.txt'), 'w') as f:
        f.write(str(asdict(config)))
    model.training_trace().to_csv(os.path.join(output_dir, 'training_trace.csv'), index=False)

    # 5. Save Test Predictions
    print("Generating predictions on Test Set...")
    os.makedirs(pred_dir, exist_ok=True)

    test_u = test_df["u"].to_numpy()
    test_i = test_df["i"].to_numpy()
    y_true = test_df["rating"].to_numpy()

    # Model was trained on shifted ratings, so predictions are shifted too
    y_pred_shifted = model.predict(test_u, test_i)
    y_pred = y_pred_shifted - rating_shift

    # Compute Metrics
    test_macro_mae = macro_mae(y_true, y_pred)
    test_rmse = rmse(y_true, y_pred)
    test_pll = model.evaluate_log_likelihood(test_df.assign(rating=test_df["rating"] + rating_shift))
    print(f"Test Set Metrics: MacroMAE={test_macro_mae:.4f} | RMSE={test_rmse:.4f} | avg. PLL={test_pll:.4f}")

    preds_df = pd.DataFrame({
        'u': test_u,
        'i': test_i,
        'y_true': y_true,
        'y_pred': y_pred
    })

    preds_df.to_csv(os.path.join(pred_dir, 'test_predictions.csv'), index=False)
    print(f"Saved test predictions to {pred_dir}")

    print("Done.")
    return model


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Train HPF with parallel variational updates')
    parser.add_argument('--dataset_mode', type=str, default='train',
                        choices=['train', 'train+val'],
                        help='Which dataset splits to use for training')
    parser.add_argument('--n_jobs', type=int, default=None,
                        help='Parallel workers for the per-entity updates (-1 = all cores)')
    parser.add_argument('--data_dir', type=str, default='data/processed')
    parser.add_argument('--output_dir', type=str, default='data/embeddings/hpf_parallel')
    parser.add_argument('--hyperparams_file', type=str, default='best_hyperparams.txt')
    parser.add_argument('--rating_shift', type=float, default=1.0,
                        help='Added to every rating before training, subtracted from predictions')
    args = parser.parse_args()

    train_full_hpf_parallel(dataset_mode=args.dataset_mode, n_jobs=args.n_jobs,
                            data_dir=args.data_dir, output_dir=args.output_dir,
                            hyperparams_file=args.hyperparams_file,
                            rating_shift=args.rating_shift)
