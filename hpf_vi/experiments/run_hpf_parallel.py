import pandas as pd
from hpf_vi.data.load_data import load_all_splits
from hpf_vi.models.hpf_parallel import HPF_Parallel, HPF_Parallel_Config
from hpf_vi.evaluation.metrics import rmse


def run_experiment():
    print("Loading data...")
    train_df, val_df, test_df = load_all_splits()

    # Shift ratings by +1 (0-5 -> 1-6) so zero ratings still count as evidence
    print("Shifting ratings by +1...")
    train_df["rating"] += 1
    val_df["rating"] += 1
    test_df["rating"] += 1

    config = HPF_Parallel_Config(
        n_factors=20,
        a=0.3,
        a_prime=1.0,
        b_prime=1.0,
        c=0.3,
        c_prime=1.0,
        d_prime=1.0,
        max_iter=100,
        iteration_frequency=5,
        verbose=True
    )

    print(f"Running HPF_Parallel with config: {config}")

    model = HPF_Parallel(config)
    model.fit(train_df, val_df)  # val_df drives the convergence check

    print("\nEvaluating...")

    # Predict on Train
    train_preds = model.predict(train_df["u"].to_numpy(), train_df["i"].to_numpy())
    # Shift back by -1
    train_rmse = rmse(train_df["rating"].to_numpy() - 1, train_preds - 1)

    # Predict on Val
    val_preds = model.predict(val_df["u"].to_numpy(), val_df["i"].to_numpy())
    val_rmse = rmse(val_df["rating"].to_numpy() - 1, val_preds - 1)

    # Predict on Test
    test_preds = model.predict(test_df["u"].to_numpy(), test_df["i"].to_numpy())
    test_rmse = rmse(test_df["rating"].to_numpy() - 1, test_preds - 1)

    print(f"\n=== Final RMSEs (Original Scale) ===")
    print(f"Train RMSE: {train_rmse:.4f}")
    print(f"Validation RMSE: {val_rmse:.4f}")
    print(f"Test RMSE: {test_rmse:.4f}")
    print(f"Validation avg. predictive log likelihood: {model.evaluate_log_likelihood(val_df):.4f}")

    print("\nConvergence trace:")
    print(model.training_trace().to_string(index=False))

    # Check prediction stats
    print("\nPrediction Stats (Train):")
    print(pd.Series(train_preds).describe())


if __name__ == "__main__":
    run_experiment()
