# hpf_vi/data/load_data.py

import pandas as pd
import os

from hpf_vi.data.ratings import DataSplit, random_split

DATA_DIR = "data/processed"


def load_interactions(split, data_dir=DATA_DIR):
    """
    Load interaction data for a given split: 'train', 'validation', or 'test'.
    Returns only columns ['u', 'i', 'rating'].
    """
    filename = f"interactions_{split}.csv"
    path = os.path.join(data_dir, filename)

    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")

    df = pd.read_csv(path)
    missing = {"u", "i", "rating"} - set(df.columns)
    if missing:
        raise ValueError(f"{path} is missing columns: {sorted(missing)}")
    return df[["u", "i", "rating"]]


def load_all_splits(data_dir=DATA_DIR):
    """Loads train, val, test."""
    train = load_interactions("train", data_dir)
    val   = load_interactions("validation", data_dir)
    test  = load_interactions("test", data_dir)
    return train, val, test


def build_training_split(train_df, val_df, dataset_mode="train", validation_fraction=0.1, random_state=42):
    """
    Turn train/validation frames into a DataSplit for the given mode.

    'train' monitors convergence on val_df; 'train+val' merges both frames and
    holds out a random slice of the union for monitoring.
    """
    if dataset_mode == "train":
        fit_df, monitor_df = train_df, val_df
    elif dataset_mode == "train+val":
        print("Concatenating train and validation sets...")
        merged = pd.concat([train_df, val_df])[["u", "i", "rating"]]
        fit_df, monitor_df = random_split(merged, validation_fraction, random_state)
    else:
        raise ValueError(f"Invalid dataset_mode: {dataset_mode}. Choose from 'train', 'train+val'.")

    if len(monitor_df) == 0:
        raise ValueError("Validation set is empty; the convergence check needs at least one rating.")

    return DataSplit.from_dataframes(fit_df, monitor_df)
