import pandas as pd
import numpy as np
import os

from hpf_vi.data.ratings import KeyIndex
from hpf_vi.models.hpf_model import HPFModel

USER_FILE = "user_embeddings.csv"
ITEM_FILE = "item_embeddings.csv"


def _features_frame(id_col, index, features):
    df = pd.DataFrame(features, columns=[f"k{k}" for k in range(features.shape[1])])
    df.insert(0, id_col, index.keys)
    return df


def save_embeddings(model, output_dir):
    """
    Write E[theta] and E[beta] as CSV, one row per entity with its external
    id in the first column ('u' for users, 'i' for items).
    """
    os.makedirs(output_dir, exist_ok=True)

    print(f"Saving embeddings to {output_dir}...")
    _features_frame("u", model.user_index, model.E_theta).to_csv(
        os.path.join(output_dir, USER_FILE), index=False
    )
    _features_frame("i", model.item_index, model.E_beta).to_csv(
        os.path.join(output_dir, ITEM_FILE), index=False
    )


def _read_features(path, id_col):
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")

    df = pd.read_csv(path)
    if id_col not in df.columns:
        raise ValueError(f"{path} must contain an '{id_col}' column")

    feature_cols = [c for c in df.columns if c != id_col]
    # Keep the stored row order; it is the index order of the trained model
    index = KeyIndex(df[id_col].to_numpy())
    return index, df[feature_cols].to_numpy(dtype=float)


def load_embeddings(output_dir):
    """
    Rebuild an HPFModel from files written by save_embeddings.
    """
    user_index, E_theta = _read_features(os.path.join(output_dir, USER_FILE), "u")
    item_index, E_beta = _read_features(os.path.join(output_dir, ITEM_FILE), "i")

    if E_theta.shape[1] != E_beta.shape[1]:
        raise ValueError(f"User and item embeddings disagree on K: {E_theta.shape[1]} vs {E_beta.shape[1]}")
    if not (np.isfinite(E_theta).all() and np.isfinite(E_beta).all()):
        raise ValueError("Embeddings contain non-finite values")

    print(f"Embeddings loaded. {len(user_index)} users, {len(item_index)} items mapped.")
    return HPFModel(E_theta, E_beta, user_index, item_index)
