# hpf_vi/models/hpf_model.py

import numpy as np


class HPFModel:
    """
    Trained HPF model: expected user features E[theta] (n_users, K), expected
    item features E[beta] (n_items, K) and the id <-> index maps.

    Scores are E[theta_u]^T E[beta_i].
    """

    def __init__(self, E_theta, E_beta, user_index, item_index):
        E_theta = np.array(E_theta, dtype=float)
        E_beta = np.array(E_beta, dtype=float)
        if E_theta.ndim != 2 or E_beta.ndim != 2 or E_theta.shape[1] != E_beta.shape[1]:
            raise ValueError(f"Incompatible feature matrices {E_theta.shape} and {E_beta.shape}")
        if E_theta.shape[0] != len(user_index) or E_beta.shape[0] != len(item_index):
            raise ValueError("Feature matrices do not match the index sizes")
        E_theta.setflags(write=False)
        E_beta.setflags(write=False)

        self.E_theta = E_theta
        self.E_beta = E_beta
        self.user_index = user_index
        self.item_index = item_index

    @classmethod
    def from_variational(cls, user_model, item_model, user_index, item_index, iteration=0):
        """Collapse the Gamma parameters into their means."""
        user_model.check("user", iteration)
        item_model.check("item", iteration)
        return cls(user_model.expected_weights(), item_model.expected_weights(), user_index, item_index)

    @property
    def n_users(self):
        return self.E_theta.shape[0]

    @property
    def n_items(self):
        return self.E_beta.shape[0]

    @property
    def n_factors(self):
        return self.E_theta.shape[1]

    def user_features(self, user_id):
        return self.E_theta[self.user_index.index_of(user_id)]

    def item_features(self, item_id):
        return self.E_beta[self.item_index.index_of(item_id)]

    def score(self, user_id, item_id):
        return float(self.user_features(user_id) @ self.item_features(item_id))

    def predict(self, user_ids, item_ids):
        """
        E[x_ui] for each (user id, item id) pair; 0 where either id is unknown.
        """
        u_idx = self.user_index.indices_of(user_ids)
        i_idx = self.item_index.indices_of(item_ids)
        preds = np.zeros(len(u_idx))

        valid_mask = (u_idx >= 0) & (i_idx >= 0)

        if np.any(valid_mask):
            theta = self.E_theta[u_idx[valid_mask]]
            beta = self.E_beta[i_idx[valid_mask]]
            preds[valid_mask] = np.sum(theta * beta, axis=1)

        return preds
