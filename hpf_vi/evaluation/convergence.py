# hpf_vi/evaluation/convergence.py

import numpy as np
import pandas as pd

from hpf_vi.evaluation.metrics import (
    LOG_EPSILON, bernoulli_log_likelihood, poisson_log_likelihood, relative_change,
)
from hpf_vi.models.pmf_model import NumericalDegeneracyError


def _check_range(side, indices, count):
    bad = indices < 0
    if count is not None:
        bad |= indices >= count
    if bad.any():
        raise ValueError(f"Validation {side} index out of range: {indices[bad][0]}")


class PredictiveLikelihoodMonitor:
    """
    Average predictive log likelihood on a held-out set, checked every
    `iteration_frequency` iterations.

    The monitor only reports the relative change between consecutive
    checkpoints; stopping is left to the training loop controller.
    """

    def __init__(self, users, items, ratings, iteration_frequency=1,
                 is_probability_prediction=False, epsilon=LOG_EPSILON, n_users=None, n_items=None):
        self.users = np.asarray(users, dtype=int)
        self.items = np.asarray(items, dtype=int)
        self.ratings = np.asarray(ratings, dtype=float)

        if self.ratings.size == 0:
            raise ValueError("Validation set is empty; cannot average the predictive log likelihood.")
        if not (self.users.shape == self.items.shape == self.ratings.shape):
            raise ValueError("users, items and ratings must have the same length")
        if iteration_frequency <= 0:
            raise ValueError(f"iteration_frequency must be positive, got {iteration_frequency}")
        _check_range("user", self.users, n_users)
        _check_range("item", self.items, n_items)

        self.iteration_frequency = iteration_frequency
        self.is_probability_prediction = is_probability_prediction
        self.epsilon = epsilon

        # Trend state
        self.prev_avg_pll = None
        self.curr_avg_pll = None
        self.relative_change = 1.0
        self.history = []

    @classmethod
    def from_split(cls, split, iteration_frequency=1, is_probability_prediction=False):
        users, items, ratings = split.validation_arrays()
        return cls(users, items, ratings, iteration_frequency, is_probability_prediction,
                   n_users=split.n_users, n_items=split.n_items)

    def is_checkpoint(self, iteration):
        return iteration % self.iteration_frequency == 0

    def average_log_likelihood(self, user_model, item_model):
        e_theta = user_model.expected_weights()[self.users]
        e_beta = item_model.expected_weights()[self.items]
        e_theta_beta = np.sum(e_theta * e_beta, axis=1)

        if self.is_probability_prediction:
            pll = bernoulli_log_likelihood(self.ratings, e_theta_beta, self.epsilon)
        else:
            pll = poisson_log_likelihood(self.ratings, e_theta_beta, self.epsilon)
        return float(np.mean(pll))

    def update(self, iteration, user_model, item_model):
        """
        Recompute the average at a checkpoint and return the relative change.
        Off-checkpoint iterations return the last change unchanged.
        """
        if not self.is_checkpoint(iteration):
            return self.relative_change

        avg_pll = self.average_log_likelihood(user_model, item_model)
        if not np.isfinite(avg_pll):
            raise NumericalDegeneracyError("validation", -1, iteration, f"average log likelihood {avg_pll}")

        self.curr_avg_pll = avg_pll
        self.relative_change = relative_change(self.prev_avg_pll, avg_pll)
        self.prev_avg_pll = avg_pll
        self.history.append({
            "iteration": iteration,
            "avg_pll": avg_pll,
            "relative_change": self.relative_change,
        })
        return self.relative_change

    def trace(self):
        return pd.DataFrame(self.history, columns=["iteration", "avg_pll", "relative_change"])
