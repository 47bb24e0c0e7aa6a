# hpf_vi/evaluation/metrics.py

import numpy as np
from scipy.special import gammaln

# Floor for E[theta_u^T beta_i] before taking a log
LOG_EPSILON = 1e-10


def rmse(y_true, y_pred):
    """
    Compute Root Mean Squared Error between true and predicted ratings.
    """
    return np.sqrt(np.mean((y_true - y_pred) ** 2))


def mae(y_true, y_pred):
    """
    Compute Mean Absolute Error.
    """
    return np.mean(np.abs(y_true - y_pred))


def macro_mae(y_true, y_pred):
    """
    Compute Macro-Averaged Mean Absolute Error.
    MAE is computed for each unique true rating value, then averaged.
    This gives equal weight to each rating class, so rare rating values
    count as much as frequent ones.
    """
    labels = np.unique(y_true)
    maes = []
    for label in labels:
        mask = (y_true == label)
        if np.any(mask):
            mae_k = np.mean(np.abs(y_true[mask] - y_pred[mask]))
            maes.append(mae_k)
    return np.mean(maes)


def poisson_log_likelihood(ratings, expectations, epsilon=LOG_EPSILON):
    """
    Per-rating Poisson log likelihood y log(lambda) - lambda - log(y!).
    lambda is floored at epsilon, so a zero expectation becomes a large
    negative penalty instead of -inf.
    """
    ratings = np.asarray(ratings, dtype=float)
    expectations = np.asarray(expectations, dtype=float)
    lambdas = np.maximum(expectations, epsilon)
    return ratings * np.log(lambdas) - expectations - gammaln(ratings + 1)


def bernoulli_log_likelihood(ratings, expectations, epsilon=LOG_EPSILON):
    """
    Per-rating log likelihood of a click/no-click under P(y > 0) = 1 - exp(-lambda):
    -lambda for a zero rating, log(1 - exp(-lambda)) otherwise.
    """
    ratings = np.asarray(ratings, dtype=float)
    expectations = np.asarray(expectations, dtype=float)
    lambdas = np.maximum(expectations, epsilon)
    return np.where(ratings == 0, -expectations, np.log(-np.expm1(-lambdas)))


def relative_change(previous, current):
    """
    |(current - previous) / previous|; 1.0 when there is no previous value.
    Falls back to the absolute change when previous is exactly zero.
    """
    if previous is None:
        return 1.0
    if previous == 0:
        return abs(current - previous)
    return abs((current - previous) / previous)
