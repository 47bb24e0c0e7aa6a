# hpf_vi/models/pmf_model.py

import numpy as np
from dataclasses import dataclass
from scipy.special import digamma, softmax
from typing import NamedTuple

# Rates at or below this are treated as a diverged model
RATE_EPSILON = 1e-10


class NumericalDegeneracyError(ArithmeticError):
    """
    Raised when a Gamma rate collapses to (near) zero or a parameter stops
    being finite. Carries the side ('user' / 'item'), the entity index and
    the iteration so the bad row can be traced.
    """
    def __init__(self, side, index, iteration, detail):
        self.side = side
        self.index = index
        self.iteration = iteration
        super().__init__(f"{side} {index} at iteration {iteration}: {detail}")


class SideHyperParameters(NamedTuple):
    weight_shape_prior: float     # a (users) / c (items)
    activity_shape_prior: float   # a' / c'
    activity_prior_mean: float    # b' / d'


class ModelRow(NamedTuple):
    """New variational parameters for one entity."""
    index: int
    weight_shape: np.ndarray
    weight_rate: np.ndarray
    activity_shape: float
    activity_rate: float


def _frozen(values, ndim):
    arr = np.array(values, dtype=float)
    if arr.ndim != ndim:
        raise ValueError(f"Expected a {ndim}-d array, got shape {arr.shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class PMFModel:
    """
    Variational Gamma parameters for one side (users or items).

    weight_shape, weight_rate: (N, K)  q(theta_uk) / q(beta_ik)
    activity_shape, activity_rate: (N,)  q(xi_u) / q(eta_i)

    Arrays are copied and made read-only, so a model can be shared between
    parallel update tasks without locks.
    """
    weight_shape: np.ndarray
    weight_rate: np.ndarray
    activity_shape: np.ndarray
    activity_rate: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "weight_shape", _frozen(self.weight_shape, 2))
        object.__setattr__(self, "weight_rate", _frozen(self.weight_rate, 2))
        object.__setattr__(self, "activity_shape", _frozen(self.activity_shape, 1))
        object.__setattr__(self, "activity_rate", _frozen(self.activity_rate, 1))

        n, k = self.weight_shape.shape
        if self.weight_rate.shape != (n, k):
            raise ValueError(f"weight_rate shape {self.weight_rate.shape} != {(n, k)}")
        if self.activity_shape.shape != (n,) or self.activity_rate.shape != (n,):
            raise ValueError(f"activity parameters must have shape {(n,)}")

    @property
    def n_entities(self):
        return self.weight_shape.shape[0]

    @property
    def n_factors(self):
        return self.weight_shape.shape[1]

    @classmethod
    def initialize(cls, weight_shape_prior, activity_shape_prior, activity_prior_mean,
                   count, n_factors, max_offset_shape, max_offset_rate, rng):
        """
        Random perturbation of the prior means.

        Draw order is fixed: (shape, rate) per weight entry in row-major
        order, then (shape, rate) per activity entry. Sharing one generator
        across the user and item sides keeps a seed reproducible.
        """
        weight_draws = rng.uniform(size=(count, n_factors, 2))
        activity_draws = rng.uniform(size=(count, 2))

        return cls(
            weight_shape=weight_shape_prior + max_offset_shape * weight_draws[..., 0],
            weight_rate=activity_prior_mean + max_offset_rate * weight_draws[..., 1],
            activity_shape=activity_shape_prior + max_offset_shape * activity_draws[:, 0],
            activity_rate=1.0 + max_offset_rate * activity_draws[:, 1],
        )

    @classmethod
    def from_rows(cls, rows, count, n_factors):
        """
        Assemble per-entity rows into a model. Rows may arrive in any order
        but every index in [0, count) must appear exactly once.
        """
        weight_shape = np.empty((count, n_factors))
        weight_rate = np.empty((count, n_factors))
        activity_shape = np.empty(count)
        activity_rate = np.empty(count)
        seen = np.zeros(count, dtype=bool)

        for row in rows:
            if seen[row.index]:
                raise ValueError(f"Duplicate row for index {row.index}")
            seen[row.index] = True
            weight_shape[row.index] = row.weight_shape
            weight_rate[row.index] = row.weight_rate
            activity_shape[row.index] = row.activity_shape
            activity_rate[row.index] = row.activity_rate

        if not seen.all():
            missing = np.flatnonzero(~seen)
            raise ValueError(f"Missing rows for {missing.size} indices, first is {missing[0]}")

        return cls(weight_shape, weight_rate, activity_shape, activity_rate)

    def check(self, side="entity", iteration=0):
        """
        Raise NumericalDegeneracyError on the first row with a non-finite
        parameter or a rate at or below RATE_EPSILON.
        """
        bad_rows = (
            ~np.isfinite(self.weight_shape).all(axis=1)
            | ~np.isfinite(self.weight_rate).all(axis=1)
            | ~np.isfinite(self.activity_shape)
            | ~np.isfinite(self.activity_rate)
            | (self.weight_shape <= 0).any(axis=1)
            | (self.activity_shape <= 0)
            | (self.weight_rate <= RATE_EPSILON).any(axis=1)
            | (self.activity_rate <= RATE_EPSILON)
        )
        if bad_rows.any():
            idx = int(np.flatnonzero(bad_rows)[0])
            raise NumericalDegeneracyError(
                side, idx, iteration,
                f"degenerate Gamma parameters (weight rate min={self.weight_rate[idx].min():.3g}, "
                f"activity rate={self.activity_rate[idx]:.3g})"
            )
        return self

    def expected_weights(self):
        # E[theta_uk] = shape / rate
        return self.weight_shape / self.weight_rate

    def expected_log_weights(self):
        # E[log theta_uk] = digamma(shape) - log(rate)
        return digamma(self.weight_shape) - np.log(self.weight_rate)

    def expected_activity(self):
        return self.activity_shape / self.activity_rate


def compute_entity_update(group, own_model, own_log_weights, other_log_weights,
                          other_expectation_sum, hyper, side="entity", iteration=0):
    """
    Coordinate-ascent update of one entity's Gamma parameters.

    For a user u (items are symmetric):
        phi_ui        ∝ exp(E[log theta_u] + E[log beta_i])    per rating y_ui > 0
        shape_uk      = a + sum_i y_ui * phi_uik
        rate_uk       = E[xi_u] + sum_{all i} E[beta_ik]
        kappa_shape_u = a' + K * a
        kappa_rate_u  = a' / b' + sum_k shape_uk / rate_uk

    `own_log_weights` / `other_log_weights` are E[log weight] matrices for the
    snapshots the responsibilities are computed from; `other_expectation_sum`
    is the column sum of the opposing side's expected weights.
    """
    idx = group.index
    n_factors = own_model.n_factors

    if group.counterparts.size > 0:
        log_phi = own_log_weights[idx][None, :] + other_log_weights[group.counterparts]
        phi = softmax(log_phi, axis=1)
        sum_phi = group.values @ phi
    else:
        sum_phi = np.zeros(n_factors)

    weight_shape = hyper.weight_shape_prior + sum_phi

    prev_activity_rate = own_model.activity_rate[idx]
    if not prev_activity_rate > RATE_EPSILON:
        raise NumericalDegeneracyError(side, idx, iteration, f"activity rate {prev_activity_rate}")
    weight_rate = own_model.activity_shape[idx] / prev_activity_rate + other_expectation_sum
    if not (np.all(np.isfinite(weight_rate)) and np.all(weight_rate > RATE_EPSILON)):
        raise NumericalDegeneracyError(side, idx, iteration, f"weight rate min {weight_rate.min()}")

    activity_shape = hyper.activity_shape_prior + n_factors * hyper.weight_shape_prior
    activity_rate = (hyper.activity_shape_prior / hyper.activity_prior_mean
                     + np.sum(weight_shape / weight_rate))
    if not np.isfinite(activity_rate) or not np.all(np.isfinite(weight_shape)):
        raise NumericalDegeneracyError(side, idx, iteration, "non-finite update")

    return ModelRow(idx, weight_shape, weight_rate, activity_shape, activity_rate)
