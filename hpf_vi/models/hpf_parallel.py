# hpf_vi/models/hpf_parallel.py

import numpy as np
from dataclasses import dataclass
from joblib import Parallel
from typing import Optional

from hpf_vi.data.ratings import DataSplit
from hpf_vi.evaluation.convergence import PredictiveLikelihoodMonitor
from hpf_vi.evaluation.metrics import rmse
from hpf_vi.models.hpf_model import HPFModel
from hpf_vi.models.pmf_model import PMFModel, SideHyperParameters
from hpf_vi.models.updates import update_item_model, update_user_model
from hpf_vi.utils.stopping import IterationCountStoppingCondition, ThresholdStoppingCondition


@dataclass
class HPF_Parallel_Config:
    n_factors: int = 20
    a: float = 0.3              # Shape for theta
    a_prime: float = 0.3        # Shape for xi (user activity)
    b_prime: float = 1.0        # Prior mean of xi
    c: float = 0.3              # Shape for beta
    c_prime: float = 0.3        # Shape for eta (item popularity)
    d_prime: float = 1.0        # Prior mean of eta
    max_iter: int = 100
    min_iter: int = 0
    tol: Optional[float] = 1e-4  # None runs exactly max_iter iterations
    iteration_frequency: int = 1  # Validation check every N iterations
    max_offset_shape: float = 0.1
    max_offset_rate: float = 0.1
    is_probability_prediction: bool = False
    n_jobs: int = -1
    random_state: int = 42
    verbose: bool = True

    def __post_init__(self):
        if self.n_factors <= 0:
            raise ValueError(f"n_factors must be positive, got {self.n_factors}")
        for name in ("a", "a_prime", "b_prime", "c", "c_prime", "d_prime"):
            if not getattr(self, name) > 0:
                raise ValueError(f"Prior '{name}' must be positive, got {getattr(self, name)}")
        if self.iteration_frequency <= 0:
            raise ValueError(f"iteration_frequency must be positive, got {self.iteration_frequency}")
        if self.max_offset_shape < 0 or self.max_offset_rate < 0:
            raise ValueError("Random initialization offsets must be non-negative")
        if self.min_iter < 0 or self.max_iter < self.min_iter:
            raise ValueError(f"Need 0 <= min_iter <= max_iter, got {self.min_iter}, {self.max_iter}")
        if self.tol is not None and self.tol <= 0:
            raise ValueError(f"tol must be positive or None, got {self.tol}")

    def user_hyperparameters(self):
        return SideHyperParameters(self.a, self.a_prime, self.b_prime)

    def item_hyperparameters(self):
        return SideHyperParameters(self.c, self.c_prime, self.d_prime)

    def stopping_condition(self):
        if self.tol is None:
            return IterationCountStoppingCondition(self.max_iter)
        return ThresholdStoppingCondition(self.tol, self.min_iter, self.max_iter)


class HPF_Parallel:
    """
    Hierarchical Poisson Factorization fitted with mean-field VI, updating
    users and then items in parallel over entities.

    Model:
        x_ui ~ Poisson(theta_u^T beta_i)
        theta_uk ~ Gamma(a, xi_u)
        xi_u ~ Gamma(a_prime, a_prime / b_prime)
        beta_ik ~ Gamma(c, eta_i)
        eta_i ~ Gamma(c_prime, c_prime / d_prime)

    Each iteration updates every user from the previous snapshots, then every
    item using the freshly updated users. Convergence is tracked with the
    average predictive log likelihood on a validation set.
    """
    def __init__(self, config: HPF_Parallel_Config):
        self.config = config
        self.n_users = None
        self.n_items = None

        # Variational Parameters
        self.user_model = None  # q(theta), q(xi)
        self.item_model = None  # q(beta), q(eta)

        # Trained model / Expectations
        self.model = None
        self.E_theta = None
        self.E_beta = None

        self.monitor = None
        self.n_iter_ = 0

    def _log(self, message):
        if self.config.verbose:
            print(message, flush=True)

    def _initialize(self):
        rng = np.random.default_rng(self.config.random_state)
        cfg = self.config
        users = cfg.user_hyperparameters()
        items = cfg.item_hyperparameters()

        # Users first, then items, from the same generator
        self.user_model = PMFModel.initialize(
            users.weight_shape_prior, users.activity_shape_prior, users.activity_prior_mean,
            self.n_users, cfg.n_factors, cfg.max_offset_shape, cfg.max_offset_rate, rng,
        ).check("user", 0)
        self.item_model = PMFModel.initialize(
            items.weight_shape_prior, items.activity_shape_prior, items.activity_prior_mean,
            self.n_items, cfg.n_factors, cfg.max_offset_shape, cfg.max_offset_rate, rng,
        ).check("item", 0)
        self._log("initialization finished")

    def fit(self, train_df, val_df):
        """
        Fit on a training frame with columns ['u', 'i', 'rating'], monitoring
        convergence on val_df.
        """
        return self.fit_split(DataSplit.from_dataframes(train_df, val_df))

    def fit_split(self, split, stopping_condition=None):
        self.n_users = split.n_users
        self.n_items = split.n_items
        self._log(f"Inferred n_users={self.n_users}, n_items={self.n_items}")

        # Fails on an empty validation set before any work is done
        self.monitor = PredictiveLikelihoodMonitor.from_split(
            split, self.config.iteration_frequency, self.config.is_probability_prediction
        )

        grouped = split.group_train_ratings()
        if grouped.n_empty_users or grouped.n_empty_items:
            self._log(f"{grouped.n_empty_users} users and {grouped.n_empty_items} items "
                      f"have no training ratings; they are updated from the priors")

        self._initialize()

        user_hyper = self.config.user_hyperparameters()
        item_hyper = self.config.item_hyperparameters()
        if stopping_condition is None:
            stopping_condition = self.config.stopping_condition()
        controller = stopping_condition.new_loop()
        change = 1.0

        with Parallel(n_jobs=self.config.n_jobs, prefer="threads") as parallel:
            while controller.keep_training(change):
                it = controller.iteration_count
                pre_user, pre_item = self.user_model, self.item_model

                # --- Update Users ---
                curr_user = update_user_model(grouped, pre_user, pre_item, user_hyper, it, parallel)
                self._log(f"iteration {it} user update finished")

                # --- Update Items (with the new users) ---
                curr_item = update_item_model(grouped, pre_user, pre_item, curr_user, item_hyper, it, parallel)
                self._log(f"iteration {it} item update finished")

                self.user_model, self.item_model = curr_user, curr_item

                # --- Evaluation ---
                if self.monitor.is_checkpoint(it):
                    change = self.monitor.update(it, curr_user, curr_item)
                    self._log(f"iteration {it} average predictive log likelihood "
                              f"{self.monitor.curr_avg_pll:.6f}, change {change:.6f}")

            self.n_iter_ = controller.iteration_count

        self.model = HPFModel.from_variational(
            self.user_model, self.item_model, split.user_index, split.item_index, self.n_iter_
        )
        self.E_theta = self.model.E_theta
        self.E_beta = self.model.E_beta
        self._log(f"Training finished after {self.n_iter_} iterations")
        return self

    def _check_fitted(self):
        if self.model is None:
            raise RuntimeError("HPF_Parallel is not fitted yet; call fit() first")

    def predict(self, user_ids, item_ids):
        self._check_fitted()
        return self.model.predict(user_ids, item_ids)

    def evaluate_rmse(self, df):
        y_true = df["rating"].to_numpy()
        y_pred = self.predict(df["u"].to_numpy(), df["i"].to_numpy())
        return rmse(y_true, y_pred)

    def evaluate_log_likelihood(self, df):
        """Average predictive log likelihood on a frame of known ids."""
        self._check_fitted()
        users = self.model.user_index.indices_of(df["u"].to_numpy())
        items = self.model.item_index.indices_of(df["i"].to_numpy())
        known = (users >= 0) & (items >= 0)
        monitor = PredictiveLikelihoodMonitor(
            users[known], items[known], df["rating"].to_numpy(dtype=float)[known],
            is_probability_prediction=self.config.is_probability_prediction,
        )
        return monitor.average_log_likelihood(self.user_model, self.item_model)

    def training_trace(self):
        return self.monitor.trace() if self.monitor is not None else None
