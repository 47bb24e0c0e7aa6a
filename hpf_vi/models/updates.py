# hpf_vi/models/updates.py

import numpy as np
from joblib import delayed, effective_n_jobs

from hpf_vi.models.pmf_model import PMFModel, compute_entity_update


def _update_block(groups, own_model, own_log_weights, other_log_weights,
                  other_expectation_sum, hyper, side, iteration):
    return [
        compute_entity_update(g, own_model, own_log_weights, other_log_weights,
                              other_expectation_sum, hyper, side, iteration)
        for g in groups
    ]


def _run_phase(groups, own_model, own_log_weights, other_log_weights,
               other_expectation_sum, hyper, side, iteration, parallel=None):
    """
    Map every entity group to a ModelRow and assemble the rows into a new
    PMFModel. Entities are independent, so the blocks can run in any order.
    """
    if parallel is None:
        n_blocks = 1
    else:
        n_blocks = max(1, min(len(groups), 4 * effective_n_jobs(parallel.n_jobs)))
    bounds = np.linspace(0, len(groups), n_blocks + 1).astype(int)
    blocks = [groups[lo:hi] for lo, hi in zip(bounds[:-1], bounds[1:]) if hi > lo]

    args = (own_model, own_log_weights, other_log_weights, other_expectation_sum, hyper, side, iteration)
    if parallel is None:
        results = [_update_block(block, *args) for block in blocks]
    else:
        results = parallel(delayed(_update_block)(block, *args) for block in blocks)

    rows = (row for block_rows in results for row in block_rows)
    return PMFModel.from_rows(rows, own_model.n_entities, own_model.n_factors)


def update_user_model(grouped, pre_user, pre_item, hyper, iteration=0, parallel=None):
    """
    New user model from the previous user and item snapshots.
    """
    pre_user.check("user", iteration)
    pre_item.check("item", iteration)
    return _run_phase(
        grouped.by_user,
        own_model=pre_user,
        own_log_weights=pre_user.expected_log_weights(),
        other_log_weights=pre_item.expected_log_weights(),
        other_expectation_sum=pre_item.expected_weights().sum(axis=0),
        hyper=hyper,
        side="user",
        iteration=iteration,
        parallel=parallel,
    )


def update_item_model(grouped, pre_user, pre_item, curr_user, hyper, iteration=0, parallel=None):
    """
    New item model. Responsibilities come from the previous snapshots, while
    the rate term sums the expectations of the user model updated earlier in
    the same iteration (Gauss-Seidel order).
    """
    curr_user.check("user", iteration)
    return _run_phase(
        grouped.by_item,
        own_model=pre_item,
        own_log_weights=pre_item.expected_log_weights(),
        other_log_weights=pre_user.expected_log_weights(),
        other_expectation_sum=curr_user.expected_weights().sum(axis=0),
        hyper=hyper,
        side="item",
        iteration=iteration,
        parallel=parallel,
    )
