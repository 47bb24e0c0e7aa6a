import numpy as np
import pytest
from joblib import Parallel

from hpf_vi.data.ratings import GroupedRatings, RatingEntry
from hpf_vi.models.pmf_model import NumericalDegeneracyError, PMFModel, SideHyperParameters
from hpf_vi.models.updates import update_item_model, update_user_model

HYPER = SideHyperParameters(0.3, 0.3, 1.0)


@pytest.fixture
def setup():
    rng = np.random.default_rng(42)
    users = PMFModel.initialize(0.3, 0.3, 1.0, 6, 3, 0.5, 0.5, rng)
    items = PMFModel.initialize(0.3, 0.3, 1.0, 5, 3, 0.5, 0.5, rng)
    entries = [
        RatingEntry(0, 0, 3.0), RatingEntry(0, 1, 1.0), RatingEntry(1, 1, 2.0),
        RatingEntry(2, 3, 5.0), RatingEntry(3, 0, 1.0), RatingEntry(3, 3, 4.0),
        RatingEntry(4, 2, 0.0),
    ]
    return GroupedRatings(entries, 6, 5), users, items


def test_every_index_is_updated(setup):
    grouped, users, items = setup
    new_users = update_user_model(grouped, users, items, HYPER, iteration=1)

    assert new_users.n_entities == 6
    # user 5 has no ratings and user 4 only a zero rating
    np.testing.assert_array_equal(new_users.weight_shape[4], np.full(3, 0.3))
    np.testing.assert_array_equal(new_users.weight_shape[5], np.full(3, 0.3))
    assert np.all(np.isfinite(new_users.weight_rate))


def test_parallel_matches_sequential(setup):
    grouped, users, items = setup
    sequential = update_user_model(grouped, users, items, HYPER, iteration=1)
    with Parallel(n_jobs=3, prefer="threads") as parallel:
        threaded = update_user_model(grouped, users, items, HYPER, iteration=1, parallel=parallel)
        threaded_items = update_item_model(grouped, users, items, threaded, HYPER, 1, parallel)
    sequential_items = update_item_model(grouped, users, items, sequential, HYPER, 1)

    for name in ("weight_shape", "weight_rate", "activity_shape", "activity_rate"):
        assert np.array_equal(getattr(sequential, name), getattr(threaded, name))
        assert np.array_equal(getattr(sequential_items, name), getattr(threaded_items, name))


def test_item_update_uses_fresh_user_model(setup):
    grouped, users, items = setup
    new_users = update_user_model(grouped, users, items, HYPER, iteration=1)

    gauss_seidel = update_item_model(grouped, users, items, new_users, HYPER, iteration=1)
    jacobi = update_item_model(grouped, users, items, users, HYPER, iteration=1)

    # the rate term sees the new user expectations
    assert not np.allclose(gauss_seidel.weight_rate, jacobi.weight_rate)
    expected = items.expected_activity()[:, None] + new_users.expected_weights().sum(axis=0)[None, :]
    np.testing.assert_allclose(gauss_seidel.weight_rate, expected)
    # responsibilities are taken from the previous snapshots
    np.testing.assert_array_equal(gauss_seidel.weight_shape, jacobi.weight_shape)


def test_degenerate_snapshot_aborts_phase(setup):
    grouped, users, items = setup
    rates = items.weight_rate.copy()
    rates[3, 1] = 0.0
    broken = PMFModel(items.weight_shape, rates, items.activity_shape, items.activity_rate)

    with pytest.raises(NumericalDegeneracyError) as excinfo:
        update_user_model(grouped, users, broken, HYPER, iteration=4)
    assert (excinfo.value.side, excinfo.value.index, excinfo.value.iteration) == ("item", 3, 4)
