import numpy as np
import pandas as pd
import pytest

from hpf_vi.data.ratings import DataSplit, GroupedRatings, KeyIndex, RatingEntry, random_split


def test_key_index_is_sorted_bijection():
    index = KeyIndex.from_keys([30, 10, 20, 10])
    assert len(index) == 3
    assert list(index.keys) == [10, 20, 30]
    assert index.index_of(20) == 1
    assert index.key(2) == 30
    assert 10 in index and 99 not in index
    assert list(index.indices_of([30, 99, 10])) == [2, -1, 0]
    with pytest.raises(ValueError):
        index.index_of(99)


def test_key_index_rejects_duplicates():
    with pytest.raises(ValueError):
        KeyIndex([1, 1])


def test_grouped_ratings_fills_placeholders():
    entries = [RatingEntry(0, 0, 2.0), RatingEntry(0, 2, 1.0), RatingEntry(2, 2, 0.0)]
    grouped = GroupedRatings(entries, n_users=4, n_items=3)

    assert len(grouped.by_user) == 4
    assert len(grouped.by_item) == 3
    assert grouped.n_empty_users == 2   # users 1 and 3
    assert grouped.n_empty_items == 1   # item 1

    user1 = grouped.by_user[1]
    assert user1.index == 1
    assert len(user1.entries) == 1 and user1.entries[0].is_placeholder
    assert user1.entries[0].value == 0.0
    assert user1.counterparts.size == 0

    user0 = grouped.by_user[0]
    assert list(user0.counterparts) == [0, 2]
    assert list(user0.values) == [2.0, 1.0]

    # zero-valued ratings stay in the group but carry no evidence
    user2 = grouped.by_user[2]
    assert len(user2.entries) == 1 and not user2.entries[0].is_placeholder
    assert user2.counterparts.size == 0

    item2 = grouped.by_item[2]
    assert list(item2.counterparts) == [0]


def test_grouped_ratings_rejects_out_of_range():
    with pytest.raises(ValueError):
        GroupedRatings([RatingEntry(5, 0, 1.0)], n_users=2, n_items=2)


def test_data_split_maps_ids_over_union():
    train_df = pd.DataFrame({"u": [100, 200], "i": ["a", "b"], "rating": [1.0, 3.0]})
    val_df = pd.DataFrame({"u": [300], "i": ["c"], "rating": [2.0]})

    split = DataSplit.from_dataframes(train_df, val_df)

    assert split.n_users == 3 and split.n_items == 3
    assert split.train_entries[1] == RatingEntry(1, 1, 3.0)
    users, items, ratings = split.validation_arrays()
    assert list(users) == [2] and list(items) == [2] and list(ratings) == [2.0]

    grouped = split.group_train_ratings()
    assert grouped.by_user[2].entries[0].is_placeholder


def test_random_split_is_seeded_and_disjoint():
    df = pd.DataFrame({"u": np.arange(20), "i": np.arange(20) % 4, "rating": np.ones(20)})
    train_a, val_a = random_split(df, 0.25, random_state=3)
    train_b, val_b = random_split(df, 0.25, random_state=3)

    assert len(val_a) == 5 and len(train_a) == 15
    pd.testing.assert_frame_equal(val_a, val_b)
    assert set(train_a["u"]).isdisjoint(set(val_a["u"]))

    with pytest.raises(ValueError):
        random_split(df, 1.5)
