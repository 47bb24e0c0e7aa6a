# hpf_vi/data/ratings.py

import numpy as np
import pandas as pd
from typing import NamedTuple


class RatingEntry(NamedTuple):
    """
    One (user, item, value) observation in index space.

    Placeholder entries carry value 0 and only exist so that an index without
    ratings still shows up in its group; they never add evidence.
    """
    user_index: int
    item_index: int
    value: float
    is_placeholder: bool = False

    @classmethod
    def placeholder(cls, index):
        return cls(index, index, 0.0, True)


class KeyIndex:
    """
    Bijection between external ids and dense zero-based indices.
    """

    def __init__(self, keys):
        self._keys = np.array(keys)
        self._keys.setflags(write=False)
        self._index = {k: idx for idx, k in enumerate(self._keys.tolist())}
        if len(self._index) != len(self._keys):
            raise ValueError("KeyIndex keys must be unique")

    @classmethod
    def from_keys(cls, keys):
        return cls(np.sort(pd.unique(np.asarray(keys))))

    @property
    def keys(self):
        return self._keys

    def size(self):
        return len(self._keys)

    def __len__(self):
        return len(self._keys)

    def __contains__(self, key):
        return key in self._index

    def index_of(self, key):
        try:
            return self._index[key]
        except KeyError:
            raise ValueError(f"Unknown key: {key!r}") from None

    def try_index_of(self, key):
        return self._index.get(key, -1)

    def indices_of(self, keys):
        """Vectorised lookup; unknown ids map to -1."""
        return np.array([self._index.get(k, -1) for k in np.asarray(keys).tolist()], dtype=int)

    def key(self, index):
        return self._keys[index]


class RatingGroup(NamedTuple):
    """
    Ratings touching one entity, plus the arrays the update math needs.

    `counterparts` and `values` only hold the entries with a positive value.
    """
    index: int
    entries: tuple
    counterparts: np.ndarray
    values: np.ndarray


def _make_group(index, entries, counterpart_field):
    observed = [e for e in entries if not e.is_placeholder and e.value > 0]
    counterparts = np.array([getattr(e, counterpart_field) for e in observed], dtype=int)
    values = np.array([e.value for e in observed], dtype=float)
    counterparts.setflags(write=False)
    values.setflags(write=False)
    return RatingGroup(index, tuple(entries), counterparts, values)


class GroupedRatings:
    """
    Training entries partitioned by user index and, separately, by item index.

    Every index in [0, n) has a group; those without ratings get a single
    placeholder entry.
    """

    def __init__(self, entries, n_users, n_items):
        self.n_users = n_users
        self.n_items = n_items

        by_user = [[] for _ in range(n_users)]
        by_item = [[] for _ in range(n_items)]
        for e in entries:
            if not (0 <= e.user_index < n_users) or not (0 <= e.item_index < n_items):
                raise ValueError(f"Rating entry out of range: {e}")
            by_user[e.user_index].append(e)
            by_item[e.item_index].append(e)

        # fill out placeholders so every index receives an update
        self.n_empty_users = 0
        for u in range(n_users):
            if not by_user[u]:
                by_user[u].append(RatingEntry.placeholder(u))
                self.n_empty_users += 1

        self.n_empty_items = 0
        for i in range(n_items):
            if not by_item[i]:
                by_item[i].append(RatingEntry.placeholder(i))
                self.n_empty_items += 1

        self.by_user = tuple(_make_group(u, g, "item_index") for u, g in enumerate(by_user))
        self.by_item = tuple(_make_group(i, g, "user_index") for i, g in enumerate(by_item))


class DataSplit:
    """
    Train/validation entries in index space and the two index maps.
    """

    def __init__(self, train_entries, validation_entries, user_index, item_index):
        self.train_entries = tuple(train_entries)
        self.validation_entries = tuple(validation_entries)
        self.user_index = user_index
        self.item_index = item_index

    @property
    def n_users(self):
        return self.user_index.size()

    @property
    def n_items(self):
        return self.item_index.size()

    def group_train_ratings(self):
        return GroupedRatings(self.train_entries, self.n_users, self.n_items)

    def validation_arrays(self):
        """Validation set as (users, items, ratings) arrays."""
        v = self.validation_entries
        users = np.array([e.user_index for e in v], dtype=int)
        items = np.array([e.item_index for e in v], dtype=int)
        ratings = np.array([e.value for e in v], dtype=float)
        return users, items, ratings

    @classmethod
    def from_dataframes(cls, train_df, val_df, user_col="u", item_col="i", rating_col="rating"):
        """
        Build index maps over the union of ids in both frames and map each
        row to a RatingEntry.
        """
        user_index = KeyIndex.from_keys(np.concatenate([
            train_df[user_col].to_numpy(), val_df[user_col].to_numpy()
        ]))
        item_index = KeyIndex.from_keys(np.concatenate([
            train_df[item_col].to_numpy(), val_df[item_col].to_numpy()
        ]))

        def to_entries(df):
            users = user_index.indices_of(df[user_col].to_numpy())
            items = item_index.indices_of(df[item_col].to_numpy())
            ratings = df[rating_col].to_numpy(dtype=float)
            return [RatingEntry(int(u), int(i), float(r)) for u, i, r in zip(users, items, ratings)]

        return cls(to_entries(train_df), to_entries(val_df), user_index, item_index)


def random_split(df, validation_fraction=0.1, random_state=42):
    """
    Random holdout split of a ratings frame into (train_df, val_df).
    """
    if not 0.0 < validation_fraction < 1.0:
        raise ValueError(f"validation_fraction must be in (0, 1), got {validation_fraction}")
    if len(df) < 2:
        raise ValueError("Need at least two ratings to split")

    shuffled = df.sample(frac=1, random_state=random_state).reset_index(drop=True)
    n_val = max(1, int(round(len(shuffled) * validation_fraction)))
    val_df = shuffled.iloc[:n_val].copy()
    train_df = shuffled.iloc[n_val:].copy()
    return train_df, val_df
