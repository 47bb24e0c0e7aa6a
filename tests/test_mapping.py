import numpy as np
import pytest

from hpf_vi.data.ratings import KeyIndex
from hpf_vi.experiments.hyperparams import load_best_hyperparams, load_config
from hpf_vi.models.hpf_model import HPFModel
from hpf_vi.models.pmf_model import NumericalDegeneracyError, PMFModel
from hpf_vi.utils.mapping import load_embeddings, save_embeddings


def test_embeddings_survive_save_and_load(tmp_path):
    model = HPFModel(
        np.array([[0.5, 1.0], [2.0, 0.1]]),
        np.array([[1.0, 0.0], [0.3, 0.3], [0.2, 4.0]]),
        KeyIndex([7, 3]),            # stored order is the model's index order
        KeyIndex(["x", "y", "z"]),
    )
    save_embeddings(model, str(tmp_path))
    loaded = load_embeddings(str(tmp_path))

    np.testing.assert_allclose(loaded.E_theta, model.E_theta)
    np.testing.assert_allclose(loaded.E_beta, model.E_beta)
    assert loaded.score(3, "z") == pytest.approx(model.score(3, "z"))


def test_load_embeddings_missing_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_embeddings(str(tmp_path))


def test_finalizer_reports_training_iteration():
    users = PMFModel(np.ones((2, 2)), np.array([[1.0, 1.0], [0.0, 1.0]]), np.ones(2), np.ones(2))
    items = PMFModel(np.ones((2, 2)), np.ones((2, 2)), np.ones(2), np.ones(2))
    with pytest.raises(NumericalDegeneracyError) as excinfo:
        HPFModel.from_variational(users, items, KeyIndex([0, 1]), KeyIndex([0, 1]), iteration=9)
    assert (excinfo.value.side, excinfo.value.index, excinfo.value.iteration) == ("user", 1, 9)


def test_hpf_model_rejects_mismatched_shapes():
    with pytest.raises(ValueError):
        HPFModel(np.ones((2, 2)), np.ones((3, 3)), KeyIndex([0, 1]), KeyIndex([0, 1, 2]))


def test_load_config_from_hyperparameter_file(tmp_path):
    path = tmp_path / "best_hyperparams.txt"
    path.write_text(
        "===== best =====\n"
        "HPF_Parallel: {'n_factors': 8, 'a': 0.5, 'iteration_frequency': 5}\n"
        "Broken: {not a dict\n"
    )
    assert set(load_best_hyperparams(str(path))) == {"HPF_Parallel"}

    config = load_config(str(path), n_jobs=2, verbose=None)
    assert config.n_factors == 8 and config.a == 0.5 and config.iteration_frequency == 5
    assert config.n_jobs == 2 and config.verbose is True


def test_load_config_defaults_when_file_missing(tmp_path):
    config = load_config(str(tmp_path / "missing.txt"))
    assert config.n_factors == 20
