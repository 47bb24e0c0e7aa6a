import pytest

from hpf_vi.utils.stopping import IterationCountStoppingCondition, ThresholdStoppingCondition


def test_iteration_count_runs_fixed_number():
    controller = IterationCountStoppingCondition(3).new_loop()
    seen = []
    while controller.keep_training(0.0):
        seen.append(controller.iteration_count)
    assert seen == [1, 2, 3]


def test_threshold_respects_min_and_max_iterations():
    condition = ThresholdStoppingCondition(0.01, min_iter=2, max_iter=5)

    controller = condition.new_loop()
    assert controller.keep_training(0.001)  # below threshold but min_iter not reached
    assert controller.keep_training(0.001)
    assert not controller.keep_training(0.001)
    assert controller.iteration_count == 2

    controller = condition.new_loop()
    n = 0
    while controller.keep_training(1.0):
        n += 1
    assert n == 5


def test_threshold_validates_arguments():
    with pytest.raises(ValueError):
        ThresholdStoppingCondition(0.0)
    with pytest.raises(ValueError):
        ThresholdStoppingCondition(0.1, min_iter=5, max_iter=2)
