# hpf_vi/utils/stopping.py


class TrainingLoopController:
    """
    Tracks one training loop. Call keep_training(change) once per iteration;
    inside the loop body iteration_count is 1-based.
    """

    def __init__(self, condition):
        self.condition = condition
        self.iteration_count = 0

    def keep_training(self, change):
        if self.condition.should_stop(change, self.iteration_count):
            return False
        self.iteration_count += 1
        return True


class IterationCountStoppingCondition:
    """Run a fixed number of iterations, ignoring the change signal."""

    def __init__(self, n_iterations):
        if n_iterations < 0:
            raise ValueError(f"n_iterations must be non-negative, got {n_iterations}")
        self.n_iterations = n_iterations

    def should_stop(self, change, n_done):
        return n_done >= self.n_iterations

    def new_loop(self):
        return TrainingLoopController(self)


class ThresholdStoppingCondition:
    """
    Stop once at least `min_iter` iterations ran and the change dropped below
    `threshold`, or after `max_iter` iterations.
    """

    def __init__(self, threshold, min_iter=0, max_iter=None):
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got {threshold}")
        if min_iter < 0:
            raise ValueError(f"min_iter must be non-negative, got {min_iter}")
        if max_iter is not None and max_iter < min_iter:
            raise ValueError(f"max_iter ({max_iter}) must be >= min_iter ({min_iter})")
        self.threshold = threshold
        self.min_iter = min_iter
        self.max_iter = max_iter

    def should_stop(self, change, n_done):
        if self.max_iter is not None and n_done >= self.max_iter:
            return True
        return n_done >= self.min_iter and abs(change) < self.threshold

    def new_loop(self):
        return TrainingLoopController(self)
