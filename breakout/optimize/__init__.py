"""Randomized train/test parameter optimization."""

from .driver import Optimizer, evaluate_trial, load_train_test
from .models import OptimizationResult, OptimizeOptions, ScoreWeights, TrialResult, TrialSettings
from .sampler import sample_trials
from .scoring import MIN_FILLED_PENALTY, composite_score, compute_metrics, score_trial

__all__ = [
    "Optimizer",
    "evaluate_trial",
    "load_train_test",
    "OptimizationResult",
    "OptimizeOptions",
    "ScoreWeights",
    "TrialResult",
    "TrialSettings",
    "sample_trials",
    "MIN_FILLED_PENALTY",
    "composite_score",
    "compute_metrics",
    "score_trial",
]
