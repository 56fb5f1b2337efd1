"""
Learned dispatch approximator.

A first-order Takagi-Sugeno fuzzy inference system with Gaussian membership
functions on a grid partition of the input space. Consequent parameters are
fitted by ridge-regularised least squares against the rule policy's signals,
which is the forward half of ANFIS hybrid learning; premise parameters stay
at their grid-partition values.
"""

import itertools
from typing import Dict, Any, Optional, Sequence, Tuple

import numpy as np

from .base import Observation, DispatchDecision, PolicyPlugin
from .rules import CalendarAwarePolicy, CalendarSignals
from ..exceptions import PolicyEvaluationError, DispatchError


FEATURE_NAMES = (
    "hour_of_day",
    "day_of_week",
    "day_progress",
    "pv_available",
    "price_norm",
    "grid_available",
)

SIGNAL_NAMES = ("load_shift", "battery", "grid")


def feature_vector(observation: Observation, price_reference: float) -> np.ndarray:
    """Feature vector consumed by the approximator, ordered as ``FEATURE_NAMES``."""
    return np.array([
        observation.hour_of_day,
        float(observation.day_of_week),
        observation.day_progress,
        1.0 if observation.solar_generation > 0 else 0.0,
        observation.grid_price / price_reference,
        1.0 if observation.grid_available else 0.0,
    ])


class FuzzyInferenceSystem:
    """Single-output first-order Sugeno system."""
    
    def __init__(
        self,
        centers: np.ndarray,
        sigmas: np.ndarray,
        lower: np.ndarray,
        upper: np.ndarray,
        consequents: Optional[np.ndarray] = None
    ):
        self.centers = np.asarray(centers, dtype=float)  # (n_inputs, n_mfs)
        self.sigmas = np.asarray(sigmas, dtype=float)  # (n_inputs, n_mfs)
        self.lower = np.asarray(lower, dtype=float)
        self.upper = np.asarray(upper, dtype=float)
        
        n_inputs, n_mfs = self.centers.shape
        self._rules = np.array(list(itertools.product(range(n_mfs), repeat=n_inputs)), dtype=int)
        self.consequents = consequents  # (n_rules, n_inputs + 1) once fitted
    
    @classmethod
    def grid_partition(cls, inputs: np.ndarray, mfs_per_input: int = 2) -> 'FuzzyInferenceSystem':
        """Evenly spaced Gaussian memberships spanning each input's training range."""
        inputs = np.asarray(inputs, dtype=float)
        if inputs.ndim != 2 or inputs.shape[0] == 0:
            raise DispatchError("Training inputs must be a non-empty 2-D array")
        if mfs_per_input < 2:
            raise DispatchError(f"mfs_per_input must be >= 2, got {mfs_per_input}")
        
        lower = inputs.min(axis=0)
        upper = inputs.max(axis=0)
        span = np.where(upper - lower > 0, upper - lower, 1.0)
        
        positions = np.linspace(0.0, 1.0, mfs_per_input)
        centers = lower[:, None] + span[:, None] * positions[None, :]
        sigmas = np.repeat((span / (2.0 * (mfs_per_input - 1)))[:, None], mfs_per_input, axis=1)
        return cls(centers, sigmas, lower, upper)
    
    @property
    def n_inputs(self) -> int:
        return self.centers.shape[0]
    
    @property
    def n_rules(self) -> int:
        return self._rules.shape[0]
    
    @property
    def is_fitted(self) -> bool:
        return self.consequents is not None
    
    def in_domain(self, inputs: np.ndarray, margin: float = 0.0) -> bool:
        """Whether every row lies inside the training range widened by ``margin`` spans."""
        inputs = np.atleast_2d(np.asarray(inputs, dtype=float))
        span = np.where(self.upper - self.lower > 0, self.upper - self.lower, 1.0)
        low = self.lower - margin * span
        high = self.upper + margin * span
        return bool(np.all(np.isfinite(inputs)) and np.all((inputs >= low) & (inputs <= high)))
    
    def normalized_firing(self, inputs: np.ndarray) -> np.ndarray:
        """Normalised rule firing strengths, shape (n_samples, n_rules)."""
        inputs = np.atleast_2d(np.asarray(inputs, dtype=float))
        z = (inputs[:, :, None] - self.centers[None, :, :]) / self.sigmas[None, :, :]
        log_membership = -0.5 * z ** 2  # (n, n_inputs, n_mfs)
        
        # Product t-norm, accumulated in log space
        log_firing = np.zeros((inputs.shape[0], self.n_rules))
        for i in range(self.n_inputs):
            log_firing += log_membership[:, i, self._rules[:, i]]
        
        log_firing -= log_firing.max(axis=1, keepdims=True)
        firing = np.exp(log_firing)
        return firing / firing.sum(axis=1, keepdims=True)
    
    def _design_matrix(self, inputs: np.ndarray) -> np.ndarray:
        inputs = np.atleast_2d(np.asarray(inputs, dtype=float))
        firing = self.normalized_firing(inputs)
        augmented = np.hstack([inputs, np.ones((inputs.shape[0], 1))])
        return (firing[:, :, None] * augmented[:, None, :]).reshape(inputs.shape[0], -1)
    
    def fit(self, inputs: np.ndarray, targets: np.ndarray, ridge: float = 1e-6) -> float:
        """Fit consequent parameters and return the training RMSE."""
        targets = np.asarray(targets, dtype=float)
        design = self._design_matrix(inputs)
        if design.shape[0] != targets.shape[0]:
            raise DispatchError("Inputs and targets must have the same number of samples")
        
        gram = design.T @ design + ridge * np.eye(design.shape[1])
        theta, *_ = np.linalg.lstsq(gram, design.T @ targets, rcond=None)
        self.consequents = theta.reshape(self.n_rules, self.n_inputs + 1)
        
        residual = design @ theta - targets
        return float(np.sqrt(np.mean(residual ** 2)))
    
    def evaluate(self, inputs: np.ndarray) -> np.ndarray:
        """Crisp output for each input row."""
        if not self.is_fitted:
            raise PolicyEvaluationError("Fuzzy system has not been fitted")
        design = self._design_matrix(inputs)
        return design @ self.consequents.reshape(-1)


class ApproximatorPolicy(PolicyPlugin):
    """Dispatch driven by fuzzy approximations of the calendar signals."""
    
    def __init__(
        self,
        systems: Dict[str, FuzzyInferenceSystem],
        resolver: CalendarAwarePolicy,
        price_reference: float,
        domain_margin: float = 0.1,
        training_rmse: Optional[Dict[str, float]] = None,
        name: str = "fuzzy"
    ):
        super().__init__(name)
        missing = set(SIGNAL_NAMES) - set(systems)
        if missing:
            raise DispatchError(f"Missing fuzzy systems for: {', '.join(sorted(missing))}")
        
        self.systems = systems
        self.resolver = resolver
        self.price_reference = price_reference
        self.domain_margin = domain_margin
        self.training_rmse = training_rmse or {}
    
    def is_available(self) -> bool:
        return all(system.is_fitted for system in self.systems.values())
    
    def validate_observation(self, observation: Observation) -> bool:
        features = feature_vector(observation, self.price_reference)
        return all(
            system.in_domain(features, self.domain_margin)
            for system in self.systems.values()
        )
    
    def signals(self, observation: Observation) -> CalendarSignals:
        """Approximated signals; raises ``PolicyEvaluationError`` when unusable."""
        if not self.validate_observation(observation):
            raise PolicyEvaluationError(
                f"Observation at t={observation.timestamp:.0f}s is outside the trained domain"
            )
        
        features = feature_vector(observation, self.price_reference)[None, :]
        with np.errstate(over="raise", invalid="raise", divide="raise"):
            try:
                outputs = {
                    name: float(self.systems[name].evaluate(features)[0])
                    for name in SIGNAL_NAMES
                }
            except FloatingPointError as e:
                raise PolicyEvaluationError(f"Numerical failure in fuzzy evaluation: {e}")
        
        bad = [name for name, value in outputs.items() if not np.isfinite(value)]
        if bad:
            raise PolicyEvaluationError(f"Non-finite fuzzy output for: {', '.join(bad)}")
        
        return CalendarSignals(**outputs)
    
    def decide(self, observation: Observation) -> DispatchDecision:
        decision = self.resolver.resolve(observation, self.signals(observation))
        return DispatchDecision(
            battery_action=decision.battery_action,
            grid_action=decision.grid_action,
            reason=decision.reason,
            explanation=decision.explanation,
            load_shift=decision.load_shift,
            grid_usage=decision.grid_usage,
            policy=self.name
        )
    
    def get_metadata(self) -> Dict[str, Any]:
        metadata = super().get_metadata()
        metadata.update({
            "features": list(FEATURE_NAMES),
            "rules_per_system": {name: s.n_rules for name, s in self.systems.items()},
            "training_rmse": dict(self.training_rmse)
        })
        return metadata


def build_training_set(
    observations: Sequence[Observation],
    expert: CalendarAwarePolicy,
    price_reference: float
) -> Tuple[np.ndarray, Dict[str, np.ndarray]]:
    """Feature matrix and per-signal targets produced by the rule policy."""
    if not observations:
        raise DispatchError("Cannot train on an empty observation set")
    
    inputs = np.vstack([feature_vector(obs, price_reference) for obs in observations])
    targets = {name: np.empty(len(observations)) for name in SIGNAL_NAMES}
    for i, obs in enumerate(observations):
        signals = expert.signals(obs)
        targets["load_shift"][i] = signals.load_shift
        targets["battery"][i] = signals.battery
        targets["grid"][i] = signals.grid
    return inputs, targets


def train_approximator(
    observations: Sequence[Observation],
    expert: CalendarAwarePolicy,
    mfs_per_input: Optional[int] = None,
    ridge: Optional[float] = None,
    domain_margin: Optional[float] = None
) -> ApproximatorPolicy:
    """Fit one fuzzy system per calendar signal against the rule policy's output."""
    config = expert.config
    mfs_per_input = config.mfs_per_input if mfs_per_input is None else mfs_per_input
    ridge = config.ridge if ridge is None else ridge
    domain_margin = config.domain_margin if domain_margin is None else domain_margin
    price_reference = config.price_reference
    
    inputs, targets = build_training_set(observations, expert, price_reference)
    
    systems = {}
    rmse = {}
    for name in SIGNAL_NAMES:
        system = FuzzyInferenceSystem.grid_partition(inputs, mfs_per_input)
        rmse[name] = system.fit(inputs, targets[name], ridge=ridge)
        systems[name] = system
        expert.logger.info(
            f"Trained fuzzy {name} system: {system.n_rules} rules, RMSE {rmse[name]:.4f}"
        )
    
    return ApproximatorPolicy(
        systems,
        resolver=expert,
        price_reference=price_reference,
        domain_margin=domain_margin,
        training_rmse=rmse
    )
