"""
Fallback wrapper that evaluates a learned policy and re-invokes a rule policy
whenever the learned one fails for a step.
"""

from typing import Dict, Any, Optional
import math

import numpy as np

from .base import (
    DispatchPolicy, PolicyPlugin, DispatchDecision, Observation, power_balance_residual
)
from ..exceptions import PolicyEvaluationError


class FallbackDispatchPolicy(DispatchPolicy):
    """Learned policy with a rule-based safety net, checked step by step."""
    
    def __init__(
        self,
        primary: PolicyPlugin,
        fallback: DispatchPolicy,
        balance_tolerance: float = 1e-6,
        name: Optional[str] = None
    ):
        super().__init__(name or f"{primary.name}_with_fallback")
        self.primary = primary
        self.fallback = fallback
        self.balance_tolerance = balance_tolerance
        
        self._evaluation_count = 0
        self._fallback_count = 0
        self._last_error: Optional[str] = None
    
    def decide(self, observation: Observation) -> DispatchDecision:
        """Try the primary policy; re-invoke the rule policy on failure."""
        self._evaluation_count += 1
        
        if not self.primary.is_available():
            error = f"Policy {self.primary.name} is not available"
        else:
            try:
                decision = self.primary.decide(observation)
                self._validate_decision(observation, decision)
                self.primary.record_attempt(True)
                return decision
            except (PolicyEvaluationError, ArithmeticError, ValueError, np.linalg.LinAlgError) as e:
                self.primary.record_attempt(False)
                error = str(e)
        
        self._fallback_count += 1
        self._last_error = error
        self.logger.warning(
            f"Policy {self.primary.name} failed at t={observation.timestamp:.0f}s, "
            f"using {self.fallback.name}: {error}"
        )
        return self.fallback.decide(observation).with_fallback(error)
    
    def _validate_decision(self, observation: Observation, decision: DispatchDecision) -> None:
        """Reject non-finite or unbalanced decisions."""
        if not (math.isfinite(decision.battery_action) and math.isfinite(decision.grid_action)):
            raise PolicyEvaluationError("Decision contains non-finite power values")
        
        residual = power_balance_residual(observation, decision)
        if abs(residual) > self.balance_tolerance:
            raise PolicyEvaluationError(f"Decision violates power balance by {residual:.6f} kW")
    
    def get_performance_stats(self) -> Dict[str, Any]:
        """Get fallback statistics."""
        return {
            "evaluations": self._evaluation_count,
            "fallbacks": self._fallback_count,
            "fallback_rate": self._fallback_count / max(1, self._evaluation_count),
            "last_error": self._last_error,
            "primary": self.primary.get_metadata(),
            "fallback": self.fallback.get_metadata()
        }
    
    def get_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": "fallback",
            "primary": self.primary.name,
            "fallback": self.fallback.name
        }
