"""Per-step diagnostic events recorded in the simulation trajectory."""

from enum import Enum
from typing import Dict, Any, Optional
from dataclasses import dataclass

class EventType(str, Enum):
    """Types of step diagnostics."""
    # Battery limit events
    CHARGE_TRUNCATED = "charge_truncated"
    DISCHARGE_TRUNCATED = "discharge_truncated"
    
    # Policy events
    POLICY_FALLBACK = "policy_fallback"
    
    # Grid events
    GRID_UNAVAILABLE = "grid_unavailable"

@dataclass(frozen=True)
class StepEvent:
    """Base event class."""
    type: EventType
    timestamp: float  # seconds since simulation start
    details: Optional[Dict[str, Any]] = None

@dataclass(frozen=True)
class TruncationEvent(StepEvent):
    """Battery request cut back by a rate or headroom limit."""
    requested_kw: float = 0.0
    realized_kw: float = 0.0
    limit: Optional[str] = None

@dataclass(frozen=True)
class FallbackEvent(StepEvent):
    """Learned policy replaced by the rule policy for one step."""
    policy: str = ""
    error: str = ""
