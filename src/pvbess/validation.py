"""Validation utilities for simulator inputs."""

from typing import Any, Optional, Sequence, Union, Type, Tuple

import numpy as np

from .exceptions import InputValidationError

class Validator:
    """Base validator class."""
    
    @staticmethod
    def validate_type(value: Any, expected_type: Union[Type, Tuple[Type, ...]]) -> None:
        """Validate value type."""
        if not isinstance(value, expected_type):
            name = getattr(expected_type, "__name__", str(expected_type))
            raise InputValidationError(
                f"Expected type {name}, got {type(value).__name__}"
            )

    @staticmethod
    def validate_range(
        value: Union[int, float],
        min_value: Optional[Union[int, float]] = None,
        max_value: Optional[Union[int, float]] = None
    ) -> None:
        """Validate numeric range."""
        if min_value is not None and value < min_value:
            raise InputValidationError(f"Value {value} is below minimum {min_value}")
        
        if max_value is not None and value > max_value:
            raise InputValidationError(f"Value {value} exceeds maximum {max_value}")

    @staticmethod
    def validate_finite(value: float, name: str = "value") -> None:
        """Validate that a scalar is a finite number."""
        if not np.isfinite(value):
            raise InputValidationError(f"{name} must be finite, got {value}")

class SignalValidator(Validator):
    """Validator for time-aligned signal sequences."""
    
    @staticmethod
    def validate_series(
        name: str,
        values: np.ndarray,
        min_value: Optional[float] = 0.0,
        allow_nan: Optional[np.ndarray] = None
    ) -> None:
        """Reject non-finite samples and samples below ``min_value``.

        ``allow_nan`` is an optional boolean mask of positions where NaN is an
        accepted "unavailable" flag rather than a malformed value.
        """
        values = np.asarray(values, dtype=float)
        bad = ~np.isfinite(values)
        if allow_nan is not None:
            bad &= ~(np.isnan(values) & np.asarray(allow_nan, dtype=bool))
        if bad.any():
            index = int(np.flatnonzero(bad)[0])
            raise InputValidationError(
                f"{name} has non-finite value {values[index]} at step {index}"
            )
        
        if min_value is not None:
            finite = np.isfinite(values)
            below = finite & (values < min_value)
            if below.any():
                index = int(np.flatnonzero(below)[0])
                raise InputValidationError(
                    f"{name} value {values[index]} at step {index} is below minimum {min_value}"
                )
    
    @staticmethod
    def validate_lengths(**series: Sequence) -> int:
        """Validate that all series share one non-zero length and return it."""
        lengths = {name: len(values) for name, values in series.items()}
        unique = set(lengths.values())
        if len(unique) != 1:
            raise InputValidationError(f"Signal lengths differ: {lengths}")
        
        length = unique.pop()
        if length == 0:
            raise InputValidationError("Signals must contain at least one sample")
        return length
    
    @staticmethod
    def validate_time_grid(time: np.ndarray) -> None:
        """Validate a strictly increasing, finite time grid."""
        SignalValidator.validate_series("time", time, min_value=None)
        steps = np.diff(np.asarray(time, dtype=float))
        if (steps <= 0).any():
            index = int(np.flatnonzero(steps <= 0)[0]) + 1
            raise InputValidationError(
                f"Time grid must be strictly increasing (violated at step {index})"
            )
    
    @staticmethod
    def validate_dt_schedule(
        dt_schedule: np.ndarray,
        length: int,
        time: Optional[np.ndarray] = None
    ) -> None:
        """Validate per-step durations in seconds.

        When ``time`` is given, every interval but the last must equal the
        spacing of the grid; only the final held interval is free.
        """
        dt_schedule = np.asarray(dt_schedule, dtype=float)
        if dt_schedule.shape != (length,):
            raise InputValidationError(
                f"dt schedule must have {length} entries, got {dt_schedule.shape}"
            )
        SignalValidator.validate_series("dt_schedule", dt_schedule, min_value=None)
        if (dt_schedule <= 0).any():
            index = int(np.flatnonzero(dt_schedule <= 0)[0])
            raise InputValidationError(
                f"dt must be strictly positive, got {dt_schedule[index]} at step {index}"
            )
        
        if time is not None and length > 1:
            spacing = np.diff(np.asarray(time, dtype=float))
            mismatch = ~np.isclose(dt_schedule[:-1], spacing, rtol=1e-9, atol=1e-9)
            if mismatch.any():
                index = int(np.flatnonzero(mismatch)[0])
                raise InputValidationError(
                    f"dt {dt_schedule[index]} at step {index} does not match "
                    f"the time grid spacing {spacing[index]}"
                )
