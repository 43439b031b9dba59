"""Heuristic engagement predictions."""

from .predictor import optimal_contact_time, predict

__all__ = ["optimal_contact_time", "predict"]
