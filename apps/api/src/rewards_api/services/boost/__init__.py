"""Merchant boost exports."""

from .boost_service import BoostService, compute_boost_credit  # noqa: F401
