"""Configuration store exports."""

from .config_service import (  # noqa: F401
    DEFAULT_BOOST_RULES,
    DEFAULT_COMMISSION_RULES,
    BoostRules,
    CommissionRules,
    ConfigurationService,
    PointsShares,
    clear_config_cache,
)
