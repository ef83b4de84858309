"""Loyalty service exports."""

from .points_service import (  # noqa: F401
    GATEWAY_PURCHASE_DESCRIPTION,
    PointsAllocation,
    PointsService,
    PurchasePlan,
    PurchaseResult,
    compute_points_split,
)
from rewards_api.domain.slabs import (  # noqa: F401
    DEFAULT_CATEGORY_KEY,
    LoyaltySlab,
    SlabResolver,
    normalize_slabs,
    points_for_amount,
    slab_category_key,
)
