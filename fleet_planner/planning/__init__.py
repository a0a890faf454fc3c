"""Product construction and chaining.

Import the two-phase pipeline from `fleet_planner.planning.pipeline`.
"""

from fleet_planner.planning.product import ProductModel, build_product
from fleet_planner.planning.matrices import (
    ProductMatrices,
    available_actions,
    construct_sparse_and_rewards,
    proper_pairs,
    reward_fn,
)
from fleet_planner.planning.incremental import IncrementalModel, ModelBlock

__all__ = [
    "ProductModel",
    "build_product",
    "ProductMatrices",
    "available_actions",
    "construct_sparse_and_rewards",
    "proper_pairs",
    "reward_fn",
    "IncrementalModel",
    "ModelBlock",
]
