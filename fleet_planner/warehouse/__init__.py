from fleet_planner.warehouse.config import PlannerConfig, load_config
from fleet_planner.warehouse.context import WarehouseInfo
from fleet_planner.warehouse.coarse import CoarseAction, CoarseWarehouse, CoarseWord
from fleet_planner.warehouse.fine import CellType, FineAction, FineState, FineWarehouse, FineWord

__all__ = [
    "PlannerConfig",
    "load_config",
    "WarehouseInfo",
    "CoarseAction",
    "CoarseWarehouse",
    "CoarseWord",
    "CellType",
    "FineAction",
    "FineState",
    "FineWarehouse",
    "FineWord",
]
