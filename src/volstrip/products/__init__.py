"""Interest rate option products."""
from .caps_floors import CapFloor, CapFloorType, CapletPeriod

__all__ = ["CapFloor", "CapFloorType", "CapletPeriod"]
