"""Example domain tools for the consultant chat service."""

from .equipment_tool import create_equipment_module
from .sensor_tool import create_sensor_module

__all__ = ["create_equipment_module", "create_sensor_module"]
