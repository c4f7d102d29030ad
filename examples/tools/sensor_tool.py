"""Sensor Reading Analysis Tool for the consultant chat service.

Meters report cumulative totals (the value on the dial since installation).
Consumption over a period is therefore the difference between readings, not
the readings themselves.

Public Interface:
    - SENSOR_TOOLS: Tool definitions advertised to the model
    - analyze_readings(): Compute consumption statistics
    - create_sensor_module(): Build the ToolModule for the registry

Examples:
    >>> analyze_readings([
    ...     {"timestamp": "2025-01-01T00:00:00", "value": 100.0},
    ...     {"timestamp": "2025-01-01T01:00:00", "value": 102.5},
    ...     {"timestamp": "2025-01-01T02:00:00", "value": 104.0},
    ... ])["total"]
    4.0
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Final, List, Optional

from consultant.core.registry import ToolModule
from consultant.core.types import InputSchema, ToolDefinition

DEFAULT_SPIKE_FACTOR: Final[float] = 3.0
PRECISION: Final[int] = 4


class SensorAnalysisError(Exception):
    """Raised when readings cannot be analysed."""
    pass


@dataclass(frozen=True)
class Reading:
    """One meter reading."""
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class Anomaly:
    """An interval whose consumption looks wrong.

    Attributes:
        start: Timestamp of the earlier reading
        end: Timestamp of the later reading
        consumption: Consumption over the interval
        reason: Why the interval was flagged
    """
    start: str
    end: str
    consumption: float
    reason: str


SENSOR_TOOLS: Final[List[ToolDefinition]] = [
    ToolDefinition(
        name="analyze_sensor_readings",
        description=(
            "Analyse cumulative meter readings and compute consumption statistics: "
            "total, average, minimum and maximum consumption per interval, and "
            "intervals with anomalous consumption. Use this to answer how much was "
            "consumed, not to show the raw readings."
        ),
        input_schema=InputSchema(
            properties={
                "readings": {
                    "type": "array",
                    "description": "Meter readings, each with an ISO 8601 timestamp and a value",
                    "items": {
                        "type": "object",
                        "properties": {
                            "timestamp": {"type": "string", "description": "ISO 8601 timestamp"},
                            "value": {"type": "number", "description": "Cumulative meter value"}
                        },
                        "required": ["timestamp", "value"]
                    }
                },
                "device_name": {
                    "type": "string",
                    "description": "Name of the metering device, echoed in the result"
                },
                "spike_factor": {
                    "type": "number",
                    "description": (
                        "Intervals consuming more than this multiple of the average "
                        f"are flagged (default {DEFAULT_SPIKE_FACTOR})"
                    )
                }
            },
            required=["readings"]
        )
    ),
]


def _parse_readings(raw_readings: Any) -> List[Reading]:
    if not isinstance(raw_readings, list):
        raise SensorAnalysisError("readings must be a list")

    readings = []
    for index, item in enumerate(raw_readings):
        try:
            readings.append(Reading(
                timestamp=datetime.fromisoformat(str(item["timestamp"])),
                value=float(item["value"])
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise SensorAnalysisError(f"Invalid reading at position {index}: {e}") from e

    if len({reading.timestamp.tzinfo is None for reading in readings}) > 1:
        raise SensorAnalysisError("Timestamps must either all carry a timezone offset or none")

    readings.sort(key=lambda reading: reading.timestamp)
    return readings


def analyze_readings(
    raw_readings: Any,
    device_name: Optional[str] = None,
    spike_factor: float = DEFAULT_SPIKE_FACTOR
) -> Dict[str, Any]:
    """Compute consumption statistics from cumulative readings.

    Readings are sorted by timestamp first. Each pair of consecutive
    readings forms an interval. A negative interval usually means the meter
    was replaced or the data is wrong; an interval above ``spike_factor``
    times the average is flagged as a spike.

    Args:
        raw_readings: List of ``{"timestamp": str, "value": number}``
        device_name: Optional device name echoed in the result
        spike_factor: Multiple of the average that counts as a spike

    Returns:
        Statistics dictionary with ``total``, ``average``, ``min``, ``max``,
        ``anomalies`` and the analysed period

    Raises:
        SensorAnalysisError: If fewer than two valid readings are supplied
    """
    readings = _parse_readings(raw_readings)
    if len(readings) < 2:
        raise SensorAnalysisError("At least two readings are required to compute consumption")
    if spike_factor <= 0:
        raise SensorAnalysisError("spike_factor must be positive")

    intervals = [
        (earlier, later, round(later.value - earlier.value, PRECISION))
        for earlier, later in zip(readings, readings[1:])
    ]
    consumptions = [consumption for _, _, consumption in intervals]
    total = round(readings[-1].value - readings[0].value, PRECISION)
    average = round(total / len(intervals), PRECISION)

    anomalies = []
    for earlier, later, consumption in intervals:
        if consumption < 0:
            reason = "Negative consumption, the meter may have been replaced or the data is wrong"
        elif average > 0 and consumption > spike_factor * average:
            reason = f"Consumption is more than {spike_factor:g}x the average"
        else:
            continue
        anomalies.append(asdict(Anomaly(
            start=earlier.timestamp.isoformat(),
            end=later.timestamp.isoformat(),
            consumption=consumption,
            reason=reason
        )))

    hours = (readings[-1].timestamp - readings[0].timestamp).total_seconds() / 3600

    return {
        "device_name": device_name,
        "period_start": readings[0].timestamp.isoformat(),
        "period_end": readings[-1].timestamp.isoformat(),
        "readings_count": len(readings),
        "total": total,
        "average": average,
        "min": min(consumptions),
        "max": max(consumptions),
        "avg_hourly": round(total / hours, PRECISION) if hours > 0 else None,
        "anomalies": anomalies,
    }


def sensor_handler(name: str, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    """Handle analyze_sensor_readings calls.

    Raises:
        SensorAnalysisError: If the input cannot be analysed
    """
    if name != "analyze_sensor_readings":
        raise SensorAnalysisError(f"Unknown sensor tool: {name}")

    spike_factor = tool_input.get("spike_factor", DEFAULT_SPIKE_FACTOR)
    try:
        spike_factor = float(spike_factor)
    except (TypeError, ValueError) as e:
        raise SensorAnalysisError(f"Invalid spike_factor: {spike_factor!r}") from e

    return analyze_readings(
        tool_input.get("readings"),
        device_name=tool_input.get("device_name"),
        spike_factor=spike_factor
    )


def create_sensor_module() -> ToolModule:
    return ToolModule(
        name="sensor",
        definitions=SENSOR_TOOLS,
        executors={"analyze_sensor_readings": sensor_handler}
    )
