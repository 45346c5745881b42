"""Time frames - granularities a date/timestamp dimension is expanded into."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from explore_compiler.adapters.dialect import SqlRenderer, SupportedDbtAdapter
from explore_compiler.domain.field import DimensionType
from explore_compiler.errors import ParseError

# Sentinel in meta.dimension.time_intervals that disables expansion
TIME_INTERVALS_OFF = "OFF"


class TimeFrames(str, Enum):
    """Truncation granularities."""

    RAW = "RAW"
    MILLISECOND = "MILLISECOND"
    SECOND = "SECOND"
    MINUTE = "MINUTE"
    HOUR = "HOUR"
    DAY = "DAY"
    WEEK = "WEEK"
    MONTH = "MONTH"
    QUARTER = "QUARTER"
    YEAR = "YEAR"


SUB_DAY_TIME_FRAMES = frozenset(
    {
        TimeFrames.MILLISECOND,
        TimeFrames.SECOND,
        TimeFrames.MINUTE,
        TimeFrames.HOUR,
    }
)


@dataclass(frozen=True)
class TimeFrameConfig:
    """How one time frame renders its SQL, label and resulting type."""

    frame: TimeFrames
    label: str

    def get_label(self) -> str:
        return self.label

    def get_sql(
        self,
        adapter_type: SupportedDbtAdapter,
        time_frame: TimeFrames,
        original_sql: str,
        dimension_type: DimensionType,
    ) -> str:
        if time_frame == TimeFrames.RAW:
            return original_sql
        return SqlRenderer(adapter_type).date_trunc(
            time_frame.value,
            original_sql,
            is_timestamp=dimension_type == DimensionType.TIMESTAMP,
        )

    def get_dimension_type(self, dimension_type: DimensionType) -> DimensionType:
        if self.frame == TimeFrames.RAW:
            return dimension_type
        if self.frame in SUB_DAY_TIME_FRAMES:
            return DimensionType.TIMESTAMP
        return DimensionType.DATE


TIME_FRAME_CONFIGS: dict[TimeFrames, TimeFrameConfig] = {
    TimeFrames.RAW: TimeFrameConfig(TimeFrames.RAW, "Raw"),
    TimeFrames.MILLISECOND: TimeFrameConfig(TimeFrames.MILLISECOND, "Millisecond"),
    TimeFrames.SECOND: TimeFrameConfig(TimeFrames.SECOND, "Second"),
    TimeFrames.MINUTE: TimeFrameConfig(TimeFrames.MINUTE, "Minute"),
    TimeFrames.HOUR: TimeFrameConfig(TimeFrames.HOUR, "Hour"),
    TimeFrames.DAY: TimeFrameConfig(TimeFrames.DAY, "Day"),
    TimeFrames.WEEK: TimeFrameConfig(TimeFrames.WEEK, "Week"),
    TimeFrames.MONTH: TimeFrameConfig(TimeFrames.MONTH, "Month"),
    TimeFrames.QUARTER: TimeFrameConfig(TimeFrames.QUARTER, "Quarter"),
    TimeFrames.YEAR: TimeFrameConfig(TimeFrames.YEAR, "Year"),
}

DEFAULT_TIME_FRAMES: dict[DimensionType, list[TimeFrames]] = {
    DimensionType.DATE: [
        TimeFrames.DAY,
        TimeFrames.WEEK,
        TimeFrames.MONTH,
        TimeFrames.YEAR,
    ],
    DimensionType.TIMESTAMP: [
        TimeFrames.RAW,
        TimeFrames.DAY,
        TimeFrames.WEEK,
        TimeFrames.MONTH,
        TimeFrames.YEAR,
    ],
}


def allowed_time_frames(dimension_type: DimensionType) -> list[TimeFrames]:
    """Time frames that make sense for a base type."""
    if dimension_type == DimensionType.TIMESTAMP:
        return list(TimeFrames)
    if dimension_type == DimensionType.DATE:
        return [t for t in TimeFrames if t not in SUB_DAY_TIME_FRAMES]
    return []


def get_default_time_frames(dimension_type: DimensionType) -> list[TimeFrames]:
    return list(DEFAULT_TIME_FRAMES.get(dimension_type, []))


def is_time_intervals_off(value: object) -> bool:
    return isinstance(value, str) and value.upper() == TIME_INTERVALS_OFF


def validate_time_frames(
    values: Iterable[str], dimension_type: DimensionType
) -> list[TimeFrames]:
    """
    Validate an explicit list of time intervals for a dimension type.

    Values are case-insensitive. Order is kept and duplicates dropped.

    Raises:
        ParseError: naming the first value that is unknown or not
            allowed for the dimension type
    """
    allowed = allowed_time_frames(dimension_type)
    frames: list[TimeFrames] = []
    for value in values:
        try:
            frame = TimeFrames(str(value).upper())
        except ValueError:
            raise ParseError(
                f'Invalid time interval "{value}". Valid intervals are: '
                f"{', '.join(t.value for t in allowed)}"
            )
        if frame not in allowed:
            raise ParseError(
                f'Time interval "{value}" is not valid for {dimension_type.value} '
                f"dimensions. Valid intervals are: "
                f"{', '.join(t.value for t in allowed)}"
            )
        if frame not in frames:
            frames.append(frame)
    return frames
