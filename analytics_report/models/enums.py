"""
Enumeration definitions for the metric report backend.

All enums inherit from both `str` and `Enum` so report frames can carry the
plain string value while Pydantic models serialize them without extra work.
The values are part of the report contract: downstream consumers compare
against these exact strings.
"""

from enum import Enum


class Performance(str, Enum):
    """
    Observation metric compared with its category mean.

    'equal' is strict float equality and is expected to be rare.
    """
    ABOVE = "above"
    EQUAL = "equal"
    BELOW = "below"


class OutlierFlag(str, Enum):
    """
    Observation-level outlier flag: |metric - category_mean| > 2 x category_stddev.
    """
    OUTLIER = "Outlier"
    NORMAL = "Normal"


class AnomalyFlag(str, Enum):
    """
    Day-level anomaly flag: |daily_sum - rolling_avg| > 3 x rolling_stddev.
    """
    ANOMALY = "Anomaly"
    NORMAL = "Normal"


class TrendDirection(str, Enum):
    """
    Sign of the month-over-month delta of the monthly average.

    A null delta (first month of a category) is 'stable'.
    """
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class QuartileBand(str, Enum):
    """
    Position of the metric within its category quartiles.

    MEDIAN is an exact-match branch evaluated before the range checks.
    """
    MEDIAN = "Median"
    BOTTOM = "Bottom Quartile"
    LOWER_MIDDLE = "Lower Middle"
    UPPER_MIDDLE = "Upper Middle"
    TOP = "Top Quartile"


class SizeBand(str, Enum):
    """Metric size relative to the category interquartile range."""
    SMALL = "Small"
    MEDIUM = "Medium"
    LARGE = "Large"


class VolumeBand(str, Enum):
    """Number of observations recorded for the category on the observation's day."""
    HIGH = "High Volume"
    MEDIUM = "Medium Volume"
    LOW = "Low Volume"


class DeviationBand(str, Enum):
    """Absolute z-score band; INSUFFICIENT_DATA when the stddev is null or zero."""
    TYPICAL = "Typical"
    UNUSUAL = "Unusual"
    EXTREME = "Extreme"
    INSUFFICIENT_DATA = "Insufficient Data"


class AgeBand(str, Enum):
    """Observation age relative to the injected run timestamp."""
    RECENT = "Recent"
    CURRENT = "Current"
    AGED = "Aged"
    STALE = "Stale"


class ReportStatus(str, Enum):
    """
    Combined observation status.

    CRITICAL: outlier on an anomalous day; WARNING: either flag; OK: neither.
    """
    CRITICAL = "Critical"
    WARNING = "Warning"
    OK = "OK"


class WindowStatistic(str, Enum):
    """Statistic kinds accepted by the trailing window primitive."""
    MEAN = "mean"
    STD = "std"
    SUM = "sum"
    MIN = "min"
    MAX = "max"
    COUNT = "count"


class BucketGrain(str, Enum):
    """Time bucket granularities for roll-ups."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class SnapshotSource(str, Enum):
    """Where an observation snapshot is read from."""
    CSV = "csv"
    BIGQUERY = "bigquery"
    POSTGRES = "postgres"


class RiskBand(str, Enum):
    """
    Customer risk band for the risk report.

    UNKNOWN when no financial risk score exists for the customer.
    """
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    UNKNOWN = "Unknown"


class ContactStatus(str, Enum):
    """Share of a customer's contacts that have been verified."""
    VERIFIED = "Verified"
    PARTIAL = "Partially Verified"
    UNVERIFIED = "Unverified"
