"""RegKPI: drill-down analytics for regulatory timeliness KPIs."""

__version__ = "0.1.0"
