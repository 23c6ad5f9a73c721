"""Exceptions raised by the metric readers."""


class ServerStatsError(Exception):
    """Base class for all server-stats errors."""


class MetricUnavailable(ServerStatsError):
    """A data source for a metric could not be read."""

    def __init__(self, metric: str, reason: str = "") -> None:
        self.metric = metric
        self.reason = reason
        message = f"{metric} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ToolMissing(ServerStatsError):
    """An optional external utility is not installed."""

    def __init__(self, *tools: str) -> None:
        self.tools = tools
        super().__init__(f"none of {', '.join(tools)} found on PATH")
