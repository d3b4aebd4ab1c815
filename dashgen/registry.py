from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import DashgenError
from .types import OutputType, Sublink

logger = logging.getLogger(__name__)


class UnknownRouteError(DashgenError, LookupError):
    code = "unknown_route"


@dataclass
class RouteContext:
    type: str
    topic: str
    original_topic: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_sublink(cls, sublink: Sublink) -> "RouteContext":
        context = dict(sublink.context)
        route_type = context.pop("type", None) or sublink.route.strip("/").split("/")[-1]
        topic = context.pop("topic", None) or sublink.label
        original = context.pop("originalTopic", None) or context.pop("parentTopic", None)
        return cls(type=str(route_type), topic=str(topic), original_topic=original, extra=context)


@dataclass
class RouteResult:
    title: str
    description: str
    chart_type: OutputType
    data: List[Dict[str, Any]] = field(default_factory=list)


RouteHandler = Callable[[RouteContext, Sequence[Any]], RouteResult]


class SublinkRegistry:
    """Maps a sublink's route type to the handler that builds the follow-up view.

    Built by the composition root and handed to the pipeline.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, RouteHandler] = {}

    def register(self, route_type: str, handler: RouteHandler) -> None:
        self._handlers[route_type] = handler

    def route_types(self) -> List[str]:
        return sorted(self._handlers)

    def resolve(self, sublink: Sublink, current_data: Optional[Sequence[Any]] = None) -> RouteResult:
        context = RouteContext.from_sublink(sublink)
        handler = self._handlers.get(context.type)
        if handler is None:
            raise UnknownRouteError(f"No handler registered for route type: {context.type}")
        analytics = sublink.context.get("analytics")
        tracking_id = analytics.get("trackingId") if isinstance(analytics, dict) else None
        logger.info(
            "Following sublink route=%s type=%s topic=%s tracking=%s",
            sublink.route,
            context.type,
            context.topic,
            tracking_id,
        )
        return handler(context, list(current_data or []))


def _overview(context: RouteContext, data: Sequence[Any]) -> RouteResult:
    points = (
        [
            {"label": "Total Items", "value": len(data), "category": "metric"},
            {"label": "Fields per Item", "value": len(data[0]) if isinstance(data[0], dict) else 1, "category": "metric"},
        ]
        if data
        else [{"label": context.topic, "value": 1}]
    )
    return RouteResult(
        title=f"{context.topic} - Overview",
        description=f"Comprehensive overview of {context.topic}",
        chart_type=OutputType.ANALYTICS_SUMMARY,
        data=points,
    )


def _numeric_points(data: Sequence[Any], limit: int) -> List[Dict[str, Any]]:
    points: List[Dict[str, Any]] = []
    for index, item in enumerate(data[:limit]):
        if isinstance(item, dict) and isinstance(item.get("value"), (int, float)):
            points.append({"label": item.get("label") or f"Point {index + 1}", "value": item["value"]})
        else:
            points.append({"label": f"Point {index + 1}", "value": index + 1})
    return points


def _analytics(context: RouteContext, data: Sequence[Any]) -> RouteResult:
    return RouteResult(
        title=f"{context.topic} - Analytics",
        description=f"Detailed analytics and metrics for {context.topic}",
        chart_type=OutputType.BAR_CHART,
        data=_numeric_points(data, 20) or [{"label": context.topic, "value": 1}],
    )


def _trends(context: RouteContext, data: Sequence[Any]) -> RouteResult:
    return RouteResult(
        title=f"{context.topic} - Trends",
        description=f"Trend analysis and patterns for {context.topic}",
        chart_type=OutputType.LINE_CHART,
        data=_numeric_points(data, 10) or [{"label": context.topic, "value": 1}],
    )


def _comparison(context: RouteContext, data: Sequence[Any]) -> RouteResult:
    return RouteResult(
        title=f"{context.topic} - Comparison",
        description=f"Comparative analysis of {context.topic}",
        chart_type=OutputType.RADAR_CHART,
        data=_numeric_points(data, 8) or [{"label": context.topic, "value": 1}],
    )


def _detail(context: RouteContext, data: Sequence[Any]) -> RouteResult:
    values = [item["value"] for item in data if isinstance(item, dict) and isinstance(item.get("value"), (int, float))]
    total = sum(values)
    return RouteResult(
        title=f"{context.topic} - Deep Dive",
        description=f"Detailed examination of {context.topic}",
        chart_type=OutputType.GAUGE_CHART,
        data=[{"label": context.topic, "value": total if values else 0}],
    )


def _related(context: RouteContext, data: Sequence[Any]) -> RouteResult:
    parent = context.original_topic or context.topic
    return RouteResult(
        title=f"Related to {parent}: {context.topic}",
        description=f"Explore {context.topic} in relation to {parent}",
        chart_type=OutputType.TREEMAP,
        data=_numeric_points(data, 12) or [{"label": context.topic, "value": 1, "category": parent}],
    )


def default_registry() -> SublinkRegistry:
    registry = SublinkRegistry()
    registry.register("overview", _overview)
    registry.register("analytics", _analytics)
    registry.register("trends", _trends)
    registry.register("comparison", _comparison)
    registry.register("detail", _detail)
    registry.register("related", _related)
    return registry
