"""
Conversion of a query plan with execution statistics into a span tree.

Every visible plan node (see `title.is_visible`) becomes a span named
"<index>: [<link type>] <title>", timestamped with the execution window
Spanner reported for that node, or inherited from the closest ancestor
that reported one. Hidden nodes are walked through but get no span.
"""

import json
import logging
from typing import NamedTuple, Optional

from opentelemetry import trace

from .errors import MalformedPlan, MalformedTimestamp
from .plan import ChildLink, PlanNode, QueryPlan, ResultSetStats
from .timestamps import parse_fractional_timestamp
from .title import format_title, is_visible

logger = logging.getLogger(__name__)

TRACER_NAME = "plan_telemetry"

# link types whose scalar Function child is shown as an attribute of the parent
SPLIT_RANGE_LINK = "Split Range"
CONDITION_LINK_SUFFIX = "Condition"


class TimeWindow(NamedTuple):
    """Execution start and end in ns since the epoch; None when unknown."""

    start: Optional[int] = None
    end: Optional[int] = None

    def narrowed_to(self, node: PlanNode) -> "TimeWindow":
        summary = node.execution_summary()
        if summary is None:
            return self
        start = _summary_timestamp(node, summary, "execution_start_timestamp")
        end = _summary_timestamp(node, summary, "execution_end_timestamp")
        return TimeWindow(start or self.start, end or self.end)


def _summary_timestamp(node: PlanNode, summary: dict, key: str) -> int:
    raw = summary.get(key)
    if raw is None:
        return 0
    try:
        return parse_fractional_timestamp(raw)
    except MalformedTimestamp as exc:
        logger.debug("node %d: ignoring %s: %s", node.index, key, exc)
        return 0


def index_plan(plan: QueryPlan) -> dict[int, PlanNode]:
    """
    Map node index to node, checking that every child link points at an
    existing node and that no node is its own ancestor.
    """
    nodes = {}
    for node in plan.plan_nodes:
        if node.index in nodes:
            raise MalformedPlan(f"duplicate plan node index {node.index}")
        nodes[node.index] = node

    for node in nodes.values():
        for link in node.child_links:
            if link.child_index not in nodes:
                raise MalformedPlan(
                    f"node {node.index} links to missing child {link.child_index}"
                )

    if 0 in nodes:
        _check_acyclic(nodes)
    return nodes


def _check_acyclic(nodes: dict[int, PlanNode]) -> None:
    on_path = set()
    done = set()
    # iterative DFS; each frame is (node index, iterator over its child indices)
    stack = [(0, iter(link.child_index for link in nodes[0].child_links))]
    on_path.add(0)
    while stack:
        index, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            on_path.discard(index)
            done.add(index)
            continue
        if child in on_path:
            raise MalformedPlan(f"cycle in query plan through node {child}")
        if child not in done:
            on_path.add(child)
            stack.append((child, iter(link.child_index for link in nodes[child].child_links)))


def plan_window(plan: QueryPlan) -> TimeWindow:
    """The earliest start and latest end reported by any node of the plan."""
    starts, ends = [], []
    for node in plan.plan_nodes:
        window = TimeWindow().narrowed_to(node)
        if window.start is not None:
            starts.append(window.start)
        if window.end is not None:
            ends.append(window.end)
    return TimeWindow(min(starts, default=None), max(ends, default=None))


def max_visible_index(nodes: dict[int, PlanNode]) -> int:
    return max((index for index, node in nodes.items() if is_visible(node)), default=0)


def span_name(node: PlanNode, link: Optional[ChildLink], width: int) -> str:
    link_label = f"[{link.type}] " if link is not None and link.type else ""
    return f"{node.index:0{width}d}: {link_label}{format_title(node)}"


def _is_inlined_predicate(link: ChildLink, child: PlanNode) -> bool:
    return child.display_name == "Function" and (
        link.type == SPLIT_RANGE_LINK or link.type.endswith(CONDITION_LINK_SUFFIX)
    )


class _Visit(NamedTuple):
    node: PlanNode
    link: Optional[ChildLink]
    window: TimeWindow
    context: object
    parent_span: Optional[trace.Span]


class _EndSpan(NamedTuple):
    span: trace.Span
    end_time: Optional[int]


class _PlanWalker:
    """
    Depth-first walk with an explicit stack; plan depth is not limited by
    the recursion limit. A span is ended by the _EndSpan frame pushed
    below its children, i.e. after its whole subtree has been walked.
    """

    def __init__(self, tracer: trace.Tracer, nodes: dict[int, PlanNode]):
        self.tracer = tracer
        self.nodes = nodes
        self.width = len(str(max_visible_index(nodes)))

    def walk(self, root: PlanNode, context) -> None:
        stack = [_Visit(root, None, TimeWindow(), context, None)]
        try:
            while stack:
                frame = stack.pop()
                if isinstance(frame, _EndSpan):
                    frame.span.end(end_time=frame.end_time)
                else:
                    self._visit(frame, stack)
        finally:
            # spans still open when the walk fails; innermost first
            for frame in reversed(stack):
                if isinstance(frame, _EndSpan):
                    frame.span.end(end_time=frame.end_time)

    def _visit(self, frame: _Visit, stack: list) -> None:
        node, link, window, context, span = frame
        window = window.narrowed_to(node)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "node %d window=(%s, %s) stats=%s",
                node.index,
                window.start,
                window.end,
                json.dumps(node.execution_stats, sort_keys=True),
            )

        if is_visible(node):
            span = self.tracer.start_span(
                span_name(node, link, self.width),
                context=context,
                start_time=window.start,
            )
            stack.append(_EndSpan(span, window.end))
            span.set_attribute("index", node.index)
            context = trace.set_span_in_context(span, context)

        # hidden nodes put their inlined predicates on the nearest visible ancestor
        if span is not None:
            for link in node.child_links:
                child = self.nodes[link.child_index]
                if _is_inlined_predicate(link, child):
                    span.set_attribute(link.type, child.description)
        for link in reversed(node.child_links):
            stack.append(_Visit(self.nodes[link.child_index], link, window, context, span))


def emit(stats: Optional[ResultSetStats], context=None, tracer: Optional[trace.Tracer] = None) -> None:
    """
    Emit spans for the query plan in `stats` under `context` (the current
    context when None). Does nothing when there is no plan, and never
    raises: malformed plans are logged and skipped.
    """
    if stats is None or stats.query_plan is None:
        return
    try:
        nodes = index_plan(stats.query_plan)
    except MalformedPlan as exc:
        logger.warning("skipping malformed query plan: %s", exc)
        return
    if 0 not in nodes:
        return

    if tracer is None:
        tracer = trace.get_tracer(TRACER_NAME)
    try:
        _PlanWalker(tracer, nodes).walk(nodes[0], context)
    except Exception:
        logger.exception("failed to emit spans for query plan")
