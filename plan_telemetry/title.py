"""
Display helpers for plan nodes: span titles and visibility.
"""

from .plan import Kind, PlanNode, render_metadata_value

# shown in the operator prefix instead of the field list
_OPERATOR_KEYS = ("call_type", "iterator_type", "scan_type")
# never shown
_HIDDEN_KEYS = ("subquery_cluster_node",)


def _join_non_empty(sep: str, *parts) -> str:
    return sep.join(p for p in parts if p)


def _scan_type(node: PlanNode) -> str:
    scan_type = node.metadata_string("scan_type") or ""
    if scan_type.endswith("Scan"):
        scan_type = scan_type[: -len("Scan")]
    return scan_type


def format_title(node: PlanNode) -> str:
    """
    Render a node as e.g. "Table Scan (Table: Orders, scan_method: Row)".

    The operator part combines call_type, iterator_type, scan_type (minus
    its "Scan" suffix) and the display name. Remaining metadata is listed
    in parentheses, sorted, with scan_target labelled by its scan type.
    """
    scan_type = _scan_type(node)
    operator = _join_non_empty(
        " ",
        node.metadata_string("call_type"),
        node.metadata_string("iterator_type"),
        scan_type,
        node.display_name,
    )

    fields = []
    for key, value in node.metadata.items():
        if key in _OPERATOR_KEYS or key in _HIDDEN_KEYS:
            continue
        if key == "scan_target":
            fields.append(f"{scan_type}: {render_metadata_value(value)}")
        else:
            fields.append(f"{key}: {render_metadata_value(value)}")
    fields.sort()

    if not fields:
        return operator
    return _join_non_empty(" ", operator, f"({', '.join(fields)})")


def is_visible(node: PlanNode) -> bool:
    """Relational operators and subqueries get their own span."""
    return node.kind == Kind.RELATIONAL or node.display_name.endswith("Subquery")
