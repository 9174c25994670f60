"""
view_flame.py

Render a stored plan trace as a collapsible tree in the terminal using
Rich, with human-friendly time units.
"""

from rich.markup import escape
from rich.tree import Tree


def format_time(us: int) -> str:
    """Convert microseconds to a human-friendly string."""
    if us >= 1_000_000:
        return f"{us / 1_000_000:.2f}s"
    elif us >= 1_000:
        return f"{us / 1_000:.2f}ms"
    else:
        return f"{us}μs"


def build_tree(spans: dict) -> list:
    """
    Nest spans (as returned by speedscope.load_spans) under their parents.
    Each node is {'name', 'start', '_time', 'children'}; returns the roots.
    """
    nodes = {
        sid: {"name": info["name"], "start": info["start"], "_time": max(info["end"] - info["start"], 0), "children": []}
        for sid, info in spans.items()
    }
    roots = []
    for sid, info in spans.items():
        parent = nodes.get(info["parent"])
        if parent is None:
            roots.append(nodes[sid])
        else:
            parent["children"].append(nodes[sid])
    for node in nodes.values():
        # plan span names start with a zero-padded index, so this keeps plan order
        node["children"].sort(key=lambda child: (child["start"], child["name"]))
    roots.sort(key=lambda root: (root["start"], root["name"]))
    return roots


def render(node: dict, tree: Tree, total_time: int) -> None:
    for child in node["children"]:
        dur = child["_time"]
        pct = dur / total_time * 100 if total_time else 0.0
        branch = tree.add(f"[bold]{escape(child['name'])}[/] • {format_time(dur)} ({pct:.1f}%)")
        render(child, branch, total_time)


def render_trace(spans: dict, label: str = "trace") -> Tree:
    """Build a Rich tree for a whole trace; percentages are of the longest root."""
    roots = build_tree(spans)
    total = max((root["_time"] for root in roots), default=0)
    tree = Tree(f"[b]{escape(label)}[/] • {format_time(total)} (100%)")
    render({"children": roots}, tree, total)
    return tree
