import csv
import io
import json

from pak_explorer.core.graph import DependencyGraph

EXPORT_FORMATS = ("json", "dot", "csv")


def _dot_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _to_json(graph: DependencyGraph) -> str:
    payload = {
        "nodes": list(graph.nodes),
        "edges": [{"source": e.source, "target": e.target} for e in graph.edges],
        "unresolved": graph.unresolved,
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _to_dot(graph: DependencyGraph) -> str:
    lines = [
        "digraph AssetDependencies {",
        "    rankdir=LR;",
        "    node [shape=box, style=rounded];",
        "",
    ]
    for node in graph.nodes:
        lines.append(f"    {_dot_quote(node)};")
    for node in graph.unresolved:
        lines.append(f"    {_dot_quote(node)} [style=dashed];")
    lines.append("")
    for edge in graph.edges:
        attrs = " [style=dashed]" if graph.is_external(edge.target) else ""
        lines.append(f"    {_dot_quote(edge.source)} -> {_dot_quote(edge.target)}{attrs};")
    lines.append("}")
    return "\n".join(lines) + "\n"


def _to_csv(graph: DependencyGraph) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["source", "target"])
    for edge in graph.edges:
        writer.writerow([edge.source, edge.target])
    return buffer.getvalue()


_EXPORTERS = {"json": _to_json, "dot": _to_dot, "csv": _to_csv}


def export_graph(graph: DependencyGraph, fmt: str) -> str:
    exporter = _EXPORTERS.get(fmt.strip().lower())
    if exporter is None:
        raise ValueError(f"Unsupported export format '{fmt}'. Supported: {list(EXPORT_FORMATS)}")
    return exporter(graph)
