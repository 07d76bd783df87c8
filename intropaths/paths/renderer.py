"""Deterministic markdown renderer for intro path responses."""

from .enricher import normalize_whitespace

_MAX_NAME_LEN = 80
_MAX_ID_LEN = 160


def _sanitize_field(value: str | None, *, max_len: int) -> str:
    cleaned = normalize_whitespace(value)
    if len(cleaned) <= max_len:
        return cleaned
    return cleaned[: max_len - 3].rstrip() + "..."


def _format_node(node: dict) -> str:
    name = _sanitize_field(node.get("display_name") or node.get("id"), max_len=_MAX_NAME_LEN)
    marker = " *" if node.get("is_internal") else ""
    return f"{name}{marker}"


def _format_path(index: int, path: dict) -> list[str]:
    nodes = path.get("nodes", [])
    kinds = path.get("connection_kinds", [])

    chain = _format_node(nodes[0]) if nodes else ""
    for i, node in enumerate(nodes[1:]):
        kind = kinds[i] if i < len(kinds) else "?"
        chain += f" -[{kind}]-> {_format_node(node)}"

    return [
        f"{index}. {chain}",
        f"   {path.get('description', '')} | score={path['quality_score']:.4f} | "
        f"strength={path['raw_strength']:.4f} | freshness={path['freshness']:.4f}",
    ]


def render_paths_markdown(response: dict) -> str:
    """Render a ``find_intro_paths`` response with a fixed section contract.

    Internal people are marked with ``*``.
    """
    target = response.get("target_node") or {"id": response.get("target", "")}
    meta = response.get("meta", {})
    paths = response.get("paths", [])

    target_id = _sanitize_field(target.get("id"), max_len=_MAX_ID_LEN)
    target_name = _sanitize_field(
        target.get("display_name") or target_id, max_len=_MAX_NAME_LEN
    )

    lines = ["## Target", f"- [{target_id}] {target_name} ({target.get('kind', 'unknown')})"]

    lines += ["", "## Introduction Paths"]
    if paths:
        for index, path in enumerate(paths, 1):
            lines.extend(_format_path(index, path))
    else:
        lines.append("- (none)")

    lines += [
        "",
        "## Meta",
        f"- reason={meta.get('reason', '')} | candidates={meta.get('total_candidates_considered', 0)} "
        f"| from_cache={meta.get('from_cache', False)} | truncated={meta.get('truncated', False)}",
        f"- calculated_at={meta.get('calculated_at', '')}",
    ]
    return "\n".join(lines)
