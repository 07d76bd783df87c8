"""Warm introduction path discovery: enumerate, score, rank, enrich."""

from typing import Any

__all__ = ["find_intro_paths", "find_intro_paths_markdown"]


def find_intro_paths(*args: Any, **kwargs: Any) -> dict:
    from .pipeline import find_intro_paths as _find_intro_paths

    return _find_intro_paths(*args, **kwargs)


def find_intro_paths_markdown(*args: Any, **kwargs: Any) -> str:
    from .pipeline import find_intro_paths as _find_intro_paths
    from .renderer import render_paths_markdown

    return render_paths_markdown(_find_intro_paths(*args, **kwargs))
