"""
Jinja environment used by operation builders to render step source.

Builder templates produce Python source. Configuration values are never
evaluated here; the ``py`` filter turns them into Python literals so that
``{{path}}`` placeholders survive untouched until run time.
"""

import re
from typing import Any

from jinja2 import BaseLoader, Environment, StrictUndefined


def py_literal(value: Any) -> str:
    """Render a JSON-like value as a Python literal."""
    return repr(value)


def identifier(value: Any) -> str:
    """Collapse arbitrary text into a safe Python identifier fragment."""
    cleaned = re.sub(r"[^0-9a-zA-Z_]+", "_", str(value)).strip("_").lower()
    if not cleaned:
        return "node"
    if cleaned[0].isdigit():
        cleaned = f"n{cleaned}"
    return cleaned


def doc_text(value: Any) -> str:
    """Text safe to place inside a generated comment or docstring."""
    return re.sub(r"[^0-9A-Za-z_.:@/ -]+", "_", " ".join(str(value).split()))


def _build_environment() -> Environment:
    env = Environment(
        loader=BaseLoader(),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
    )
    env.filters['py'] = py_literal
    env.filters['identifier'] = identifier
    env.filters['doc'] = doc_text
    return env


jinja_env = _build_environment()


def render_source(template: str, **context: Any) -> str:
    """Render builder template text with the shared environment."""
    return jinja_env.from_string(template).render(**context)
