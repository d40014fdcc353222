"""
Template rendering for generated config files.

Templates live in ``wellwell/resources/templates`` and are rendered with
Jinja2. Undefined variables raise instead of rendering as empty text,
so a template and the context it is given cannot silently drift apart.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, select_autoescape

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "resources" / "templates"

template_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


class RenderError(Exception):
    """A template is missing or failed to render."""


def render_template(name: str, context: dict[str, Any]) -> str:
    """Render ``name`` with ``context``.

    Raises:
        RenderError: If the template is missing or rendering fails.
    """
    try:
        template = template_env.get_template(name)
        return template.render(**context)
    except TemplateError as e:
        logger.error("Rendering %s failed: %s", name, e)
        raise RenderError(f"Cannot render {name}: {e}") from e


def available_templates() -> list[str]:
    return sorted(template_env.list_templates(extensions=["j2"]))
