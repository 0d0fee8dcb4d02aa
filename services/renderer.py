"""Per-recipient newsletter HTML rendering."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, select_autoescape

from models import ContentItem

DEFAULT_TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "templates" / "newsletter.html"


class RenderError(RuntimeError):
    """Raised when the newsletter template cannot be rendered."""


class NewsletterRenderer:
    """Render a recipient's selected items via Jinja template."""

    def __init__(self, template_path: Path = DEFAULT_TEMPLATE_PATH) -> None:
        self._template_path = template_path
        self._environment = Environment(
            loader=FileSystemLoader(str(template_path.parent)),
            autoescape=select_autoescape(enabled_extensions=("html", "xml")),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, *, name: str, length: int, items: Sequence[ContentItem]) -> str:
        """Render the message body for one recipient."""
        if not items:
            raise RenderError("Cannot render a newsletter without items")
        try:
            template = self._environment.get_template(self._template_path.name)
            return template.render(name=name, length=length, items=list(items))
        except TemplateError as exc:
            raise RenderError(f"Template {self._template_path.name} failed: {exc}") from exc
