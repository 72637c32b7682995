"""
=============================================================================
HTML TEMPLATES
=============================================================================

The HTML pages ship as package data (diagserver/html/*.html) and are
loaded once at startup. A template that cannot be read or parsed stops
the process before it starts serving (exit code 4), instead of failing
on the first request.

Templates use string.Template placeholders ($title, ${rows}). Every
value is HTML-escaped on substitution unless it is wrapped in Safe, which
marks markup that was built from already-escaped parts:

    templates.render("root.html", title="<Diag>")     → &lt;Diag&gt;
    templates.render("headers.html", rows=Safe(rows)) → rows as-is

=============================================================================
"""

import html
import string
from importlib import resources
from pathlib import Path
from typing import Dict, List, Optional, Union


MSG_TEMPLATE_ERROR = (
    "Sorry, the server was unable to display this page. "
    "Please contact the administrator."
)

TEMPLATE_SUFFIX = ".html"


class TemplateError(Exception):
    """Raised when templates cannot be loaded or a page cannot be rendered."""


class Safe(str):
    """A string that is already valid HTML and must not be escaped again."""


def escape(value) -> str:
    """HTML-escape *value* unless it is Safe."""
    if isinstance(value, Safe):
        return value
    return html.escape(str(value), quote=True)


class Templates:
    """
    A set of named templates.

    Usage:
        templates = Templates.load()
        page = templates.render("root.html", title="Diagnostic Web Server")
    """

    def __init__(self, sources: Dict[str, string.Template]):
        self._templates = dict(sources)

    @classmethod
    def load(cls, directory: Optional[Union[str, Path]] = None) -> "Templates":
        """
        Load every *.html file in *directory* (the packaged templates by default).

        Raises:
            TemplateError: If the directory cannot be read, holds no
                templates, or a template has an invalid placeholder.
        """
        if directory is None:
            source = resources.files("diagserver") / "html"
        else:
            source = Path(directory)

        sources: Dict[str, string.Template] = {}
        try:
            for entry in source.iterdir():
                if not entry.name.endswith(TEMPLATE_SUFFIX):
                    continue
                template = string.Template(entry.read_text(encoding="utf-8"))
                _check_placeholders(entry.name, template)
                sources[entry.name] = template
        except (OSError, UnicodeDecodeError) as e:
            raise TemplateError(f"load templates: {e}") from e

        if not sources:
            raise TemplateError(f"load templates: no {TEMPLATE_SUFFIX} files in {source}")

        return cls(sources)

    def names(self) -> List[str]:
        return sorted(self._templates)

    def render(self, name: str, **data) -> str:
        """
        Render template *name* with *data*, escaping non-Safe values.

        Raises:
            TemplateError: Unknown template or missing placeholder value.
        """
        template = self._templates.get(name)
        if template is None:
            raise TemplateError(f"no such template: {name}")

        try:
            return template.substitute({key: escape(value) for key, value in data.items()})
        except (KeyError, ValueError) as e:
            raise TemplateError(f"render {name}: missing or invalid value {e}") from e


def _check_placeholders(name: str, template: string.Template):
    # Same test as string.Template.is_valid(), which needs Python 3.11
    for match in template.pattern.finditer(template.template):
        if match.group("invalid") is not None:
            raise TemplateError(f"{name}: invalid placeholder at offset {match.start('invalid')}")
