"""
Template lookup and variable substitution.

A template is a stored render configuration whose segment fields may contain
`$name` tokens. Resolving a template replaces every token with the value
supplied at render time, or with the template's declared default.
"""

import copy
import re
import threading
from typing import Any, Dict, List, Optional, Set

from exceptions import NotFound, ValidationError
from schemas import Template

VARIABLE_RE = re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*")


class TemplateStore:
    """Read-only template lookup consumed by request validation."""

    def get(self, template_id: str) -> Template:
        raise NotImplementedError

    def list(self) -> List[Template]:
        raise NotImplementedError


class InMemoryTemplateStore(TemplateStore):
    def __init__(self, templates=None):
        self._templates: Dict[str, Template] = {}
        self._lock = threading.Lock()
        for template in templates or ():
            self.add(template)

    def add(self, template) -> Template:
        if not isinstance(template, Template):
            template = Template.model_validate(template)
        with self._lock:
            self._templates[template.id] = template
        return template

    def get(self, template_id: str) -> Template:
        with self._lock:
            template = self._templates.get(template_id)
        if template is None:
            raise NotFound("template", template_id)
        return template.model_copy(deep=True)

    def list(self) -> List[Template]:
        with self._lock:
            return [template.model_copy(deep=True) for template in self._templates.values()]


def _normalize_key(name: str) -> str:
    return name if name.startswith("$") else f"${name}"


def find_variables(value: Any) -> Set[str]:
    """Collect every `$name` token referenced anywhere inside value."""
    found = set()
    if isinstance(value, str):
        found.update(VARIABLE_RE.findall(value))
    elif isinstance(value, dict):
        for item in value.values():
            found |= find_variables(item)
    elif isinstance(value, list):
        for item in value:
            found |= find_variables(item)
    return found


def _substitute(value: Any, values: Dict[str, Any]) -> Any:
    if isinstance(value, str):
        # a field that is exactly one token keeps the value's own type
        if value in values:
            return values[value]
        return VARIABLE_RE.sub(lambda match: str(values.get(match.group(0), match.group(0))), value)
    if isinstance(value, dict):
        return {key: _substitute(item, values) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute(item, values) for item in value]
    return value


def _expand_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve tokens inside the values themselves so one substitution pass is final."""
    expanded = {}

    def expand(name, chain):
        if name in expanded:
            return expanded[name]
        if name in chain:
            raise ValidationError(f"Template variable {name} refers to itself: {' -> '.join(chain + (name,))}")
        value = values[name]
        nested = {token for token in find_variables(value) if token in values}
        if nested:
            value = _substitute(value, {token: expand(token, chain + (name,)) for token in nested})
        expanded[name] = value
        return value

    for name in values:
        expand(name, ())
    return expanded


def substitute_variables(segments: List[Dict[str, Any]], values: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Replace variable tokens in every segment field. Tokens without a value are left as-is."""
    values = _expand_values({_normalize_key(key): value for key, value in values.items()})
    return _substitute(copy.deepcopy(segments), values)


def resolve_template(template: Template, supplied: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Return the template's segments with all variables substituted.

    Raises ValidationError naming every referenced variable that has neither a
    supplied value nor a default.
    """
    values = {}
    for name, variable in template.variables.items():
        if variable.default_value is not None:
            values[_normalize_key(name)] = variable.default_value
    for name, value in (supplied or {}).items():
        values[_normalize_key(name)] = value

    missing = sorted(find_variables(template.segments) - set(values))
    if missing:
        raise ValidationError(
            f"Missing value for template variable(s): {', '.join(missing)}"
        )
    return substitute_variables(template.segments, values)


BUILTIN_TEMPLATES = [
    {
        "id": "post_promocional",
        "name": "Post Promocional",
        "description": "Single promotional post with a headline over an image",
        "width": 1080,
        "height": 1080,
        "fps": 30,
        "segments": [
            {
                "kind": "image",
                "media_ref": "$image_1",
                "duration": 7,
                "text": "$text_1",
                "text_position": "center",
                "font_size": 60,
                "font_color": "#ffffff",
                "transition": "fadein",
            }
        ],
        "variables": {
            "$image_1": {
                "type": "image",
                "default_value": "https://images.unsplash.com/photo-1557804506-669a67965ba0?w=1080",
                "description": "Background image",
            },
            "$text_1": {
                "type": "text",
                "default_value": "PROMOÇÃO ESPECIAL\n50% OFF",
                "description": "Headline",
            },
        },
    },
    {
        "id": "slideshow_3",
        "name": "Slideshow 3 Imagens",
        "description": "Three captioned slides, three seconds each",
        "width": 1080,
        "height": 1080,
        "fps": 30,
        "segments": [
            {
                "kind": "image",
                "media_ref": f"$image_{n}",
                "duration": 3,
                "text": f"$text_{n}",
                "text_position": "center",
                "font_size": 50,
                "font_color": "#ffffff",
                "transition": "fadein",
            }
            for n in (1, 2, 3)
        ],
        "variables": {
            "$image_1": {"type": "image", "default_value": "https://images.unsplash.com/photo-1557804506-669a67965ba0?w=1080"},
            "$image_2": {"type": "image", "default_value": "https://images.unsplash.com/photo-1523275335684-37898b6baf30?w=1080"},
            "$image_3": {"type": "image", "default_value": "https://images.unsplash.com/photo-1526947425960-945c6e72858f?w=1080"},
            "$text_1": {"type": "text", "default_value": "Slide 1"},
            "$text_2": {"type": "text", "default_value": "Slide 2"},
            "$text_3": {"type": "text", "default_value": "Slide 3"},
        },
    },
]


def default_template_store() -> InMemoryTemplateStore:
    return InMemoryTemplateStore(BUILTIN_TEMPLATES)
