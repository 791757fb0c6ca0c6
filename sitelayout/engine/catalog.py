"""Read-only registry of placeable element templates.

A catalog is loaded once per session (see ``frontend/catalogs.py`` for the
built-in one) and never mutated afterwards. Placed elements reference
templates by id only, so nothing here can retroactively change an element
that is already on the terrain.

Catalog files are JSON documents of the form::

    {"name": "Environment", "templates": [{"id": "tree-large", ...}]}

Built-in catalogs ship under ``sitelayout/catalogs/builtin/``. The optional
per-template ``icon`` is a library-panel hint only; it is kept in
``ElementCatalog.icons`` rather than on the typed template.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from .errors import NotFoundError
from .types import ElementTemplate, ElementType

logger = logging.getLogger(__name__)

# sitelayout/catalogs/ sits beside sitelayout/engine/
BUILTIN_DIR = Path(__file__).parent.parent / "catalogs" / "builtin"


class ElementCatalog:
    def __init__(
        self,
        templates: Iterable[ElementTemplate],
        name: str | None = None,
        icons: Mapping[str, str] | None = None,
    ) -> None:
        self.name = name
        self._templates: tuple[ElementTemplate, ...] = tuple(templates)
        self._by_id: dict[str, ElementTemplate] = {}
        for t in self._templates:
            if t.id in self._by_id:
                raise ValueError(f"Duplicate template id in catalog: {t.id}")
            self._by_id[t.id] = t
        self.icons: dict[str, str] = dict(icons or {})
        stray = set(self.icons) - set(self._by_id)
        if stray:
            raise ValueError(f"Icons for unknown templates: {sorted(stray)}")

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._by_id

    def list_templates(
        self,
        type: ElementType | str | None = None,
        category: str | None = None,
    ) -> list[ElementTemplate]:
        """Templates matching the filter, in declaration order."""
        wanted = ElementType(type) if type is not None else None
        return [
            t
            for t in self._templates
            if (wanted is None or t.type is wanted)
            and (category is None or t.category == category)
        ]

    def get_template(self, template_id: str) -> ElementTemplate:
        try:
            return self._by_id[template_id]
        except KeyError:
            raise NotFoundError(
                f"Unknown element template: {template_id!r}"
            ) from None

    @staticmethod
    def from_dict(d: dict) -> ElementCatalog:
        raw = d.get("templates", [])
        return ElementCatalog(
            (ElementTemplate.from_dict(t) for t in raw),
            name=d.get("name"),
            icons={t["id"]: t["icon"] for t in raw if t.get("icon")},
        )

    @staticmethod
    def load(path: str | Path) -> ElementCatalog:
        """Read a catalog JSON file."""
        with open(path) as f:
            catalog = ElementCatalog.from_dict(json.load(f))
        logger.info(f"Loaded {len(catalog)} element templates from {path}")
        return catalog

    @staticmethod
    def builtin(name: str) -> ElementCatalog:
        """Load ``sitelayout/catalogs/builtin/{name}.json``."""
        path = BUILTIN_DIR / f"{name}.json"
        if not path.exists():
            raise NotFoundError(f"No built-in catalog named {name!r}")
        return ElementCatalog.load(path)
