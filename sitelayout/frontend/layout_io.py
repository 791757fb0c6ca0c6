"""Save and load sites as PNG (with embedded metadata) or JSON.

The primary export format is PNG: a top-down preview of the site is saved
with the full site JSON embedded in a PNG tEXt chunk (key:
``sitelayout_site``). A saved file is both a shareable image and a
complete, machine-readable site that can be loaded back into the editor.
JSON files are also supported as a plain-text alternative.

``SiteFileStore`` adapts the JSON format to the ``SiteStore`` protocol so a
directory of site files can back a ``SiteRepository``.
"""

import json
import logging
from pathlib import Path

from PIL import Image
from PIL.PngImagePlugin import PngInfo

from ..engine.persistence import SiteData
from .preview import render_site_preview

logger = logging.getLogger(__name__)

METADATA_KEY = "sitelayout_site"


def save_site_png(
    site: SiteData, path: str, img: Image.Image | None = None
) -> None:
    """Save a site preview with the site JSON embedded as a PNG tEXt chunk.

    Renders a default preview when ``img`` is not given.
    """
    if img is None:
        img = render_site_preview(site)
    info = PngInfo()
    info.add_text(METADATA_KEY, json.dumps(site.to_dict()))
    img.save(path, pnginfo=info)


def load_site_png(path: str) -> SiteData:
    """Load a site from a PNG file's tEXt metadata.

    Raises ValueError if the PNG does not contain site metadata.
    """
    with Image.open(path) as img:
        text_data = getattr(img, "text", None)
        if not text_data or METADATA_KEY not in text_data:
            raise ValueError(
                f"PNG file does not contain site metadata "
                f"(missing '{METADATA_KEY}' chunk)"
            )
        return SiteData.from_dict(json.loads(text_data[METADATA_KEY]))


def save_site_json(site: SiteData, path: str) -> None:
    with open(path, "w") as f:
        json.dump(site.to_dict(), f, indent=2)
        f.write("\n")


def load_site_json(path: str) -> SiteData:
    """Load a site from a JSON file."""
    with open(path) as f:
        return SiteData.from_dict(json.load(f))


def load_site(path: str) -> SiteData:
    """Load a site from a file, dispatching by extension.

    Supports .png (reads embedded metadata) and .json (reads raw JSON).
    Raises ValueError for unsupported extensions.
    """
    lower = path.lower()
    if lower.endswith(".png"):
        return load_site_png(path)
    elif lower.endswith(".json"):
        return load_site_json(path)
    else:
        raise ValueError(f"Unsupported file extension: {path}")


class SiteFileStore:
    """A ``SiteStore`` keeping one ``<site_id>.json`` document per site."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, site_id: str) -> Path:
        return self.directory / f"{site_id}.json"

    def update_site(
        self, site_id: str, project_id: str, partial: dict
    ) -> None:
        path = self._path(site_id)
        if path.exists():
            with open(path) as f:
                doc = json.load(f)
        else:
            doc = {"id": site_id, "project_id": project_id}
        doc.update(partial)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(doc, f, indent=2)
            f.write("\n")
        tmp.replace(path)
        logger.debug(f"Wrote {sorted(partial)} to {path}")

    def load_site(self, project_id: str) -> dict | None:
        if not self.directory.is_dir():
            return None
        for path in sorted(self.directory.glob("*.json")):
            with open(path) as f:
                doc = json.load(f)
            if doc.get("project_id") == project_id:
                return doc
        return None
