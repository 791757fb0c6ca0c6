"""Top-down site preview rendered to a Pillow image.

The terrain height grid is drawn as a grayscale map (darker is lower) and
each placed element's footprint is outlined in a color picked by its
element type. Pixel ``(px, py)`` corresponds to world ``(x, z)`` scaled by
``pixels_per_unit``, with the terrain origin at the top-left corner.
"""

import numpy as np
from PIL import Image, ImageDraw

from ..engine.bounds import element_corners
from ..engine.catalog import ElementCatalog
from ..engine.persistence import SiteData
from ..engine.types import ElementType
from .catalogs import ENVIRONMENT_CATALOG

# -- Visual constants --

FLAT_GRAY = 128
GRAY_RANGE = (40, 215)  # lowest and highest terrain shades
DEFAULT_OUTLINE = "#FF00FF"
HIGHLIGHT_COLOR = "#FFD700"  # gold outline for the selected element
TYPE_COLORS = {
    ElementType.VEGETATION: "#2E8B57",
    ElementType.INFRASTRUCTURE: "#4682B4",
    ElementType.UTILITY: "#FF8C00",
    ElementType.HARDSCAPE: "#B22222",
}


def height_image(heights: np.ndarray, size: tuple[int, int]) -> Image.Image:
    """Grayscale image of a height grid, stretched to ``size``."""
    lo = float(heights.min())
    hi = float(heights.max())
    if hi > lo:
        dark, light = GRAY_RANGE
        gray = dark + (heights - lo) / (hi - lo) * (light - dark)
    else:
        gray = np.full(heights.shape, FLAT_GRAY, dtype=float)
    img = Image.fromarray(np.rint(gray).astype(np.uint8))
    return img.resize(size, Image.Resampling.BILINEAR).convert("RGB")


def render_site_preview(
    site: SiteData,
    pixels_per_unit: float = 10.0,
    catalog: ElementCatalog | None = None,
    highlight_id: str | None = None,
) -> Image.Image:
    """Render a top-down preview of a site.

    Raises ValueError if the site has no terrain or ``pixels_per_unit`` is
    not positive.
    """
    if site.terrain is None:
        raise ValueError(f"Site {site.id} has no terrain to render")
    if pixels_per_unit <= 0:
        raise ValueError(
            f"pixels_per_unit must be positive, got {pixels_per_unit}"
        )
    if catalog is None:
        catalog = ENVIRONMENT_CATALOG
    terrain = site.terrain
    w = max(1, int(round(terrain.width * pixels_per_unit)))
    h = max(1, int(round(terrain.depth * pixels_per_unit)))

    img = height_image(terrain.heights, (w, h))
    draw = ImageDraw.Draw(img)
    for element in site.elements:
        if element.template_id in catalog:
            kind = catalog.get_template(element.template_id).type
            outline = TYPE_COLORS.get(kind, DEFAULT_OUTLINE)
        else:
            outline = DEFAULT_OUTLINE
        if element.id == highlight_id:
            outline = HIGHLIGHT_COLOR
        px_corners = [
            (x * pixels_per_unit, z * pixels_per_unit)
            for x, z in element_corners(element)
        ]
        draw.polygon(px_corners, fill=None, outline=outline, width=2)
    return img
