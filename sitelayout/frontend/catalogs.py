"""Built-in element catalogs.

Pure data module with no UI dependencies, so it can be imported by headless
tools as well as an interactive editor. Catalogs are read once at import
from the JSON files under ``sitelayout/catalogs/builtin/``.

Provides:
  - ENVIRONMENT_CATALOG: typed ``ElementCatalog`` with the environmental
    elements (large tree, security fence, transformer, parking area). Its
    ``icons`` map template ids to library-panel icon names.
"""

from ..engine.catalog import ElementCatalog

ENVIRONMENT_CATALOG = ElementCatalog.builtin("environment")
