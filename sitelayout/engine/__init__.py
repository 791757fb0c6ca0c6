"""Placement engine: terrain, catalog, arbitration, placement and scene."""
