"""Spatial placement and terrain engine for 3D site layouts."""
