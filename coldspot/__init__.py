"""Cold-spot identification for marine non-indigenous species management.

Turns an ensemble suitability raster plus protected-area, offshore wind
farm and coastline layers into prioritised "cold spot" polygons for
ballast-water management, and renders a two-panel comparison figure.
"""

__version__ = "0.1.0"
