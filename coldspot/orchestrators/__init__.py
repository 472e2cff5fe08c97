"""In-process pipeline orchestration.

Runs the three stages in order:
1. Prepare layers → crop, align, distance rasters
2. Classify cold spots → criteria, polygons
3. Make figure → two-panel map
"""
