"""
trajcore: Kepler orbits, sampling, floating-origin projection, SOI relevance and
maneuver prediction for a 2D orbit viewer.
"""
