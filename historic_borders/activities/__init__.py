"""Processing activities.

- palette: Deterministic entity colors
- decompose: MultiPolygon → per-part polygons with geodesic area
- place_labels: One label anchor per entity
- filter_gazetteer: Places inhabited in a given year
"""
