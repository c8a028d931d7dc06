"""Data models for the boundary pipeline.

- feature: Decomposed border parts and label points
- gazetteer: Place inhabitation intervals
- profile: Per-dataset interpretation rules
- payloads: HTTP response contracts and FeatureCollection validation
"""
