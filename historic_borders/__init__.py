"""Historic Borders boundary pipeline.

Serverless HTTP service that fetches historical boundary datasets,
splits each political entity into colored polygon parts, places one
label per entity, and filters a places gazetteer to the requested year.
Large upstream files are streamed through a resilient Redis cache.
"""

__version__ = "0.1.0"
