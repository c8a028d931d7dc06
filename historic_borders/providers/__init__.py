"""Upstream data providers.

- base: DatasetSource abstract base class
- github: Boundary datasets hosted on GitHub
- descriptions: Entity description providers (Wikipedia)
"""
