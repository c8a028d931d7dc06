"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants, palette, cache key helper
- exceptions: Custom exception hierarchy
- cache: Resilient cache client (Redis)
- streaming: Streaming fetch-and-cache proxy
"""
