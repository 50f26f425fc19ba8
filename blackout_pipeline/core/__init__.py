"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named defaults (threshold, buffer, CRS, region vertices)
- exceptions: Custom exception hierarchy
- geometry: Shared CRS and geometry helpers
"""
