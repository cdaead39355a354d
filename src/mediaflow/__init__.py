"""
mediaflow - node-graph workflows over text, images and video.

This package provides:
- graph: node/edge model, GraphStore and undo/redo history
- runtime: order resolution and async execution of runs
- storage: sanitizing persistence and the SQL repository
- api / cli: HTTP and command-line surfaces
"""

__version__ = "0.1.0"
