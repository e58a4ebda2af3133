"""artgraph: entity resolution and golden records for the art-gallery graph."""

__version__ = "0.1.0"
