"""Golden record aggregation and materialization."""

from artgraph.golden.materializer import GoldenMaterializer

__all__ = ["GoldenMaterializer"]
