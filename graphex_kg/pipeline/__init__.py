"""
Graph Pipeline

Modules:
    graph_pipeline: GraphPipeline (chunk, generate, merge, render)
    progress: ProgressChannel and CallbackProgressSink
    fallback: Heading-derived graph used when generation fails
"""

from graphex_kg.pipeline.graph_pipeline import GraphPipeline
from graphex_kg.pipeline.progress import CallbackProgressSink, ProgressChannel, ProgressSink

__all__ = ["GraphPipeline", "ProgressChannel", "CallbackProgressSink", "ProgressSink"]
