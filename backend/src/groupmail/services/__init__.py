"""Inbound pipeline services.

Each stage of the pipeline is a small service over the repositories; the
InboundEmailPipeline orchestrates them inside one transaction.
"""

from .pipeline import InboundEmailPipeline, PipelineResult

__all__ = ["InboundEmailPipeline", "PipelineResult"]
