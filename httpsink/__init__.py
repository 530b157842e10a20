"""Batched HTTP delivery sink for data pipelines.

Library code lives in ``httpsink.lib``; ``python -m httpsink`` runs the
command-line sink.
"""

__version__ = "1.0.0"
