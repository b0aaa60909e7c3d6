"""
lmevals - Run a prompt against many models, watch the scores stream in.

Submit a prompt and a rubric, run every selected model N times, and keep a
live per-model view of trials, scores and answers as results arrive.
"""

from lmevals.aggregator import ResultAggregator
from lmevals.client import LmevalsClient, get_client
from lmevals.controller import RunController
from lmevals.stream import StreamRunner, parse_event

__version__ = "0.1.0"
__all__ = [
    "LmevalsClient",
    "ResultAggregator",
    "RunController",
    "StreamRunner",
    "__version__",
    "get_client",
    "parse_event",
]
