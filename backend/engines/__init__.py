from engines.dispatcher import BatchDispatcher, BatchStream, DispatchOptions, SubmitFn
from engines.submit import HttpSubmitter

__all__ = [
    "BatchDispatcher",
    "BatchStream",
    "DispatchOptions",
    "SubmitFn",
    "HttpSubmitter",
]
