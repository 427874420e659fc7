from .config import Settings as Settings
from .exceptions import BatchStreamError as BatchStreamError
from .models import CallDescriptor as CallDescriptor
from .models import DecodeErrorResult as DecodeErrorResult
from .pipeline import BatchPipeline as BatchPipeline
from .rate_limiter import RateLimiter as RateLimiter

__all__ = [
    "BatchPipeline",
    "BatchStreamError",
    "CallDescriptor",
    "DecodeErrorResult",
    "RateLimiter",
    "Settings",
]
