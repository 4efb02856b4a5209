from .engine import TrustEngine, TrustResult
from .failed_login import FailedLoginTracker
from .ua_reputation import UAVerdict, UserAgentClassifier, UserAgentReputationCache

__all__ = [
    "TrustEngine",
    "TrustResult",
    "FailedLoginTracker",
    "UAVerdict",
    "UserAgentClassifier",
    "UserAgentReputationCache",
]
