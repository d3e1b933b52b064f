"""Captcha handling module.

Challenges captured from the registry page are solved by an external service
through a submit/poll protocol.

Main components:
- ChallengeSolverClient: state machine driving one challenge to a terminal outcome
- TwoCaptchaService: aiohttp adapter for the 2Captcha API
- CircuitBreaker: short-circuits submissions while the service is failing
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpen, CircuitState
from .client import ChallengeSolverClient
from .interfaces import (
    Challenge,
    ChallengeJob,
    ChallengeMethod,
    ICaptchaService,
    JobStatus,
    ServiceReply,
    SolveOutcome,
    SolveStatus,
)
from .twocaptcha import TwoCaptchaService

__all__ = [
    "Challenge",
    "ChallengeJob",
    "ChallengeMethod",
    "ChallengeSolverClient",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "ICaptchaService",
    "JobStatus",
    "ServiceReply",
    "SolveOutcome",
    "SolveStatus",
    "TwoCaptchaService",
]
