"""Human verification of conflicts and low-confidence claims."""

from fundrecon.domain.verification.queue import ResolutionResult, VerificationQueue
from fundrecon.domain.verification.stats import QueueStats, compute_stats

__all__ = ["QueueStats", "ResolutionResult", "VerificationQueue", "compute_stats"]
