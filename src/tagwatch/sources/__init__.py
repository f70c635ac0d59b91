from .base import Resolver
from .github import GitHubTagResolver, pick_latest_tag

__all__ = [
    "GitHubTagResolver",
    "Resolver",
    "pick_latest_tag",
]
