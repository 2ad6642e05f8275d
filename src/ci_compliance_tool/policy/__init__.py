"""Policy evaluation: context building, policy engine, loaders and profiles."""

from .context_builder import ContextBuilder
from .engine import EvaluationResult, PolicyEngine, PolicySet
from .loader import PolicyLoader
from .profiles import ProfileRegistry, validate_repo_against_profile

__all__ = [
	"ContextBuilder",
	"EvaluationResult",
	"PolicyEngine",
	"PolicyLoader",
	"PolicySet",
	"ProfileRegistry",
	"validate_repo_against_profile",
]
