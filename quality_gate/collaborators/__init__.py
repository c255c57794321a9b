"""Concrete collaborators: Claude, Brave Search, heuristic scoring and duplicates."""

from quality_gate.collaborators.claude import (
    ClaudeClassifier,
    ClaudeFactChecker,
    ClaudeSynthesizer,
    make_client,
)
from quality_gate.collaborators.duplicates import ShingleDuplicateChecker
from quality_gate.collaborators.research import BraveResearcher
from quality_gate.collaborators.scoring import HeuristicScorer
from quality_gate.pipeline.interfaces import Collaborators

__all__ = [
    "BraveResearcher",
    "ClaudeClassifier",
    "ClaudeFactChecker",
    "ClaudeSynthesizer",
    "HeuristicScorer",
    "ShingleDuplicateChecker",
    "default_collaborators",
    "make_client",
]


def default_collaborators(client=None, model=None, research_enabled=True) -> Collaborators:
    """Wire the production collaborators around one Anthropic client.

    ``model`` overrides the writing model (synthesis and rewrites) only.
    """
    client = client or make_client()
    synthesizer = ClaudeSynthesizer(client, model) if model else ClaudeSynthesizer(client)
    return Collaborators(
        classifier=ClaudeClassifier(client),
        researcher=BraveResearcher(enabled=research_enabled),
        synthesizer=synthesizer,
        fact_checker=ClaudeFactChecker(client),
        scorer=HeuristicScorer(),
        duplicate_checker=ShingleDuplicateChecker(),
    )
