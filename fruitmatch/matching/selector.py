"""
Best-Match Selection.

Responsibilities:
- Score an incoming fruit against a snapshot of counterparts.
- Persist one match record per counterpart.
- Choose the single best record, breaking ties uniformly at random.
- Request and persist the narrative messages for that record only.

Non-Responsibilities:
- No reading of the counterpart set (the caller passes the snapshot).
- No global assignment across fruits.
- No rescoring of earlier arrivals.

Invariant:
At most one record per incoming fruit is flagged best_match, and the flag
is set here once and never revisited.
"""

import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..logger import get_logger
from ..models import Fruit, FruitKind, MatchingAlgorithm, MatchRecord
from ..narrative import MatchMessages, MatchNarrator, build_match_context
from ..storage import FruitStore, StorageError
from .scoring import compute_match_scores

logger = get_logger()


@dataclass
class SelectionResult:
    matches: List[MatchRecord] = field(default_factory=list)
    best: Optional[MatchRecord] = None
    messages: Optional[MatchMessages] = None


def pick_best(records: Sequence[MatchRecord], rng: random.Random) -> Optional[MatchRecord]:
    """
    Uniformly choose one of the records sharing the highest overall score.

    Scores are compared with exact equality: identical slot outcomes
    always produce identical floats.
    """
    if not records:
        return None
    max_score = max(r.overall_score for r in records)
    tied = [r for r in records if r.overall_score == max_score]
    return rng.choice(tied)


class BestMatchSelector:
    """
    Args:
        store: Persistence gateway
        narrator: Writes the two best-match messages
        rng: Source for tie-breaking; seed it for reproducible runs
    """

    def __init__(self, store: FruitStore, narrator: MatchNarrator, rng: Optional[random.Random] = None):
        self.store = store
        self.narrator = narrator
        self.rng = rng if rng is not None else random.Random()

    def _score_and_store(self, incoming: Fruit, existing: Fruit, algorithm: MatchingAlgorithm) -> MatchRecord:
        if incoming.kind is FruitKind.APPLE:
            apple, orange = incoming, existing
        else:
            apple, orange = existing, incoming
        scores = compute_match_scores(apple, orange)

        return self.store.create_match(
            incoming_fruit_id=incoming.id,
            incoming_kind=incoming.kind,
            apple_id=apple.id,
            orange_id=orange.id,
            algorithm=algorithm,
            score_apple_on_orange=scores.score_apple_on_orange,
            score_orange_on_apple=scores.score_orange_on_apple,
            overall_score=scores.overall_score,
            breakdown=scores.breakdown,
            best_match=False,
        )

    def select(
        self,
        incoming: Fruit,
        counterparts: Sequence[Fruit],
        algorithm: MatchingAlgorithm,
    ) -> SelectionResult:
        """
        Score, persist and pick the best match for one incoming fruit.

        Args:
            incoming: The stored fruit that just arrived
            counterparts: Snapshot of stored fruits of the other kind
            algorithm: Algorithm resolved for this request

        Raises:
            StorageError: If any write fails; scoring stops at that point
            NarrativeUnavailableError: Under the strict narrative policy
        """
        result = SelectionResult()
        by_id = {}

        for existing in counterparts:
            if existing.kind is incoming.kind:
                raise ValueError(f"Counterpart {existing.id} has the same kind as {incoming.id}")
            try:
                record = self._score_and_store(incoming, existing, algorithm)
            except StorageError as e:
                logger.error(
                    "Match record creation failed, aborting remaining scoring",
                    incoming_fruit_id=incoming.id,
                    counterpart_id=existing.id,
                    scored_counterparts=[m.existing_fruit_id for m in result.matches],
                    remaining=len(counterparts) - len(result.matches) - 1,
                    error=str(e),
                )
                raise
            result.matches.append(record)
            by_id[existing.id] = existing

        logger.record_matches_scored(len(result.matches))
        if not result.matches:
            logger.info("No counterparts to match", incoming_fruit_id=incoming.id, kind=incoming.kind.value)
            return result

        chosen = pick_best(result.matches, self.rng)
        tied = sum(1 for m in result.matches if m.overall_score == chosen.overall_score)
        best = self.store.update_match(chosen.id, best_match=True)
        logger.record_best_match()
        logger.info(
            "Best match selected",
            incoming_fruit_id=incoming.id,
            counterpart_id=best.existing_fruit_id,
            match_id=best.id,
            overall_score=best.overall_score,
            tied_candidates=tied,
        )

        existing = by_id[best.existing_fruit_id]
        messages = self.narrator.generate_match_messages(build_match_context(incoming, existing, best))
        if messages.message_to_incoming is not None or messages.message_to_existing is not None:
            best = self.store.update_match(
                best.id,
                message_to_incoming=messages.message_to_incoming,
                message_to_existing=messages.message_to_existing,
            )

        result.matches = [best if m.id == best.id else m for m in result.matches]
        result.best = best
        result.messages = messages
        return result
