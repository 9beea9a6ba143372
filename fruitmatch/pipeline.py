"""
Incoming-fruit pipeline.

Task flow for one arrival:
1. Generate (or accept) a fruit profile and store it
2. Produce its attribute and preference descriptions
3. Resolve the matching algorithm for this request
4. Snapshot the stored counterparts and hand everything to the selector
5. Return the result payload

The counterpart snapshot is read once, without a lock. Each fruit is
committed before its snapshot is read, so an apple and an orange arriving
together can both see each other and the pair gets scored twice, once from
each side. Pass serialize_arrivals=True to run arrivals one at a time, so
each pair is scored once, by whichever fruit arrives second.
"""

import random
import threading
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .communication import communicate_attributes, communicate_preferences
from .generator import generate_fruit
from .logger import get_logger
from .matching.selector import BestMatchSelector
from .models import SOFT_CRITERIA_V1, FruitKind, FruitProfile, MatchingAlgorithm, MatchRecord
from .narrative import MatchNarrator, NarrativePolicy
from .storage import FruitStore

logger = get_logger()


class PipelineError(Exception):
    """An arrival failed; wraps the storage or generation error behind it."""

    def __init__(self, message: str, kind: FruitKind, fruit_id: Optional[str] = None):
        self.kind = kind
        self.fruit_id = fruit_id
        super().__init__(message)


@dataclass
class IncomingResult:
    fruit_id: str
    kind: FruitKind
    attributes_text: str
    preferences_text: str
    algorithm: MatchingAlgorithm
    matches: List[MatchRecord] = field(default_factory=list)
    best: Optional[MatchRecord] = None

    @property
    def match_count(self) -> int:
        return len(self.matches)

    def to_dict(self) -> Dict[str, Any]:
        best = None
        if self.best is not None:
            best = {
                "matchId": self.best.id,
                "counterpartId": self.best.existing_fruit_id,
                "overallScore": self.best.overall_score,
                "messageToIncoming": self.best.message_to_incoming,
                "messageToExisting": self.best.message_to_existing,
            }
        return {
            "message": f"{self.kind.value.capitalize()} received and stored",
            "fruitId": self.fruit_id,
            "kind": self.kind.value,
            "communication": {
                "attributes": self.attributes_text,
                "preferences": self.preferences_text,
            },
            "algorithm": {
                "key": self.algorithm.key,
                "name": self.algorithm.name,
                "version": self.algorithm.version,
            },
            "matchCount": self.match_count,
            "matches": [
                {
                    "matchId": m.id,
                    "counterpartId": m.existing_fruit_id,
                    "scores": m.scores_dict(),
                }
                for m in self.matches
            ],
            "bestMatch": best,
        }


def resolve_algorithm(store: FruitStore, key: str) -> MatchingAlgorithm:
    """
    Active registered algorithm for `key`, or the built-in soft-criteria
    default when none is registered.
    """
    algorithm = store.get_algorithm(key, active_only=True)
    if algorithm is not None:
        return algorithm
    if key != SOFT_CRITERIA_V1.key:
        logger.warning(
            "Unknown algorithm key, using built-in default",
            requested=key,
            default=SOFT_CRITERIA_V1.key,
        )
    else:
        logger.debug("Algorithm not registered, using built-in default", key=key)
    return SOFT_CRITERIA_V1


class IncomingFruitPipeline:
    """
    Args:
        store: Persistence gateway
        llm: Text generator with generate(system_prompt, user_prompt, ...)
        algorithm_key: Algorithm to resolve for each request
        narrative_policy: What to do when match messages are unavailable
        narrative_timeout: Seconds to wait for both match messages
        rng: Random source for generation and tie-breaking
        serialize_arrivals: Run arrivals one at a time across both kinds
    """

    def __init__(
        self,
        store: FruitStore,
        llm,
        algorithm_key: str = SOFT_CRITERIA_V1.key,
        narrative_policy: NarrativePolicy = NarrativePolicy.FALLBACK,
        narrative_timeout: float = 30.0,
        rng: Optional[random.Random] = None,
        serialize_arrivals: bool = False,
    ):
        self.store = store
        self.llm = llm
        self.algorithm_key = algorithm_key
        self.rng = rng if rng is not None else random.Random()
        narrator = MatchNarrator(llm, policy=narrative_policy, timeout=narrative_timeout)
        self.selector = BestMatchSelector(store, narrator, rng=self.rng)
        self._lock = threading.Lock() if serialize_arrivals else None

    def _guard(self):
        return self._lock if self._lock is not None else nullcontext()

    def run(self, kind: FruitKind) -> IncomingResult:
        """Generate a random fruit of `kind` and process it."""
        return self.process(generate_fruit(kind, self.rng))

    def process(self, profile: FruitProfile) -> IncomingResult:
        """
        Store one arriving fruit and match it against the waiting fruits.

        Raises:
            PipelineError: If storing, scoring or (strict policy) narrative
                generation fails
        """
        kind = profile.kind
        fruit_id = None
        with self._guard():
            try:
                fruit = self.store.create_fruit(kind, profile.attributes, profile.preferences)
                fruit_id = fruit.id
                logger.record_fruit_created(kind.value)
                logger.info("Fruit stored", fruit_id=fruit_id, kind=kind.value)

                attributes_text = communicate_attributes(fruit, self.llm)
                preferences_text = communicate_preferences(fruit, self.llm)

                algorithm = resolve_algorithm(self.store, self.algorithm_key)
                counterparts = self.store.list_fruits(kind.counterpart)
                logger.debug(
                    "Counterpart snapshot taken",
                    fruit_id=fruit_id,
                    counterparts=len(counterparts),
                    algorithm=algorithm.key,
                )

                selection = self.selector.select(fruit, counterparts, algorithm)
            except Exception as e:
                logger.record_failure(type(e).__name__)
                logger.error(
                    f"Error processing incoming {kind.value}",
                    fruit_id=fruit_id,
                    kind=kind.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise PipelineError(
                    f"Failed to process incoming {kind.value}: {e}", kind, fruit_id
                ) from e

        return IncomingResult(
            fruit_id=fruit.id,
            kind=kind,
            attributes_text=attributes_text,
            preferences_text=preferences_text,
            algorithm=algorithm,
            matches=selection.matches,
            best=selection.best,
        )
