"""
Match message generation.

Each best match gets two messages:
- message_to_incoming: for the fruit that just arrived
- message_to_existing: for the fruit that was waiting

Both are requested from the LLM at the same time. What happens when one of
them is unavailable is decided by NarrativePolicy.
"""

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .logger import get_logger
from .models import SLOTS, Attributes, Fruit, FruitKind, MatchRecord, Preferences

logger = get_logger()

SYSTEM_PROMPT = """You are a charming and playful fruit matchmaker with a talent for fruit puns. Your job is to write personalized messages announcing matches between apples and oranges.

Guidelines:
- Keep messages warm, celebratory, and fun (2-3 sentences max)
- Include at least one fruit-related pun or wordplay
- Reference specific compatibility details from the match data
- Be encouraging about the match quality
- Each message should feel personalized, not generic"""

MESSAGE_TEMPERATURE = 0.7
MESSAGE_MAX_TOKENS = 256
MAX_HIGHLIGHTS = 3

_SLOT_BY_WIRE = {slot.wire: slot for slot in SLOTS}


class NarrativePolicy(str, Enum):
    FALLBACK = "fallback"  # templated text replaces a missing message
    OMIT = "omit"  # missing message is left empty
    STRICT = "strict"  # a missing message fails the best-match step


class NarrativeUnavailableError(Exception):
    """Raised under the strict policy when a message could not be generated."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"LLM call failed: could not generate {', '.join(missing)}")


@dataclass(frozen=True)
class MatchContext:
    incoming_kind: FruitKind
    overall_score: float
    score_apple_on_orange: float
    score_orange_on_apple: float
    breakdown: Dict[str, Dict[str, float]]
    incoming_attributes: Attributes
    incoming_preferences: Preferences
    existing_attributes: Attributes
    existing_preferences: Preferences

    @property
    def existing_kind(self) -> FruitKind:
        return self.incoming_kind.counterpart

    def incoming_breakdown(self) -> Dict[str, float]:
        """What the newcomer thinks of the waiting fruit."""
        if self.incoming_kind is FruitKind.APPLE:
            return self.breakdown["appleOnOrange"]
        return self.breakdown["orangeOnApple"]

    def existing_breakdown(self) -> Dict[str, float]:
        if self.incoming_kind is FruitKind.APPLE:
            return self.breakdown["orangeOnApple"]
        return self.breakdown["appleOnOrange"]


@dataclass(frozen=True)
class MatchMessages:
    message_to_incoming: Optional[str] = None
    message_to_existing: Optional[str] = None


def build_match_context(incoming: Fruit, existing: Fruit, record: MatchRecord) -> MatchContext:
    return MatchContext(
        incoming_kind=incoming.kind,
        overall_score=record.overall_score,
        score_apple_on_orange=record.score_apple_on_orange,
        score_orange_on_apple=record.score_orange_on_apple,
        breakdown=record.breakdown,
        incoming_attributes=incoming.attributes,
        incoming_preferences=incoming.preferences,
        existing_attributes=existing.attributes,
        existing_preferences=existing.preferences,
    )


def format_percentage(score: float) -> str:
    return f"{int(score * 100 + 0.5)}%"


def compatibility_highlights(
    breakdown: Dict[str, float],
    preferences: Preferences,
    attributes: Attributes,
) -> List[str]:
    """
    Short phrases for satisfied preferences, at most MAX_HIGHLIGHTS.

    Slots that scored 1.0 only because there was no preference are skipped.
    """
    highlights: List[str] = []
    for wire, score in breakdown.items():
        slot = _SLOT_BY_WIRE.get(wire)
        if slot is None or score != 1.0:
            continue
        pref = getattr(preferences, slot.name)
        attr = getattr(attributes, slot.name)
        if pref is None:
            continue

        if wire == "hasWorm":
            if pref is False and attr is False:
                highlights.append("both worm-free")
        elif wire == "hasChemicals":
            if pref is False and attr is False:
                highlights.append("chemical-free match")
        elif wire == "shineFactor":
            if attr is not None:
                highlights.append(f"{attr.value} shine compatibility")
        elif wire == "hasStem":
            if pref is True and attr is True:
                highlights.append("stem lovers")
        elif wire == "hasLeaf":
            if pref is True and attr is True:
                highlights.append("leaf enthusiasts")
        elif wire == "size":
            highlights.append("size match")
        elif wire == "weight":
            highlights.append("weight compatibility")

    return highlights[:MAX_HIGHLIGHTS]


def _highlight_line(highlights: List[str]) -> str:
    return f"Key compatibilities: {', '.join(highlights)}." if highlights else ""


def build_incoming_prompt(context: MatchContext) -> str:
    highlights = compatibility_highlights(
        context.incoming_breakdown(),
        context.incoming_preferences,
        context.existing_attributes,
    )
    incoming = context.incoming_kind.value
    return f"""Write a welcoming message for an {incoming} who just arrived and was matched with an {context.existing_kind.value}.

Match details:
- Overall compatibility: {format_percentage(context.overall_score)}
- The {incoming} is the newcomer who just arrived
{_highlight_line(highlights)}

Tone: Excited and welcoming - they just arrived and found a great match!
Keep it to 2-3 sentences."""


def build_existing_prompt(context: MatchContext) -> str:
    highlights = compatibility_highlights(
        context.existing_breakdown(),
        context.existing_preferences,
        context.incoming_attributes,
    )
    incoming = context.incoming_kind.value
    existing = context.existing_kind.value
    return f"""Write a celebratory message for an {existing} who has been waiting and now has a match with an {incoming}.

Match details:
- Overall compatibility: {format_percentage(context.overall_score)}
- The {existing} was waiting and an {incoming} just arrived
{_highlight_line(highlights)}

Tone: Reassuring and celebratory - the wait was worth it!
Keep it to 2-3 sentences."""


def fallback_messages(context: MatchContext) -> MatchMessages:
    """Templated messages used when the LLM cannot be reached."""
    percent = format_percentage(context.overall_score)
    incoming = context.incoming_kind.value
    existing = context.existing_kind.value

    to_incoming = f"Welcome, {incoming}! You've been matched with an {existing} at {percent} compatibility."
    highlights = compatibility_highlights(
        context.incoming_breakdown(), context.incoming_preferences, context.existing_attributes
    )
    if highlights:
        to_incoming += f" Highlights: {', '.join(highlights)}."

    to_existing = f"Good news, {existing}! A newly arrived {incoming} matches you at {percent} compatibility."
    highlights = compatibility_highlights(
        context.existing_breakdown(), context.existing_preferences, context.incoming_attributes
    )
    if highlights:
        to_existing += f" Highlights: {', '.join(highlights)}."

    return MatchMessages(message_to_incoming=to_incoming, message_to_existing=to_existing)


class MatchNarrator:
    """
    Writes the two best-match messages through an LLM client.

    Args:
        llm: Object with generate(system_prompt, user_prompt, temperature, max_tokens)
        policy: What to do when a message is unavailable
        timeout: Seconds to wait for both calls together
    """

    def __init__(self, llm, policy: NarrativePolicy = NarrativePolicy.FALLBACK, timeout: float = 30.0):
        self.llm = llm
        self.policy = NarrativePolicy(policy)
        self.timeout = timeout

    def _generate(self, user_prompt: str) -> Optional[str]:
        return self.llm.generate(
            SYSTEM_PROMPT,
            user_prompt,
            temperature=MESSAGE_TEMPERATURE,
            max_tokens=MESSAGE_MAX_TOKENS,
        )

    def _generate_both(self, prompts: Dict[str, str]) -> Dict[str, Optional[str]]:
        """Run one call per prompt concurrently; a late or failed call yields None."""
        executor = ThreadPoolExecutor(max_workers=len(prompts), thread_name_prefix="narrative")
        try:
            futures = {side: executor.submit(self._generate, prompt) for side, prompt in prompts.items()}
            wait(futures.values(), timeout=self.timeout)

            results: Dict[str, Optional[str]] = {}
            for side, future in futures.items():
                if not future.done():
                    logger.warning("Match message timed out", side=side, timeout=self.timeout)
                    results[side] = None
                elif future.exception() is not None:
                    logger.error("Match message generation raised", side=side, error=str(future.exception()))
                    results[side] = None
                else:
                    results[side] = future.result()
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def generate_match_messages(self, context: MatchContext) -> MatchMessages:
        """
        Generate both messages for a best match.

        Raises:
            NarrativeUnavailableError: Under the strict policy, if either
                message could not be generated
        """
        results = self._generate_both({
            "message_to_incoming": build_incoming_prompt(context),
            "message_to_existing": build_existing_prompt(context),
        })

        missing = [side for side, text in results.items() if text is None]
        if not missing:
            return MatchMessages(**results)

        if self.policy is NarrativePolicy.STRICT:
            raise NarrativeUnavailableError(missing)

        logger.warning(
            "Match messages unavailable, degrading",
            missing=missing,
            policy=self.policy.value,
            incoming_kind=context.incoming_kind.value,
        )
        if self.policy is NarrativePolicy.FALLBACK:
            fallback = fallback_messages(context)
            for side in missing:
                results[side] = getattr(fallback, side)
                logger.record_narrative_fallback()

        return MatchMessages(**results)
