"""Learning-sticky generation and domain de-duplication.

A free-text request ("help me prepare for my driver's license test") becomes a
short area label plus concept/definition stickies. Before a new label is used,
``find_similar_domain`` checks the user's existing labels so one topic is not
split across near-identical names.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from stickies.errors import ExtractionServiceError
from stickies.extract import llm_client
from stickies.extract.schemas import parse_learning_response

logger = logging.getLogger(__name__)

_AREA_FALLBACK_CHARS = 80

_SYSTEM_PROMPT = """\
You are a helpful tutor. The user describes what they want to learn: a topic \
("React hooks", "machine learning") or a goal ("help me prepare for driver's license test").

1. Summarize the request into a very short area title (2-4 words) for display in a list, \
e.g. "Driver's License", "React Hooks", "Investing Basics".
2. Generate learning stickies with SPECIFIC, actionable content, not generic definitions.

Return a JSON object with "areaSummary" (string) and "learningStickies" (array). Each sticky has:
- concept: short name of the concept
- definition: a clear definition with concrete facts, numbers, or rules
- example: a brief example or concrete context, or null
- relatedTerms: array of 0-5 related terms

When the topic depends on jurisdiction (driving, taxes, licensing) and none is given, \
pick a common one and say so. Cover 4-10 key concepts. Return valid JSON only."""

_USER_PROMPT = """\
The user wants to learn something. Here is their request:

"{request}"

Return a JSON object with this exact structure:
{{"areaSummary": "Short 2-4 word title", "learningStickies": [{{"concept": "Concept name", \
"definition": "Clear definition.", "example": "Brief example or null", "relatedTerms": ["term1"]}}]}}"""

_CLASSIFIER_PROMPT = (
    "You are a classifier. Given a list of existing learning area names and a new area name, "
    "say if the new one is the SAME or VERY SIMILAR topic as one of the existing ones "
    '(e.g. "React Hooks" vs "react hooks", "Driver\'s License" vs "Driving test"). '
    'Reply with exactly one line: the existing area name if there is a match, or the word "none". '
    "No explanation."
)


@dataclass
class GeneratedSticky:
    concept: str
    definition: str
    example: str | None = None
    related_terms: list[str] = field(default_factory=list)


@dataclass
class GeneratedArea:
    area_summary: str
    stickies: list[GeneratedSticky]


class LearningGenerator:
    def __init__(
        self,
        model: str = "openai/gpt-4o-mini",
        temperature: float = 0.5,
        timeout: float = 30.0,
        num_retries: int = 0,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.num_retries = num_retries

    def generate_for_domain(self, request: str) -> GeneratedArea:
        """Generate an area label and stickies for *request*.

        Raises:
            EnvironmentError: No API key for the configured provider.
            ExtractionServiceError: The request failed, the JSON was malformed,
                or no sticky survived validation.
        """
        llm_client.validate_api_key(self.model)
        content = llm_client.complete(
            self.model,
            [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": _USER_PROMPT.format(request=request)},
            ],
            temperature=self.temperature,
            response_format=llm_client.JSON_OBJECT,
            timeout=self.timeout,
            num_retries=self.num_retries,
        )
        area, items = parse_learning_response(content)
        return GeneratedArea(
            area_summary=area or request.strip()[:_AREA_FALLBACK_CHARS],
            stickies=[
                GeneratedSticky(
                    concept=i.concept,
                    definition=i.definition,
                    example=i.example,
                    related_terms=i.related_terms,
                )
                for i in items
            ],
        )

    def find_similar_domain(self, label: str, existing: list[str]) -> str | None:
        """Return the existing domain *label* duplicates, or None.

        Case-insensitive exact match first. With more than one existing domain a
        short classifier completion judges near-duplicates; its answer is mapped
        back to an existing label by exact or containment match.
        """
        wanted = label.strip().lower()
        if not existing or not wanted:
            return None
        for domain in existing:
            if domain.strip().lower() == wanted:
                return domain
        if len(existing) == 1:
            return None

        quoted = ", ".join(f'"{d}"' for d in existing)
        try:
            answer = llm_client.complete(
                self.model,
                [
                    {"role": "system", "content": _CLASSIFIER_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            f"Existing areas: {quoted}.\nNew area: \"{label}\".\n"
                            'Same or very similar existing area name, or "none"?'
                        ),
                    },
                ],
                temperature=0.0,
                max_tokens=50,
                timeout=self.timeout,
                num_retries=self.num_retries,
            )
        except ExtractionServiceError as exc:
            logger.warning("Area de-duplication skipped: %s", exc)
            return None
        answer = answer.strip().strip('"').strip().lower()
        if not answer or answer == "none":
            return None
        for domain in existing:
            if domain.strip().lower() == answer:
                return domain
        for domain in existing:
            d = domain.strip().lower()
            if d in answer or answer in d:
                logger.info("Merging area %r into existing %r", label, domain)
                return domain
        return None
