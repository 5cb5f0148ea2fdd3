"""Task extraction: transcript or typed note → validated, date-corrected tasks."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from stickies.extract import llm_client
from stickies.extract.dates import correct_due_date
from stickies.extract.schemas import parse_task_summary

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """\
You are a helpful assistant that extracts tasks, reminders, and notes from voice transcripts.
Analyze the transcript and extract actionable items. Return a JSON object with a "tasks" array.

Each task should have:
- title: A clear, concise title (required)
- description: Optional detailed description
- type: One of "task", "reminder", or "note"
- priority: One of "low", "medium", "high" (optional)
- dueDate: ISO 8601 date string in local time (e.g. "{today}T10:00:00" for 10am), or null if no date is mentioned

DATE CONTEXT:
- TODAY is {long_date} ({today})
- TOMORROW is {tomorrow}
- DAY AFTER TOMORROW is {day_after}
- "today" means {today}, "tomorrow" means {tomorrow}, "day after tomorrow" means {day_after}

DATE FORMATTING RULES:
- Always use "YYYY-MM-DDTHH:MM:SS" without a Z suffix; times are the user's local time
- Convert mentioned times to 24-hour format (10am = 10:00, 3pm = 15:00)
- If only a date is mentioned, use 00:00:00 for the time
- Calculate other relative dates such as "next Monday" from {today}
- Examples: "tomorrow 10am" → "{tomorrow}T10:00:00", "day after tomorrow 3pm" → "{day_after}T15:00:00"

Guidelines:
- Extract only actionable items
- Infer priority from context (urgent words, deadlines)
- Group related items that are part of the same task
- Return valid JSON only, no markdown formatting"""

_USER_PROMPT = """\
Please extract tasks and reminders from this text:

{text}

Return a JSON object with this structure:
{{"tasks": [{{"title": "Task title", "description": "Optional description", \
"type": "task", "priority": "medium", "dueDate": "{tomorrow}T10:00:00"}}]}}"""


@dataclass
class ExtractedTask:
    title: str
    description: str | None
    type: str
    priority: str | None
    due_date: datetime | None
    raw_due_date: str | None
    date_flagged: bool = False


class TaskExtractor:
    """Turn free text into tasks with a single JSON-mode completion call.

    Args:
        model: LiteLLM model string (provider/model format).
        temperature: Sampling temperature; low for consistent structure.
        timeout: Request timeout in seconds.
        num_retries: Transport-level retries (malformed output is never retried).
        clock: Returns "now"; injected in tests.
    """

    def __init__(
        self,
        model: str = "openai/gpt-4o-mini",
        temperature: float = 0.3,
        timeout: float = 30.0,
        num_retries: int = 0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.num_retries = num_retries
        self._clock = clock

    def build_messages(self, text: str, now: datetime) -> list[dict]:
        today = now.date()
        fields = {
            "today": today.isoformat(),
            "tomorrow": (today + timedelta(days=1)).isoformat(),
            "day_after": (today + timedelta(days=2)).isoformat(),
            "long_date": f"{now:%A}, {now:%B} {now.day}, {now.year}",
        }
        return [
            {"role": "system", "content": _SYSTEM_PROMPT.format(**fields)},
            {"role": "user", "content": _USER_PROMPT.format(text=text, **fields)},
        ]

    def extract(self, text: str) -> list[ExtractedTask]:
        """Extract tasks from *text*.

        Raises:
            EnvironmentError: No API key for the configured provider.
            ExtractionServiceError: The request failed or the output was malformed/empty.
        """
        llm_client.validate_api_key(self.model)
        now = self._clock()
        content = llm_client.complete(
            self.model,
            self.build_messages(text, now),
            temperature=self.temperature,
            response_format=llm_client.JSON_OBJECT,
            timeout=self.timeout,
            num_retries=self.num_retries,
        )
        summary = parse_task_summary(content)

        tasks = []
        for raw in summary.tasks:
            due = correct_due_date(raw.due_date, text, now)
            tasks.append(
                ExtractedTask(
                    title=raw.title,
                    description=raw.description,
                    type=raw.type,
                    priority=raw.priority,
                    due_date=due.value,
                    raw_due_date=raw.due_date,
                    date_flagged=due.flagged,
                )
            )
        logger.info("Extracted %d task(s)", len(tasks))
        return tasks
