"""
Paragraph-to-task-list conversion through the Gemini generateContent API.

The user's paragraph goes into a fixed prompt, the model's reply is stripped of
markdown code fences, parsed as a JSON array and normalized into at most
MAX_TASKS short titles. Every failure is raised as AIServiceError carrying the
kind of failure that happened; the user-facing category and message follow
from the kind.
"""
import json
import logging
import os
import re
from enum import Enum
from typing import Any, Optional

import httpx
from dotenv import load_dotenv

from prompts import build_task_list_prompt

load_dotenv()

logger = logging.getLogger(__name__)

GEMINI_API_URL = os.getenv(
    "GEMINI_API_URL",
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent",
)

# Checked in order; the EXPO_PUBLIC_ name is what the mobile client's .env uses
API_KEY_ENV_VARS = ("GEMINI_API_KEY", "EXPO_PUBLIC_GEMINI_API_KEY")

TEMPERATURE = 0.7
MAX_TASKS = 10
MAX_TITLE_LENGTH = 100

_JSON_FENCE = re.compile(r"```json\n?")
_FENCE = re.compile(r"```\n?")


class AIErrorKind(str, Enum):
    """What went wrong, set where the failure happens."""
    MISSING_CREDENTIAL = "missing_credential"
    REQUEST_FAILED = "request_failed"
    EMPTY_GENERATION = "empty_generation"
    MALFORMED_RESPONSE = "malformed_response"
    INVALID_TASK_LIST = "invalid_task_list"
    NETWORK = "network"
    UNEXPECTED = "unexpected"


class UserErrorCategory(str, Enum):
    CREDENTIAL_MISSING = "credential_missing"
    MALFORMED_RESPONSE = "malformed_response"
    NETWORK_FAILURE = "network_failure"
    COMMUNICATION_FAILURE = "communication_failure"


CATEGORY_BY_KIND = {
    AIErrorKind.MISSING_CREDENTIAL: UserErrorCategory.CREDENTIAL_MISSING,
    AIErrorKind.MALFORMED_RESPONSE: UserErrorCategory.MALFORMED_RESPONSE,
    AIErrorKind.INVALID_TASK_LIST: UserErrorCategory.MALFORMED_RESPONSE,
    AIErrorKind.NETWORK: UserErrorCategory.NETWORK_FAILURE,
    AIErrorKind.REQUEST_FAILED: UserErrorCategory.COMMUNICATION_FAILURE,
    AIErrorKind.EMPTY_GENERATION: UserErrorCategory.COMMUNICATION_FAILURE,
    AIErrorKind.UNEXPECTED: UserErrorCategory.COMMUNICATION_FAILURE,
}

USER_MESSAGES = {
    UserErrorCategory.CREDENTIAL_MISSING: "API key not found. Please check your .env file.",
    UserErrorCategory.MALFORMED_RESPONSE: "The AI response could not be processed.",
    UserErrorCategory.NETWORK_FAILURE: "Internet connection error.",
    UserErrorCategory.COMMUNICATION_FAILURE: "Could not communicate with the AI service.",
}


class AIServiceError(Exception):
    """Conversion failure. str() gives the user-facing message."""

    def __init__(self, kind: AIErrorKind, detail: str = "", status_code: Optional[int] = None):
        self.kind = kind
        self.detail = detail
        self.status_code = status_code
        super().__init__(self.user_message)

    @property
    def category(self) -> UserErrorCategory:
        return CATEGORY_BY_KIND[self.kind]

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.category]


def resolve_api_key(explicit: Optional[str] = None) -> str:
    """
    Return the Gemini API key, or "" when none is configured.
    An explicit value wins over the environment (and .env, loaded at import).
    """
    candidates = [explicit] + [os.getenv(name) for name in API_KEY_ENV_VARS]
    for value in candidates:
        if value and value.strip():
            return value.strip()
    return ""


def check_api_key() -> bool:
    return bool(resolve_api_key())


def extract_generated_text(data: Any) -> Optional[str]:
    """Text of the first candidate's first content part, if there is any."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text:
        return None
    return text


def clean_generated_text(text: str) -> str:
    """Strip ```json / ``` fence markers and surrounding whitespace."""
    text = _JSON_FENCE.sub("", text)
    text = _FENCE.sub("", text)
    return text.strip()


def normalize_task_titles(items: list) -> list[str]:
    """
    Keep non-blank strings, trimmed and cut to MAX_TITLE_LENGTH, first MAX_TASKS only.
    Anything else in the array (numbers, objects, null) is dropped.
    An array of only blank strings gives an empty list.
    """
    titles = [item.strip()[:MAX_TITLE_LENGTH] for item in items if isinstance(item, str) and item.strip()]
    return titles[:MAX_TASKS]


def parse_task_titles(generated_text: str) -> list[str]:
    cleaned = clean_generated_text(generated_text)
    try:
        parsed = json.loads(cleaned)
    except (json.JSONDecodeError, RecursionError) as e:
        raise AIServiceError(AIErrorKind.MALFORMED_RESPONSE, f"invalid JSON in model output: {e!r}") from e

    if not isinstance(parsed, list) or len(parsed) == 0:
        raise AIServiceError(AIErrorKind.INVALID_TASK_LIST, f"expected a non-empty JSON array, got: {cleaned[:200]}")

    return normalize_task_titles(parsed)


class TaskListConverter:
    """
    Converts a paragraph into task titles with one generateContent call.

    Args:
        api_key: Gemini API key; empty means no credential
        http_client: optional httpx.AsyncClient owned by the caller. Without one,
            a client is opened for each call.
        api_url: generateContent endpoint
    """

    def __init__(
        self,
        api_key: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        api_url: str = GEMINI_API_URL,
    ):
        self.api_key = (api_key or "").strip()
        self.http_client = http_client
        self.api_url = api_url

    def has_credential(self) -> bool:
        return bool(self.api_key)

    async def convert(self, paragraph: str) -> list[str]:
        try:
            return await self._convert(paragraph)
        except AIServiceError as e:
            logger.error("Task list conversion failed (%s): %s", e.kind.value, e.detail)
            raise
        except httpx.TransportError as e:
            logger.error("Network error calling Gemini API: %r", e)
            raise AIServiceError(AIErrorKind.NETWORK, str(e)) from e
        except Exception as e:
            logger.exception("Unexpected error during task list conversion")
            raise AIServiceError(AIErrorKind.UNEXPECTED, str(e)) from e

    async def _convert(self, paragraph: str) -> list[str]:
        if not self.api_key:
            raise AIServiceError(AIErrorKind.MISSING_CREDENTIAL, "no Gemini API key configured")

        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": build_task_list_prompt(paragraph)},
                    ],
                },
            ],
            "generationConfig": {
                "temperature": TEMPERATURE,
            },
        }

        if self.http_client is not None:
            response = await self._post(self.http_client, payload)
        else:
            async with httpx.AsyncClient() as client:
                response = await self._post(client, payload)

        if not response.is_success:
            try:
                error_body = response.json()
            except ValueError:
                error_body = response.text
            logger.error("Gemini API error (status %s): %s", response.status_code, error_body)
            raise AIServiceError(
                AIErrorKind.REQUEST_FAILED,
                f"API request failed: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AIServiceError(AIErrorKind.MALFORMED_RESPONSE, "response body is not JSON") from e

        generated_text = extract_generated_text(data)
        if generated_text is None:
            raise AIServiceError(AIErrorKind.EMPTY_GENERATION, "no text in the first candidate")

        return parse_task_titles(generated_text)

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await client.post(
            self.api_url,
            params={"key": self.api_key},
            json=payload,
            headers={"Content-Type": "application/json"},
        )


def get_default_converter() -> TaskListConverter:
    """Converter configured from the environment."""
    return TaskListConverter(api_key=resolve_api_key())


async def convert_paragraph_to_tasks(paragraph: str) -> list[str]:
    return await get_default_converter().convert(paragraph)
