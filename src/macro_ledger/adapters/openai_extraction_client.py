"""OpenAI Responses API client for food extraction."""

import json
from dataclasses import dataclass

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    PermissionDeniedError,
)

from macro_ledger.domain.errors import ExtractionError, ExtractionErrorKind
from macro_ledger.services.extraction import ExtractionClient

_CONTENT_FILTER = "content_filter"
_CONTENT_POLICY_MARKERS = ("content_policy", "content policy", "safety")


@dataclass
class OpenAIExtractionClient(ExtractionClient):
    """Extraction client backed by OpenAI Responses API."""

    client: AsyncOpenAI

    @classmethod
    def create(
        cls, api_key: str, timeout_seconds: float = 180.0
    ) -> "OpenAIExtractionClient":
        """Create an OpenAI extraction client.

        Retries are disabled here; the extraction service owns the retry policy.
        """
        return cls(
            client=AsyncOpenAI(
                api_key=api_key,
                timeout=httpx.Timeout(timeout_seconds, connect=10.0),
                max_retries=0,
            )
        )

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        web_search: bool,
        instructions: str,
        user_prompt: str,
        schema: dict[str, object],
        timeout: float,
    ) -> dict[str, object]:
        """Call OpenAI Responses API with structured outputs."""
        request_payload: dict[str, object] = {
            "model": model,
            "instructions": instructions,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": user_prompt}],
                }
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "food_log",
                    "strict": True,
                    "schema": schema,
                }
            },
            "store": store,
            "timeout": timeout,
        }
        if reasoning_effort:
            request_payload["reasoning"] = {"effort": reasoning_effort}
        if web_search:
            request_payload["tools"] = [{"type": "web_search"}]

        try:
            response = await self.client.responses.create(**request_payload)
        except APITimeoutError as exc:
            raise ExtractionError(ExtractionErrorKind.TIMEOUT, str(exc)) from exc
        except APIConnectionError as exc:
            raise ExtractionError(ExtractionErrorKind.NETWORK, str(exc)) from exc
        except (AuthenticationError, PermissionDeniedError) as exc:
            raise ExtractionError(ExtractionErrorKind.AUTH, str(exc)) from exc
        except BadRequestError as exc:
            if _is_content_policy(exc):
                raise ExtractionError(
                    ExtractionErrorKind.CONTENT_REJECTED, str(exc)
                ) from exc
            raise ExtractionError(ExtractionErrorKind.SERVICE, str(exc)) from exc
        except APIStatusError as exc:
            raise ExtractionError(
                ExtractionErrorKind.SERVICE, f"status={exc.status_code}: {exc}"
            ) from exc

        details = getattr(response, "incomplete_details", None)
        if getattr(details, "reason", None) == _CONTENT_FILTER:
            raise ExtractionError(
                ExtractionErrorKind.CONTENT_REJECTED, "response was filtered"
            )
        output_text = response.output_text
        if not output_text:
            raise ExtractionError(
                ExtractionErrorKind.SCHEMA_INVALID, "OpenAI returned an empty response"
            )
        try:
            return json.loads(output_text)
        except json.JSONDecodeError as exc:
            raise ExtractionError(
                ExtractionErrorKind.SCHEMA_INVALID, "response is not valid JSON"
            ) from exc

    async def close(self) -> None:
        await self.client.close()


def _is_content_policy(exc: BadRequestError) -> bool:
    code = str(getattr(exc, "code", "") or "").lower()
    message = str(exc).lower()
    return any(
        marker in code or marker in message for marker in _CONTENT_POLICY_MARKERS
    )
