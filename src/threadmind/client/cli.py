"""Terminal client for the threadmind API, useful to try the assistant without Slack."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Tuple,
    cast,
)

import httpx

from threadmind.common import (
    AnsiColors,
    colored_print,
)
from threadmind.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Read one line from standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        return input().strip(), True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(
    endpoint: str,
    data: Dict[str, Any],
    max_retries: int = 5,
    client: httpx.Client | None = None,
) -> Dict[str, Any]:
    """POST *data* to the API and return the decoded response, retrying while it starts up."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"
    http = client or httpx.Client(timeout=settings.RESEARCH_TIMEOUT)

    try:
        for attempt in range(max_retries):
            try:
                response = http.post(api_url, json=data)
            except httpx.ConnectError as exc:
                if attempt == max_retries - 1:
                    logger.error("API request error: %s", exc)
                    break
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            except httpx.HTTPError as exc:
                logger.error("API request error: %s", exc)
                return {"reply": f"Error connecting to API: {exc}"}

            if response.is_error:
                detail = response.text
                try:
                    detail = response.json().get("detail", detail)
                except ValueError:
                    pass
                return {"reply": f"API error ({response.status_code}): {detail}"}
            return cast(Dict[str, Any], response.json())
    finally:
        if client is None:
            http.close()

    return {"reply": f"Failed to connect to API after {max_retries} attempts"}


def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    session_id = call_api("/sessions", {}).get("session_id")
    if not session_id:
        colored_print("Failed to create a session", AnsiColors.RED)
        return

    colored_print(
        "\nthreadmind shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN
    )
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok or user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        response = call_api("/agent", {"message": user_msg, "session_id": session_id})

        for status in response.get("statuses", []):
            if status:
                colored_print(f"  ... {status}", AnsiColors.GREY)
        colored_print(response.get("reply", "No response from API"), AnsiColors.YELLOW)


if __name__ == "__main__":
    run_cli()
