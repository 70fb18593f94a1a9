"""Helper utilities for Arbiter."""

import re
import uuid
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_id(prefix: str) -> str:
    """Generate a unique identifier with a readable prefix.

    Args:
        prefix: Identifier prefix, e.g. "decision"

    Returns:
        Identifier such as ``decision_3f2a9c1e7b4d``
    """
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def truncate(text: Optional[str], limit: int) -> str:
    """Truncate text to at most ``limit`` characters."""
    if not text:
        return ""
    return text[:limit]


def extract_json_block(response_text: str) -> str:
    """Extract a JSON payload from an LLM response.

    Handles fenced markdown code blocks and free text surrounding a single
    JSON object.

    Args:
        response_text: Raw model output

    Returns:
        The JSON substring (may still be invalid JSON)
    """
    if "```json" in response_text:
        json_start = response_text.find("```json") + 7
        json_end = response_text.find("```", json_start)
        return response_text[json_start:json_end].strip()
    if "```" in response_text:
        json_start = response_text.find("```") + 3
        json_end = response_text.find("```", json_start)
        return response_text[json_start:json_end].strip()

    match = re.search(r"\{[\s\S]*\}", response_text)
    if match:
        return match.group(0)
    return response_text.strip()


def format_percentage(value: Optional[float]) -> str:
    """Format percentage for display.

    Args:
        value: Percentage value (0-1)

    Returns:
        Formatted percentage string
    """
    if value is None:
        return "N/A"
    return f"{value * 100:.1f}%"
