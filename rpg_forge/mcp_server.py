"""FastMCP server exposing the pure creation engines as MCP tools.

Tools:
  - extract_fields(utterance, target, ...)   — mine one utterance for entity fields
  - detect_target(utterance, locale)         — universe, character or unknown
  - phase_state(target, filled_fields, ...)  — completeness and phase position
  - smart_suggestions(target, phase_id, ...) — quick replies for a phase

None of the tools hold session state; callers pass everything in.

Usage:
    python -m rpg_forge.mcp_server
"""

from mcp.server.fastmcp import FastMCP

from rpg_forge import extraction, phases

mcp = FastMCP("rpg-forge")


@mcp.tool()
def extract_fields(
    utterance: str,
    target: str,
    locale: str = "es",
    already_collected: dict | None = None,
) -> dict:
    """Extract universe or character fields from a free-text message."""
    return extraction.extract(utterance, target, locale, already_collected).model_dump()


@mcp.tool()
def detect_target(utterance: str, locale: str = "es") -> str:
    """Guess whether a message describes a universe or a character."""
    return extraction.detect_target(utterance, locale)


@mcp.tool()
def phase_state(target: str, filled_fields: list[str], current_index: int = 0) -> dict:
    """Phase position, completeness and pending fields for a target type."""
    return phases.calculate_phase_state(target, filled_fields, current_index).model_dump()


@mcp.tool()
def smart_suggestions(
    target: str,
    phase_id: str,
    filled_fields: list[str],
    last_message: str = "",
    locale: str = "es",
) -> list[str]:
    """Quick-reply suggestions for the given phase."""
    return phases.get_smart_suggestions(
        target, phase_id, filled_fields, last_message, locale=locale,
    )


if __name__ == "__main__":
    mcp.run()
