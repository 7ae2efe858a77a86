"""Prompt templates for the weekly Slack recap.

The model gets a persona and style guide (SYSTEM_PROMPT) plus one user
message listing the week's releases, one line each, and, when available,
the last few recaps so it can keep running jokes alive.
"""

from __future__ import annotations

from release_digest.markup import flatten_text
from release_digest.schemas import Release

BODY_PREVIEW_CHARS = 300

# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You write the weekly shipping recap for the Nimiq Slack channel.

## Your Role
Every Friday you tell a technically savvy audience what shipped across the
Nimiq projects this week. You are dry, clever and understated: the colleague
whose one-liners people quote later, not the one with the air horn.

## Content
- Pick the 3-5 most interesting or visible changes; skip the plumbing unless
  it is funny.
- Group related changes (a pile of bug fixes is one story, not five).
- Weave the items into a short narrative with at least one or two jokes,
  puns or analogies. Never just restate the changelog.
- If earlier recaps are provided, call back to them and keep running gags going.
- A quiet week is an opportunity: tease the silence, assign playful blame.

## Format
- Plain Slack text, one or two short paragraphs or a few bullets.
- 150-250 words; readable in under 45 seconds.
- No code blocks, no markdown headings, no closing summary or meta comment.
- End on a quip.

## Example
Input:
- Wallet v3.1.0: Added dark mode, fixed bug causing zero balances to disappear.
- Hub v2.2.5: Login now works with hardware keys.

Output:
Wallet went goth this week: dark mode is live, and zero balances have stopped
doing their disappearing act, which is more than we can say for the office
snacks. Hub now accepts hardware keys, so your login finally has a gym
membership. Solid week. Suspiciously solid.
"""

# ---------------------------------------------------------------------------
# User Prompt
# ---------------------------------------------------------------------------


def format_release(release: Release) -> str:
    """One line per release: repo, tag and the start of its notes."""
    body = flatten_text(release.body)
    return f"{release.repo} {release.tag}: {body[:BODY_PREVIEW_CHARS]}..."


def build_user_prompt(releases: list[Release], previous_summaries: list[str] | None = None) -> str:
    """Build the user message for this week's recap.

    Args:
        releases: The week's releases, newest first
        previous_summaries: Earlier recaps, most recent first
    """
    sections = [
        "Here are the releases from this week:",
        "\n\n".join(format_release(release) for release in releases),
    ]
    if previous_summaries:
        history = "\n\n---\n\n".join(previous_summaries)
        sections.append(
            "For continuity, these were the recaps of the previous weeks "
            f"(most recent first):\n\n{history}"
        )
    return "\n\n".join(sections)
