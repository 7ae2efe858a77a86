"""Prompt templates for the weekly Linear team recap."""

from __future__ import annotations

from xml.sax.saxutils import escape, quoteattr

from release_digest.linear import TeamGroups

DESCRIPTION_CHARS = 500

SYSTEM_PROMPT = """You write the weekly team work recap for the Nimiq Slack channel.

## Hard Rules
1. Always start with: "This is week number [X], and here's what the teams shipped:"
2. 150-250 words.
3. Plain text: no markdown, no code blocks.
4. End on a quip, not a summary.
5. Never report team by team. Jump between teams and topics.

## Before Writing
- Scan every team for shared themes: several teams fixing bugs, racing to ship,
  touching the same technology.
- Pick the 3-5 most interesting or funny angles and link them across teams.
- Look for contrasts worth a line (one team shipping features while another
  cleans up).
- Call back to running jokes from previous weeks when they are provided.

## Tone
Dry, deadpan, understated. Analogies and friendly office banter are welcome;
goofy energy, jargon for its own sake, patronizing asides and meta
commentary are not. The readers are developers who like clever writing and a
little friendly competition.

## Example
Input: Team A fixed wallet bugs, Team B launched NAKA features, Team C wrote blog posts

Output: This is week number 42, and here's what the teams shipped: While Team A
was hunting wallet bugs like it was on safari, Team B decided launch week was
the perfect time for seventeen NAKA features nobody asked for. Team C, ever the
documentarians, turned the chaos into three blog posts. The wallet is more
stable, NAKA is more confusing and the blog is more wordy. Balance, apparently.
"""


def format_issues(grouped: TeamGroups) -> str:
    """Issues as nested <team>/<project>/<issue> elements, descriptions included."""
    lines = ["<teams>"]
    for team, projects in grouped.items():
        lines.append(f"  <team name={quoteattr(team)}>")
        for project, issues in projects.items():
            lines.append(f"    <project name={quoteattr(project)}>")
            for issue in issues:
                lines.append("      <issue>")
                lines.append(f"        <identifier>{escape(issue.identifier)}</identifier>")
                lines.append(f"        <title>{escape(issue.title)}</title>")
                if issue.description:
                    description = issue.description.strip()[:DESCRIPTION_CHARS]
                    lines.append(f"        <description>{escape(description)}</description>")
                lines.append("      </issue>")
            lines.append("    </project>")
        lines.append("  </team>")
    lines.append("</teams>")
    return "\n".join(lines)


def build_user_prompt(
    grouped: TeamGroups,
    week: int,
    year: int,
    previous_summaries: list[str] | None = None,
) -> str:
    prompt = f"Current week: {week} of {year}\n\nCompleted issues:\n\n{format_issues(grouped)}"
    if previous_summaries:
        history = "\n\n".join(previous_summaries)
        prompt += (
            "\n\nPrevious weeks for context (use for running jokes and references):"
            f"\n\n{history}"
        )
    return prompt
