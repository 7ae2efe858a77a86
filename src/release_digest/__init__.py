"""Release Digest.

Aggregates releases from GitHub, GitLab, npm, an internal release feed and
the blog into one normalized, date-sorted feed, and turns the week's
releases into a short AI-written recap for Slack.
"""

__version__ = "0.1.0"
