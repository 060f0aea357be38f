"""Prompt construction for meeting summaries."""

from __future__ import annotations

MAX_CUSTOM_PROMPT_CHARS = 500

DEFAULT_INSTRUCTIONS = """\
- Extract the key points, decisions, and action items
- Organize by topic in a logical structure
- Use markdown formatting to enhance readability
- Highlight important decisions and assignments
- Keep the summary concise yet comprehensive"""

OUTPUT_FORMAT = """\
Please provide a well-organized meeting summary using proper Markdown formatting with:

1. # H1 heading for the meeting title
2. ## H2 headings for main sections
3. ### H3 headings for subsections
4. Bullet points (- ) for lists of key points
5. **Bold text** for important decisions
6. Use `code blocks` for technical terms or code mentioned
7. > Blockquotes for important quotes from participants
8. Create a table for action items with columns for Task, Owner, and Deadline
9. Use horizontal rules (---) to separate major sections

Example structure:
```markdown
# Meeting Summary: [Project/Topic]

## Participants
- Person 1
- Person 2

## Key Discussion Points
### Topic 1
- Key point 1
- Key point 2

### Topic 2
- Discussion about X
- **Decision made**: We will proceed with option Y

## Action Items
| Task | Owner | Deadline |
|------|-------|----------|
| Complete feature X | Alice | 2023-09-15 |

## Next Steps
- Schedule follow-up meeting
```

Make sure your summary is structured, visually organized, and captures the essence of the meeting."""


def sanitize_custom_prompt(custom_prompt: str | None) -> str:
    """Trim caller instructions and cap their length."""
    if not custom_prompt:
        return ""
    return custom_prompt.strip()[:MAX_CUSTOM_PROMPT_CHARS]


def build_summary_prompt(transcript: str, custom_prompt: str | None = "") -> str:
    """Build the single user message sent to the provider."""
    instructions = sanitize_custom_prompt(custom_prompt)
    if instructions:
        instructions = f"Custom Instructions: {instructions}"
    else:
        instructions = DEFAULT_INSTRUCTIONS

    return (
        "# Meeting Transcript Summary Task\n\n"
        "## Context\n"
        "You are a professional meeting summarizer who converts transcripts into "
        "clear, structured summaries formatted in Markdown. Your summaries are valued "
        "for their clarity, organization, and visual structure.\n\n"
        f"## Transcript to Summarize\n{transcript}\n\n"
        f"## Instructions\n{instructions}\n\n"
        f"## Output Format\n{OUTPUT_FORMAT}"
    )
