"""
AI operations: Gemini generation of tagged notes.
"""

import re
import logging
from typing import Optional

from config import log_event, gemini_model
from services.tagged_text import strip_model_blank_lines

SENTENCE_PATTERN = re.compile(r"(?<=[.!?])\s+")


def _build_prompt(transcript: str, user_notes: str) -> str:
    return f"""You are a meeting note-taker that enhances a user's rough notes.

**User Notes (written by the user during the meeting):**
```markdown
{user_notes or "(none)"}
```

**Transcript:**
"{transcript}"

**Instruction:**
Produce concise enhanced notes in Markdown.
- Start EVERY non-heading line with a provenance tag: [user] if the line keeps
  the user's own wording, [ai] if you wrote it.
- Headings (## or ###) carry no tag.
- Use "- " bullets, indented by two spaces per nesting level.
- Keep the user's notes; add missing decisions, owners and follow-ups.
- No blank lines and no horizontal rules.

Return ONLY the markdown content, no code blocks or explanations."""


def _clean_model_output(text: str) -> str:
    content = text.strip()
    if content.startswith("```markdown"):
        content = content[11:]
    if content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return strip_model_blank_lines(content.strip())


def fallback_tagged_notes(transcript: str, user_notes: Optional[str]) -> str:
    """Deterministic notes without Gemini: user lines first, transcript as ai bullets."""
    lines = []
    for line in (user_notes or "").split("\n"):
        if line.strip():
            lines.append(f"[user] {line.strip()}")
    sentences = [s.strip() for s in SENTENCE_PATTERN.split(transcript or "") if s.strip()]
    if sentences:
        lines.append("## Transcript highlights")
        lines.extend(f"[ai] - {s}" for s in sentences)
    log_event(logging.INFO, "fallback_notes_generated", lines=len(lines))
    return "\n".join(lines)


def generate_tagged_notes(transcript: str, user_notes: Optional[str] = None) -> str:
    """Tagged text for a whole document; always safe to hand to the parser."""
    if not gemini_model:
        log_event(logging.WARNING, "gemini_unavailable_fallback")
        return fallback_tagged_notes(transcript, user_notes)

    try:
        log_event(logging.INFO, "gemini_request", transcript_chars=len(transcript or ""))
        response = gemini_model.generate_content(_build_prompt(transcript, user_notes or ""))
        content = _clean_model_output(response.text)
        log_event(logging.INFO, "gemini_notes_generated", lines=content.count("\n") + 1 if content else 0)
        return content
    except Exception as e:
        log_event(logging.ERROR, "gemini_error_fallback", error=str(e))
        return fallback_tagged_notes(transcript, user_notes)
