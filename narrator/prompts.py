from __future__ import annotations

from pathlib import Path
from typing import Optional

from loguru import logger


DEFAULT_EXPLAIN_PROMPT = (
    "You are a friendly university lecturer. Look at this image and explain it "
    "to your students as if you were speaking aloud in class.\n"
    "Rules:\n"
    "- Answer in Korean, using a polite spoken lecture tone (존댓말).\n"
    "- Write plain paragraph prose only. Do not use markdown headings, bullet "
    "points, numbered lists or bold text.\n"
    "- End every sentence with proper punctuation.\n"
    "- Keep the whole explanation between roughly 100 and 250 characters.\n"
    "- Do not end the answer with more than two newline characters."
)


def load_explain_prompt(path: Optional[str] = None) -> str:
    """Prompt template for ``/explain``; a non-empty file at ``path`` replaces the default."""
    if not path:
        return DEFAULT_EXPLAIN_PROMPT
    prompt_path = Path(path)
    try:
        text = prompt_path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Explain prompt file {} could not be read: {}", prompt_path, exc)
        raise RuntimeError(f"EXPLAIN_PROMPT_FILE {prompt_path} could not be read: {exc}") from exc
    if not text:
        logger.warning("Explain prompt file {} is empty, using the default prompt", prompt_path)
        return DEFAULT_EXPLAIN_PROMPT
    logger.info("Loaded explain prompt from {}", prompt_path)
    return text
