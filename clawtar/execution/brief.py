"""
Structured brief: the work function executed for queued tasks
"""

import re
from collections import Counter
from typing import Any, Dict

SUMMARY_CHARS = 180
MAX_KEYWORDS = 5
MAX_ACTION_ITEMS = 3


def build_structured_brief(text: str) -> Dict[str, Any]:
    """Summarise free text into summary, keywords, complexity and action items"""
    normalized = re.sub(r"\s+", " ", text.strip())

    words = [
        w for w in re.sub(r"[^a-z0-9\s]", " ", normalized.lower()).split()
        if len(w) >= 4
    ]
    counts = Counter(words)
    keywords = [
        word for word, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ][:MAX_KEYWORDS]

    if len(normalized) > 320:
        complexity = "high"
    elif len(normalized) > 140:
        complexity = "medium"
    else:
        complexity = "low"

    sentences = [s.strip() for s in re.split(r"[.!?]+", normalized) if s.strip()]
    action_items = [
        {"id": i + 1, "item": s} for i, s in enumerate(sentences[:MAX_ACTION_ITEMS])
    ]

    return {
        "type": "structured_brief",
        "version": "1.0",
        "summary": normalized[:SUMMARY_CHARS],
        "keywords": keywords,
        "complexity": complexity,
        "action_items": action_items,
    }
