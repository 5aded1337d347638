"""
Deterministic fortune selection with an anti-repeat reroll
"""

import hashlib
from datetime import datetime
from typing import Optional, Tuple

from clawtar.fortune.pools import BANK, INTROS, VIBES
from clawtar.models import FortuneResult, FortuneStyle

# The three pools are indexed by seed // 1, seed // 7 and seed // 17 so one
# seed yields decorrelated picks.
SECOND_DIVISOR = 7
THIRD_DIVISOR = 17

REROLL_STEP = 17
MAX_REROLLS = 8
SEGMENT_DELIMITER = ":"


def to_seed(text: str) -> int:
    """First 32 bits of the sha256 of ``text``"""
    return int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:8], 16)


def make_seed(question: str, style: FortuneStyle, at: datetime) -> int:
    return to_seed(f"{question}|{style.value}|{int(at.timestamp() * 1000)}")


def pick_fortune(question: str, style: FortuneStyle, seed: int) -> FortuneResult:
    pool_a, pool_b, pool_c = BANK.get(style, BANK[FortuneStyle.FUNNY])
    intro = INTROS[seed % len(INTROS)]
    line_a = pool_a[seed % len(pool_a)]
    line_b = pool_b[(seed // SECOND_DIVISOR) % len(pool_b)]
    line_c = pool_c[(seed // THIRD_DIVISOR) % len(pool_c)]
    vibe = VIBES[seed % len(VIBES)]

    return FortuneResult(
        title=f"Clawtar says {vibe}",
        style=style,
        question=question,
        fortune=f"{intro}{SEGMENT_DELIMITER} {line_a} {line_b}. {line_c}",
        lucky_number=(seed % 77) + 1,
    )


def split_fortune(fortune: str) -> Tuple[str, str]:
    """(lead segment, tail segment) around the first delimiter"""
    text = fortune or ""
    index = text.find(SEGMENT_DELIMITER)
    lead = text if index <= 0 else text[:index].strip()
    tail = text.strip() if index < 0 else text[index + 1:].strip()
    return lead, tail


def select_fortune(
    question: str,
    style: FortuneStyle,
    seed: int,
    previous: Optional[str] = None,
) -> Tuple[FortuneResult, int]:
    """
    Pick a fortune whose lead and tail both differ from ``previous``.

    Rerolls by REROLL_STEP up to MAX_REROLLS times, then accepts a possible
    repeat. Returns the fortune and the seed that produced it.
    """
    result = pick_fortune(question, style, seed)
    if not previous:
        return result, seed

    last_lead, last_tail = split_fortune(previous)
    for _ in range(MAX_REROLLS):
        lead, tail = split_fortune(result.fortune)
        if not ((last_lead and lead == last_lead) or (last_tail and tail == last_tail)):
            break
        seed += REROLL_STEP
        result = pick_fortune(question, style, seed)
    return result, seed
