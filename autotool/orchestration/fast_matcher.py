"""Deterministic, pattern-based tool detection.

The fast path answers the obvious requests ("generate an image of ...", "search the
web for ...") without calling the intent classifier. Each catalog tool owns a rule
set; rules are evaluated against a casefolded, diacritic-free copy of the message
so "Görsel oluştur" and "gorsel olustur" behave the same.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from ..core.logging import get_logger
from ..tools.catalog import TOOL_CATEGORIES, ToolCategory, ToolIdentifier, category_for, ordered_unique
from .state import DetectionResult

logger = get_logger(name=__name__)

# Letters that do not decompose under NFKD.
_FOLD_TABLE = str.maketrans({"ı": "i", "ø": "o", "æ": "ae", "ł": "l", "đ": "d", "’": "'"})


def fold_text(text: str) -> str:
    """Lowercase ``text`` and strip diacritics."""
    decomposed = unicodedata.normalize("NFKD", text.casefold().translate(_FOLD_TABLE))
    return "".join(char for char in decomposed if not unicodedata.combining(char))


@dataclass(frozen=True)
class TriggerRule:
    """Positive and negative patterns for one tool.

    A ``category_wide`` rule answers for its whole tool category rather than for
    ``tool`` alone.

    Negative matches are blanked out of the text before positives are tested, so
    "binary search" never counts as a web search request while
    "binary search, then search the web" still does.
    """

    tool: ToolIdentifier
    patterns: tuple[str, ...]
    negative_patterns: tuple[str, ...] = ()
    category_wide: bool = False
    _compiled: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)
    _negatives: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_compiled", tuple(re.compile(pattern) for pattern in self.patterns))
        object.__setattr__(self, "_negatives", tuple(re.compile(pattern) for pattern in self.negative_patterns))

    def first_match(self, folded: str) -> str | None:
        text = folded
        for negative in self._negatives:
            text = negative.sub(" ", text)
        for index, pattern in enumerate(self._compiled):
            if pattern.search(text):
                return f"{self.tool.value}[{index}]"
        return None


DEFAULT_TRIGGER_RULES: tuple[TriggerRule, ...] = (
    TriggerRule(
        ToolIdentifier.IMAGE_GENERATION,
        patterns=(
            r"\b(create|generate|make|draw|design|produce|render|show me)\b.*"
            r"\b(image|picture|photo|visual|illustration|artwork|graphic|pic|drawing|logo|poster|wallpaper|portrait)s?\b",
            r"\b(image|picture|photo|illustration|artwork|pic)s?\s+(of|showing|depicting)\b",
            r"\b(draw|sketch|illustrate|depict|paint)\b",
            r"\bphotorealistic\b|\bpixel art\b",
            # Turkish: resim, görsel, fotoğraf + oluştur, üret, çiz, hazırla
            r"\b(resim|resm|gorsel|fotograf)\w*\b.*\b(olustur|uret|ciz|hazirla|yap)\w*",
            r"\b(olustur|uret|ciz|hazirla)\w*\b.*\b(resim|resm|gorsel|fotograf)\w*",
            r"\bciz(in|er misin)?\b",
        ),
        negative_patterns=(
            r"\bdraw(ing)? (a |any |the )?conclusions?\b",
            r"\bdraw(ing)? (a |the )?line\b",
            r"\bdraw(ing)? attention\b",
        ),
        category_wide=True,
    ),
    TriggerRule(
        ToolIdentifier.WEB_SEARCH,
        patterns=(
            r"\b(search|google|look\s*up|research|investigate|browse)\b",
            r"\b(latest|recent|current|breaking|today'?s)\b",
            r"\b(news|headlines?)\b",
            r"\bfind\b.*\b(information|info|articles?|sources?|out)\b",
            # Turkish: ara, araştır, bul, güncel, haber, son dakika
            r"\b(ara|arastir\w*|bul|guncel\w*|haber\w*|son dakika)\b",
        ),
        negative_patterns=(
            r"\b(binary|linear|depth[\s-]first|breadth[\s-]first)\s+search\b",
            r"\bsearch\s+(algorithm|function|method|tree)s?\b",
            r"\bfile search\b",
        ),
        category_wide=True,
    ),
    TriggerRule(
        ToolIdentifier.EXECUTE_CODE,
        patterns=(
            r"\b(run|execute|exec)\b.*\b(code|script|program|snippet|python|javascript|notebook)\b",
            r"\bcode interpreter\b",
            r"\b(calculate|compute|plot|chart|graph)\b.*\b(using|with|in)\s+(python|code)\b",
            r"\b(analy[sz]e|plot|chart|visuali[sz]e)\b.*\b(csv|xlsx|excel|spreadsheet|dataset)\b",
            # Turkish: kodu çalıştır
            r"\b(kod|kodu|script\w*|betik\w*)\b.*\bcalistir\w*",
        ),
        category_wide=True,
    ),
    TriggerRule(
        ToolIdentifier.FILE_SEARCH,
        patterns=(
            r"\bfile search\b",
            r"\b(uploaded|attached)\s+(files?|documents?|docs?|pdfs?)\b",
            r"\b(in|from|within|across|search)\s+(my|the|this|these)\s+(files?|documents?|pdfs?|attachments?)\b",
            # Turkish: dosyada/belgede ara, bul
            r"\b(dosya|belge|dokuman)\w*\b.*\b(ara|bul|icinde)\w*",
        ),
        category_wide=True,
    ),
    TriggerRule(
        ToolIdentifier.NANO_BANANA,
        patterns=(r"\bnano[\s_-]?banana\b",),
    ),
    TriggerRule(
        ToolIdentifier.FLUX,
        patterns=(
            r"\b(with|using|via|in)\s+flux\b",
            r"\bflux\b.*\b(image|picture|photo|render|generate|create|draw)\w*",
        ),
    ),
    TriggerRule(
        ToolIdentifier.DALLE,
        patterns=(r"\bdall[\s_·-]?e\b",),
    ),
)


class FastMatcher:
    """Applies the trigger table to a message, restricted to a candidate pool.

    A category-wide rule selects the highest-priority member of its category that
    the pool holds, so "draw a cat" picks ``nano-banana`` for an agent that only
    has that image tool. Provider-specific rules run first; once one fires, the
    category-wide rule of the same category is skipped.
    """

    def __init__(self, rules: Iterable[TriggerRule] = DEFAULT_TRIGGER_RULES) -> None:
        self._rules: tuple[TriggerRule, ...] = tuple(sorted(rules, key=lambda rule: rule.category_wide))

    def match(self, message: Any, candidate_pool: Sequence[str]) -> DetectionResult:
        if not isinstance(message, str) or not message.strip():
            return DetectionResult.no_match()

        folded = fold_text(message)
        pool = ordered_unique(candidate_pool)
        present = set(pool)
        chosen: set[str] = set()
        covered: set[ToolCategory] = set()
        fired: list[str] = []
        for rule in self._rules:
            category = category_for(rule.tool.value)
            if rule.category_wide and category in covered:
                continue
            target = _target_for(rule, category, present)
            if target is None:
                continue
            matched = rule.first_match(folded)
            if matched is None:
                continue
            chosen.add(target)
            fired.append(matched)
            if category is not None:
                covered.add(category)

        if not chosen:
            return DetectionResult.no_match()
        selected = tuple(tool for tool in pool if tool in chosen)
        logger.debug("fast_matcher_fired", rules=fired, selected_tools=list(selected))
        return DetectionResult(
            matched_by_fast_path=True,
            selected_tools=selected,
            matched_rules=tuple(fired),
        )


def _target_for(rule: TriggerRule, category: ToolCategory | None, present: set[str]) -> str | None:
    if rule.category_wide and category is not None:
        for member in TOOL_CATEGORIES[category]:
            if member.value in present:
                return member.value
        return None
    return rule.tool.value if rule.tool.value in present else None


_default_matcher = FastMatcher()


def quick_match(message: Any, candidate_pool: Sequence[str]) -> DetectionResult:
    return _default_matcher.match(message, candidate_pool)


__all__ = ["DEFAULT_TRIGGER_RULES", "FastMatcher", "TriggerRule", "fold_text", "quick_match"]
