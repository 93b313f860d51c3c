"""Approximate token counting for budget management."""

from __future__ import annotations


def _is_cjk(c: str) -> bool:
    return (
        "\u4e00" <= c <= "\u9fff"  # CJK Unified
        or "\uac00" <= c <= "\ud7af"  # Korean Hangul
        or "\u3040" <= c <= "\u309f"  # Hiragana
        or "\u30a0" <= c <= "\u30ff"  # Katakana
    )


class TokenCounter:
    """Counts tokens for budget management.

    Character-based estimation with CJK-aware heuristics:

    - English: ~4 characters per token
    - CJK (Korean, Japanese, Chinese): ~2 characters per token

    The estimate rounds up, so the cost of a concatenation never exceeds the
    sum of the costs of its pieces. The allocator relies on this to keep a
    section built from separately costed pieces within its budget.
    """

    def count(self, text: str) -> int:
        """Count tokens in a text string."""
        if not text:
            return 0
        cjk_count = sum(1 for c in text if _is_cjk(c))
        non_cjk = len(text) - cjk_count
        # ceil(non_cjk / 4 + cjk_count / 2)
        return -(-(non_cjk + 2 * cjk_count) // 4)

    def count_many(self, *texts: str) -> int:
        """Sum of the token counts of several texts."""
        return sum(self.count(text) for text in texts)


_default_counter = TokenCounter()


def estimate_tokens(text: str) -> int:
    """Estimate tokens with the default counter."""
    return _default_counter.count(text)


def combined_token_count(*texts: str) -> int:
    """Estimate the combined tokens of several texts with the default counter."""
    return _default_counter.count_many(*texts)
