"""Token estimation and per-tier budget allocation."""

from pydantic import BaseModel

# Rough character-to-token ratio used for every tier.
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate the token count of ``text``.

    Integer division of the character count, so strings shorter than four
    characters count as zero tokens.
    """
    return len(text) // CHARS_PER_TOKEN


class TokenBudget(BaseModel):
    """Split of a total token budget across the three memory tiers.

    Shares are integer percentages of the total; rounding always goes down
    so the tier budgets never sum to more than the total.
    """

    total: int
    short_term_pct: int = 50
    working_pct: int = 35
    long_term_pct: int = 15

    @property
    def short_term(self) -> int:
        return self.total * self.short_term_pct // 100

    @property
    def working(self) -> int:
        return self.total * self.working_pct // 100

    @property
    def long_term(self) -> int:
        return self.total * self.long_term_pct // 100
