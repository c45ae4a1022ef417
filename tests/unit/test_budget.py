"""Tests for token estimation and budget allocation."""

from agentmem.memory.budget import TokenBudget, estimate_tokens


class TestEstimateTokens:
    """Tests for estimate_tokens."""

    def test_four_characters_per_token(self):
        """Should count one token per four characters."""
        assert estimate_tokens("abcd" * 10) == 10

    def test_rounds_down(self):
        """Should use integer division."""
        assert estimate_tokens("abcdefg") == 1

    def test_short_strings_are_free(self):
        """Should count strings under four characters as zero tokens."""
        assert estimate_tokens("") == 0
        assert estimate_tokens("Hi!") == 0


class TestTokenBudget:
    """Tests for TokenBudget."""

    def test_default_split(self):
        """Should split 50/35/15."""
        budget = TokenBudget(total=1000)

        assert budget.short_term == 500
        assert budget.working == 350
        assert budget.long_term == 150

    def test_rounding_never_exceeds_total(self):
        """Should floor each share."""
        budget = TokenBudget(total=7)

        assert budget.short_term == 3
        assert budget.working == 2
        assert budget.long_term == 1
        assert budget.short_term + budget.working + budget.long_term <= 7

    def test_custom_split(self):
        """Should honour custom percentages."""
        budget = TokenBudget(total=200, short_term_pct=20, working_pct=30, long_term_pct=50)

        assert budget.short_term == 40
        assert budget.working == 60
        assert budget.long_term == 100
