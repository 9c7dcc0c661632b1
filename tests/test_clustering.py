"""Tests for union-find clustering and token estimates."""

import random


class TestUnionFind:
    """Tests for UnionFind."""

    def test_union_reports_merges(self):
        from graphex_kg.utils import UnionFind

        uf = UnionFind(4)
        assert uf.union(0, 1) is True
        assert uf.union(1, 0) is False
        assert uf.connected(0, 1)
        assert not uf.connected(0, 2)

    def test_tie_keeps_lower_root(self):
        from graphex_kg.utils import UnionFind

        uf = UnionFind(3)
        uf.union(2, 1)
        assert uf.find(2) == 1

    def test_components_in_index_order(self):
        from graphex_kg.utils import union_find_components

        assert union_find_components(5, [(3, 4), (0, 2)]) == [[0, 2], [1], [3, 4]]

    def test_components_partition_random(self):
        """Components always partition the index range."""
        from graphex_kg.utils import UnionFind

        rng = random.Random(11)
        for _ in range(20):
            n = rng.randint(1, 30)
            uf = UnionFind(n)
            merges = 0
            for _ in range(rng.randint(0, 40)):
                merges += uf.union(rng.randrange(n), rng.randrange(n))

            components = uf.get_components()
            assert sorted(i for c in components for i in c) == list(range(n))
            assert len(components) == n - merges


class TestTokenCount:
    """Tests for token estimates."""

    def test_estimate_tokens(self):
        from graphex_kg.utils import estimate_tokens

        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_count_chat_tokens_heuristic(self, monkeypatch):
        """Without a tokenizer, chat counts use the heuristic plus framing."""
        from graphex_kg.utils import token_count

        monkeypatch.setattr(token_count, "_count_with_tiktoken", lambda text, model: None)
        messages = ["You build graphs.", "Extract concepts."]
        assert token_count.count_chat_tokens(messages, "gpt-4-turbo") == 5 + 5 + 8
