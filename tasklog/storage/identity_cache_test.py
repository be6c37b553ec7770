from tasklog.storage.identity_cache import EntryIdentityCache, content_digest


def test_content_digest_changes_with_content():
    assert content_digest("a") == content_digest("a")
    assert content_digest("a") != content_digest("b")


class TestEntryIdentityCache:
    def test_first_assignment_adopts_fresh_ids(self):
        cache = EntryIdentityCache()

        assert cache.assign("logs.csv", "content", ["a", "b"]) == ["a", "b"]
        assert len(cache) == 1

    def test_same_content_reuses_ids(self):
        cache = EntryIdentityCache()
        cache.assign("logs.csv", "content", ["a", "b"])

        assert cache.assign("logs.csv", "content", ["c", "d"]) == ["a", "b"]

    def test_changed_content_adopts_new_ids(self):
        cache = EntryIdentityCache()
        cache.assign("logs.csv", "content", ["a", "b"])

        assert cache.assign("logs.csv", "changed", ["c", "d"]) == ["c", "d"]
        assert cache.assign("logs.csv", "changed", ["e", "f"]) == ["c", "d"]

    def test_row_count_mismatch_adopts_new_ids(self):
        cache = EntryIdentityCache()
        cache.remember("logs.csv", "content", ["a"])

        assert cache.assign("logs.csv", "content", ["c", "d"]) == ["c", "d"]

    def test_keys_are_independent(self):
        cache = EntryIdentityCache()
        cache.assign("one.csv", "content", ["a"])

        assert cache.assign("two.csv", "content", ["b"]) == ["b"]
        assert len(cache) == 2

    def test_remember_then_assign(self):
        cache = EntryIdentityCache()
        cache.remember("logs.csv", "written", ["kept"])

        assert cache.assign("logs.csv", "written", ["fresh"]) == ["kept"]

    def test_forget_and_clear(self):
        cache = EntryIdentityCache()
        cache.remember("one.csv", "x", ["a"])
        cache.remember("two.csv", "y", ["b"])

        cache.forget("one.csv")
        cache.forget("missing.csv")
        assert len(cache) == 1
        assert cache.assign("one.csv", "x", ["c"]) == ["c"]

        cache.clear()
        assert len(cache) == 0

    def test_returned_list_is_a_copy(self):
        cache = EntryIdentityCache()
        ids = cache.assign("logs.csv", "content", ["a"])
        ids.append("b")

        assert cache.assign("logs.csv", "content", ["z"]) == ["a"]
