"""Tests for entry resolution."""

import itertools
from uuid import UUID

import pytest

from naslock.errors import AmbiguousSelector, EntryNotFound, VaultIntegrityError
from naslock.vault.resolver import find_matches, resolve_entry
from naslock.vault.selector import TitleSelector, UuidSelector, parse_selector

TARGET = UUID("3d6f0b0c-6f7a-4c72-9d1b-badbeefcafe0")


@pytest.fixture
def entries(entry_factory):
    return [
        entry_factory("TrueNAS admin", "11111111-1111-1111-1111-111111111111"),
        entry_factory("tank/media passphrase", TARGET),
        entry_factory("Email", "22222222-2222-2222-2222-222222222222"),
    ]


class TestResolveByUuid:
    def test_found(self, entries):
        entry = resolve_entry(entries, UuidSelector(TARGET))
        assert entry.uuid == TARGET

    def test_not_found(self, entries):
        with pytest.raises(EntryNotFound):
            resolve_entry(entries, UuidSelector(UUID(int=7)))

    def test_duplicate_uuid_is_integrity_error(self, entry_factory):
        dupes = [entry_factory("a", TARGET), entry_factory("b", TARGET)]
        with pytest.raises(VaultIntegrityError) as exc:
            resolve_entry(dupes, UuidSelector(TARGET))
        assert exc.value.count == 2

    def test_prefixed_selector_scenario(self, entries):
        sel = parse_selector("uuid:3d6f0b0c-6f7a-4c72-9d1b-badbeefcafe0")
        assert resolve_entry(entries, sel).title == "tank/media passphrase"

    def test_same_string_without_prefix_is_title_lookup(self, entries):
        sel = parse_selector("3d6f0b0c-6f7a-4c72-9d1b-badbeefcafe0")
        with pytest.raises(EntryNotFound):
            resolve_entry(entries, sel)


class TestResolveByTitle:
    def test_exact_match(self, entries):
        entry = resolve_entry(entries, TitleSelector("TrueNAS admin"))
        assert entry.uuid == UUID("11111111-1111-1111-1111-111111111111")

    def test_case_sensitive(self, entries):
        with pytest.raises(EntryNotFound):
            resolve_entry(entries, TitleSelector("truenas admin"))

    def test_no_partial_match(self, entries):
        with pytest.raises(EntryNotFound):
            resolve_entry(entries, TitleSelector("TrueNAS"))

    def test_untitled_entries_never_match(self, entry_factory):
        with pytest.raises(EntryNotFound):
            resolve_entry([entry_factory(None)], TitleSelector(""))

    def test_duplicate_titles_are_ambiguous(self, entries, entry_factory):
        twin = entry_factory("TrueNAS admin", "00000000-0000-0000-0000-0000000000aa")
        with pytest.raises(AmbiguousSelector) as exc:
            resolve_entry(entries + [twin], TitleSelector("TrueNAS admin"))
        assert exc.value.uuids == [
            UUID("00000000-0000-0000-0000-0000000000aa"),
            UUID("11111111-1111-1111-1111-111111111111"),
        ]
        assert "uuid:00000000-0000-0000-0000-0000000000aa" in str(exc.value)


class TestDeterminism:
    def test_order_does_not_matter(self, entries):
        for perm in itertools.permutations(entries):
            assert resolve_entry(list(perm), TitleSelector("Email")).title == "Email"

    def test_ambiguity_reported_in_every_order(self, entry_factory):
        dupes = [entry_factory("same") for _ in range(3)]
        reported = set()
        for perm in itertools.permutations(dupes):
            with pytest.raises(AmbiguousSelector) as exc:
                resolve_entry(list(perm), TitleSelector("same"))
            reported.add(tuple(exc.value.uuids))
        assert len(reported) == 1

    def test_find_matches_sorted(self, entry_factory):
        a = entry_factory("x", "00000000-0000-0000-0000-000000000002")
        b = entry_factory("x", "00000000-0000-0000-0000-000000000001")
        assert [e.uuid.int for e in find_matches([a, b], TitleSelector("x"))] == [1, 2]
