"""
Tests for the identity mapping registry.

Tests:
- Deterministic identity derivation (known vectors, checksum form)
- One-time registration and creator attribution
- Lookups in both directions and their not-found errors
- MappingCreated events and rollback of failed registrations
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from addresses import ZERO_ADDRESS, is_address, to_checksum_address
from identity_mapping import SEED, ImmutableMapping, MappingRecord, derive_identity
from ratings_exceptions import (
    AddressNotMapped,
    AlreadyMapped,
    EmptyOrigin,
    OriginNotMapped,
    ZeroAddress,
)

RATINGS_WTF = "https://www.ratings.wtf"
RATINGS_WTF_IDENTITY = "0x4cAF50D10399FB59c024b9FcC6CCc986bBF56321"
EXAMPLE_COM = "https://www.example.com"
EXAMPLE_COM_IDENTITY = "0xE617884E65166fb138C89eA526F8FAa07534B76D"


class TestDeriveIdentity:
    """Tests for the derivation rule."""

    def test_known_vector_ratings_wtf(self):
        """The ratings.wtf origin derives its published identity."""
        assert derive_identity(RATINGS_WTF) == RATINGS_WTF_IDENTITY

    def test_known_vector_example_com(self):
        assert derive_identity(EXAMPLE_COM) == EXAMPLE_COM_IDENTITY

    def test_seed_is_fixed(self):
        assert SEED == "Immutable_Ratings_by_GM_EB_MB"

    def test_derivation_is_deterministic(self):
        assert derive_identity("origin-a") == derive_identity("origin-a")

    def test_distinct_origins_get_distinct_identities(self):
        assert derive_identity("origin-a") != derive_identity("origin-b")

    def test_identity_is_checksummed_address(self):
        identity = derive_identity("https://example.org/page?q=1")
        assert is_address(identity)
        assert identity == to_checksum_address(identity)

    def test_origin_is_case_sensitive(self):
        assert derive_identity("https://a.example") != derive_identity("https://A.example")

    def test_unicode_origin(self):
        """Non-ASCII origins are hashed as UTF-8."""
        identity = derive_identity("https://例え.jp")
        assert is_address(identity)

    def test_different_seed_changes_identity(self):
        assert derive_identity(RATINGS_WTF, seed="other-seed") != RATINGS_WTF_IDENTITY

    def test_empty_origin_rejected(self):
        with pytest.raises(EmptyOrigin):
            derive_identity("")

    def test_non_string_origin_rejected(self):
        with pytest.raises(TypeError):
            derive_identity(b"https://www.ratings.wtf")


class TestPreviewAddress:
    """Tests for preview_address on the registry."""

    def test_preview_matches_derivation(self, mapping):
        assert mapping.preview_address(RATINGS_WTF) == RATINGS_WTF_IDENTITY

    def test_preview_does_not_register(self, mapping):
        mapping.preview_address(RATINGS_WTF)
        assert not mapping.is_origin_mapped(RATINGS_WTF)
        assert mapping.mapping_count == 0

    def test_preview_empty_origin(self, mapping):
        with pytest.raises(EmptyOrigin):
            mapping.preview_address("")


class TestCreateMapping:
    """Tests for one-time registration."""

    def test_create_mapping_returns_identity(self, mapping, accounts):
        identity = mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        assert identity == RATINGS_WTF_IDENTITY

    def test_create_mapping_records_creator(self, mapping, accounts):
        mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        assert mapping.is_origin_mapped(RATINGS_WTF)
        assert mapping.address_of(RATINGS_WTF) == RATINGS_WTF_IDENTITY
        assert mapping.origin_of(RATINGS_WTF_IDENTITY) == RATINGS_WTF
        assert mapping.creator_of(RATINGS_WTF_IDENTITY) == accounts.alice
        assert mapping.origin_creator_of(RATINGS_WTF) == accounts.alice

    def test_create_mapping_emits_event(self, mapping, accounts, chain):
        mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        events = chain.get_events("MappingCreated", address=mapping.address)
        assert len(events) == 1
        assert events[0].args == {
            "origin": RATINGS_WTF,
            "identity": RATINGS_WTF_IDENTITY,
            "creator": accounts.alice,
        }

    def test_create_mapping_twice_fails(self, mapping, accounts):
        """Registration is one-time, even for a different caller."""
        mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        with pytest.raises(AlreadyMapped) as exc_info:
            mapping.create_mapping(RATINGS_WTF, sender=accounts.bob)
        assert exc_info.value.details["identity"] == RATINGS_WTF_IDENTITY
        assert mapping.creator_of(RATINGS_WTF_IDENTITY) == accounts.alice

    def test_failed_registration_emits_nothing(self, mapping, accounts, chain):
        mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        before = len(chain.events)
        with pytest.raises(AlreadyMapped):
            mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        assert len(chain.events) == before

    def test_create_mapping_empty_origin(self, mapping, accounts):
        with pytest.raises(EmptyOrigin):
            mapping.create_mapping("", sender=accounts.alice)
        assert mapping.mapping_count == 0

    def test_create_mapping_for_explicit_creator(self, mapping, accounts):
        mapping.create_mapping_for(EXAMPLE_COM, accounts.bob, sender=accounts.alice)
        assert mapping.creator_of(EXAMPLE_COM_IDENTITY) == accounts.bob

    def test_create_mapping_for_zero_creator(self, mapping, accounts):
        with pytest.raises(ZeroAddress):
            mapping.create_mapping_for(EXAMPLE_COM, ZERO_ADDRESS, sender=accounts.alice)
        assert not mapping.is_origin_mapped(EXAMPLE_COM)

    def test_mapping_count(self, mapping, accounts):
        mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        mapping.create_mapping(EXAMPLE_COM, sender=accounts.bob)
        assert mapping.mapping_count == 2

    def test_get_mapping_record(self, mapping, accounts):
        mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        record = mapping.get_mapping(RATINGS_WTF)
        assert isinstance(record, MappingRecord)
        assert record.to_dict() == {
            "origin": RATINGS_WTF,
            "identity": RATINGS_WTF_IDENTITY,
            "creator": accounts.alice,
        }

    def test_identity_cannot_be_rebound(self, chain, accounts):
        """A derived identity already bound to one origin is never bound to another."""

        class FixedIdentityMapping(ImmutableMapping):
            def preview_address(self, origin):
                return RATINGS_WTF_IDENTITY

        registry = chain.deploy(FixedIdentityMapping, deployer=accounts.deployer)
        registry.create_mapping("first", sender=accounts.alice)
        with pytest.raises(AlreadyMapped):
            registry.create_mapping("second", sender=accounts.alice)
        assert registry.origin_of(RATINGS_WTF_IDENTITY) == "first"
        assert not registry.is_origin_mapped("second")


class TestLookups:
    """Tests for not-found lookups."""

    def test_address_of_unmapped_origin(self, mapping):
        with pytest.raises(OriginNotMapped):
            mapping.address_of(RATINGS_WTF)

    def test_origin_of_unmapped_identity(self, mapping):
        with pytest.raises(AddressNotMapped):
            mapping.origin_of(RATINGS_WTF_IDENTITY)

    def test_creator_of_unmapped_identity(self, mapping):
        with pytest.raises(AddressNotMapped):
            mapping.creator_of(RATINGS_WTF_IDENTITY)

    def test_origin_creator_of_unmapped_origin(self, mapping):
        with pytest.raises(OriginNotMapped):
            mapping.origin_creator_of(RATINGS_WTF)

    def test_lookup_accepts_lowercase_identity(self, mapping, accounts):
        mapping.create_mapping(RATINGS_WTF, sender=accounts.alice)
        assert mapping.origin_of(RATINGS_WTF_IDENTITY.lower()) == RATINGS_WTF

    def test_lookup_with_malformed_identity(self, mapping):
        with pytest.raises(AddressNotMapped):
            mapping.origin_of("not-an-address")
