"""Tests for UUID parsing and synthetic UUID derivation."""

from uuid import UUID

from scanfinder.discovery.ids import hash_uuid, parse_uuid

_EXPECTED = UUID("4509a320-00a0-008f-00b6-002507510eca")


class TestParseUuid:

    def test_canonical(self):
        assert parse_uuid("4509a320-00a0-008f-00b6-002507510eca") == _EXPECTED

    def test_urn_prefix(self):
        assert parse_uuid("urn:uuid:4509a320-00a0-008f-00b6-002507510eca") == _EXPECTED

    def test_braces_and_upper_case(self):
        assert parse_uuid("{4509A320-00A0-008F-00B6-002507510ECA}") == _EXPECTED

    def test_no_dashes(self):
        assert parse_uuid("4509a32000a0008f00b6002507510eca") == _EXPECTED

    def test_too_short(self):
        assert parse_uuid("4509a320-00a0-008f-00b6") is None

    def test_too_long(self):
        assert parse_uuid("4509a320-00a0-008f-00b6-002507510eca-ff") is None

    def test_empty_and_none(self):
        assert parse_uuid("") is None
        assert parse_uuid(None) is None


class TestHashUuid:

    def test_stable(self):
        assert hash_uuid("Kyocera ECOSYS M2040dn") == hash_uuid("Kyocera ECOSYS M2040dn")

    def test_distinct_names(self):
        assert hash_uuid("Scanner A") != hash_uuid("Scanner B")

    def test_is_name_based(self):
        assert hash_uuid("Scanner A").version == 5
