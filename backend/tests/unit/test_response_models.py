"""Tests for upstream models, the canonical record and the API payload."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import address


class TestWalletAddress:
    """Address validation used by the delegator filter."""

    @pytest.mark.parametrize("prefix", ["tz1", "tz2", "tz3", "KT1"])
    def test_accepted_prefixes(self, prefix):
        from tezos_indexer.schemas.delegation import is_valid_wallet_address

        assert is_valid_wallet_address(address(7, prefix=prefix))

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "tz1",
            "tz4" + "0" * 33,
            "KT2" + "0" * 33,
            address(7)[:-1],
            address(7) + "0",
        ],
    )
    def test_rejected(self, value):
        from tezos_indexer.schemas.delegation import is_valid_wallet_address

        assert not is_valid_wallet_address(value)


class TestAmounts:
    """Mutez and tez conversions."""

    def test_mutez_to_tez_is_exact(self):
        from tezos_indexer.schemas.delegation import mutez_to_tez

        assert mutez_to_tez(1_500_000) == Decimal("1.5")
        assert mutez_to_tez(1) == Decimal("0.000001")
        assert mutez_to_tez(0) == 0


class TestTzktDelegation:
    """Upstream to canonical conversion."""

    def test_to_record(self, make_delegation):
        """Amount is divided by one million and the level becomes block_level."""
        d = make_delegation(id=5, level=42, amount=1_500_000, sender=3, delegate=9)
        record = d.to_record()

        assert record.upstream_id == 5
        assert record.block_level == 42
        assert record.amount_tez == Decimal("1.5")
        assert record.delegator == address(3)
        assert record.delegate == address(9)
        assert record.timestamp.tzinfo is not None

    def test_undelegation_has_empty_delegate(self, make_delegation):
        d = make_delegation(id=5, level=42, delegate=None)

        assert d.to_record().delegate == ""
        assert len(d.to_accounts()) == 1

    def test_to_accounts(self, make_delegation):
        """Sender is a user account, the new delegate a delegate account."""
        d = make_delegation(
            id=5, level=42, sender=3, delegate=9, sender_alias=None, delegate_alias="Baker"
        )
        sender, delegate = d.to_accounts()

        assert sender.address == address(3)
        assert sender.type == "user"
        assert sender.alias == ""
        assert delegate.address == address(9)
        assert delegate.type == "delegate"
        assert delegate.alias == "Baker"

    def test_status(self, make_delegation):
        assert make_delegation(id=1, level=1).is_applied
        assert not make_delegation(id=2, level=1, status="failed").is_applied
        assert not make_delegation(id=3, level=1, status="backtracked").is_applied

    def test_timestamp_normalized_to_utc(self):
        from tezos_indexer.services.data.response_models import parse_tzkt_timestamp

        parsed = parse_tzkt_timestamp("2022-05-05T08:00:00+02:00")
        assert parsed == datetime(2022, 5, 5, 6, 0, tzinfo=timezone.utc)
        assert parse_tzkt_timestamp("2022-05-05T06:00:00Z") == parsed

    def test_unknown_fields_ignored(self):
        from tezos_indexer.services.data.response_models import TzktDelegation

        d = TzktDelegation.model_validate(
            {
                "id": 1,
                "level": 2,
                "timestamp": "2022-05-05T06:00:00Z",
                "sender": {"address": address(1), "alias": None},
                "gasUsed": 1000,
                "unstakedRewards": 0,
                "status": "applied",
            }
        )
        assert d.amount == 0
        assert not hasattr(d, "gasUsed")


class TestDelegationOut:
    """API payload serialization."""

    def test_from_record(self, make_record):
        from tezos_indexer.schemas.delegation import DelegationOut

        record = make_record(
            upstream_id=1,
            level=2338084,
            timestamp=datetime(2022, 5, 5, 6, 29, 14, tzinfo=timezone.utc),
            amount_tez="125896.000000",
        )
        out = DelegationOut.from_record(record)

        assert out.timestamp == "2022-05-05T06:29:14Z"
        assert out.amount == 125896.0
        assert out.level == 2338084
        assert out.delegator == address(1)

    def test_timestamp_rendered_in_utc(self, make_record):
        from tezos_indexer.schemas.delegation import DelegationOut

        local = timezone(timedelta(hours=-5))
        record = make_record(upstream_id=1, timestamp=datetime(2022, 1, 1, 20, 0, tzinfo=local))

        assert DelegationOut.from_record(record).timestamp == "2022-01-02T01:00:00Z"

    def test_amount_serialized_in_tez(self, make_record):
        """Sub-tez amounts keep their fractional part in the JSON number."""
        from tezos_indexer.schemas.delegation import DelegationOut

        record = make_record(upstream_id=1, amount_tez="0.000001")
        payload = DelegationOut.from_record(record).model_dump()

        assert payload["amount"] == 0.000001
        assert isinstance(payload["amount"], float)


class TestPaginationInfo:
    """Pagination metadata."""

    def test_first_page(self):
        from tezos_indexer.schemas.common import PaginationInfo

        info = PaginationInfo.build(page=1, limit=50, total=120)

        assert info.has_next_page and info.next_page == 2
        assert not info.has_prev_page and info.prev_page is None

    def test_last_page(self):
        from tezos_indexer.schemas.common import PaginationInfo

        info = PaginationInfo.build(page=3, limit=50, total=120)

        assert not info.has_next_page and info.next_page is None
        assert info.has_prev_page and info.prev_page == 2

    def test_exact_boundary(self):
        """page * limit == total means no next page."""
        from tezos_indexer.schemas.common import PaginationInfo

        assert not PaginationInfo.build(page=2, limit=50, total=100).has_next_page
        assert not PaginationInfo.build(page=1, limit=50, total=0).has_next_page
