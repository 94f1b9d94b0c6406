"""Tests for zapspine.analytics.zaps (receipt parsing and enrichment)."""

import json

import pytest

from tests._support.fakes import NOW, SUBJECT, ZAPPER, make_note, make_receipt
from zapspine.analytics.zaps import (
    enrich_zap,
    is_valid_zap_receipt,
    parse_bolt11_amount,
    parse_zap_receipt,
    parse_zap_receipts,
    parse_zap_request,
    zapper_pubkey,
)
from zapspine.core.models import Record


class TestBolt11:
    @pytest.mark.parametrize(
        "invoice,sats",
        [
            ("lnbc2500u1pvjluez", 250_000),
            ("lnbc20m1pvjluez", 2_000_000),
            ("lnbc1m1pvjluez", 100_000),
            ("lnbc210n1pjtest", 21),
            ("lnbc10000p1pjtest", 1),
            ("lnbc1500n1pjtest", 150),
            ("lntb500u1pjtest", 50_000),
            ("lnbcrt1u1pjtest", 100),
            ("LNBC2500U1PVJLUEZ", 250_000),
            ("lightning:lnbc2500u1pvjluez", 250_000),
        ],
    )
    def test_amounts(self, invoice, sats):
        assert parse_bolt11_amount(invoice) == sats

    @pytest.mark.parametrize("invoice", [None, "", "lnbc1pvjluez", "notaninvoice", "lnbc5n1pjtest", "lnxx100u1abc"])
    def test_unusable(self, invoice):
        assert parse_bolt11_amount(invoice) is None


class TestZapRequest:
    def test_decodes_object(self):
        assert parse_zap_request('{"pubkey": "x"}') == {"pubkey": "x"}

    @pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]"])
    def test_rejects_non_objects(self, raw):
        assert parse_zap_request(raw) is None


class TestValidity:
    def test_valid_receipt(self):
        assert is_valid_zap_receipt(make_receipt("a", NOW))

    def test_wrong_kind(self):
        record = make_receipt("a", NOW)
        assert not is_valid_zap_receipt(Record(**{**record.__dict__, "kind": 1}))

    def test_missing_tags(self):
        record = Record(id="a", pubkey="x", created_at=NOW, kind=9735, tags=(("p", SUBJECT), ("bolt11", "lnbc1u1x")))
        assert not is_valid_zap_receipt(record)


class TestParseReceipt:
    def test_basic_fields(self):
        zap = parse_zap_receipt(make_receipt("a", NOW, amount_sats=1000, comment="great post", event_id="e1"))
        assert zap is not None
        assert zap.amount == 1000
        assert zap.zapper.pubkey == ZAPPER
        assert zap.recipient == SUBJECT
        assert zap.comment == "great post"
        assert zap.zapped_event.id == "e1"
        assert zap.zapped_event.kind is None
        assert zap.created_at == NOW

    def test_amount_falls_back_to_request(self):
        zap = parse_zap_receipt(make_receipt("a", NOW, amount_sats=42, bolt11="lnbc1pvjluez"))
        assert zap.amount == 42

    def test_no_amount_is_dropped(self):
        record = make_receipt("a", NOW, bolt11="garbage")
        description = json.dumps({"pubkey": ZAPPER, "tags": []})
        tags = tuple(t if t[0] != "description" else ("description", description) for t in record.tags)
        assert parse_zap_receipt(Record(**{**record.__dict__, "tags": tags})) is None

    def test_zapper_falls_back_to_uppercase_p_then_pubkey(self):
        base = make_receipt("a", NOW)
        tags = tuple(t if t[0] != "description" else ("description", "not json") for t in base.tags)
        without_request = Record(**{**base.__dict__, "tags": tags})
        assert zapper_pubkey(without_request) == base.pubkey
        with_sender = Record(**{**base.__dict__, "tags": tags + (("P", "f" * 64),)})
        assert zapper_pubkey(with_sender) == "f" * 64
        assert parse_zap_receipt(with_sender).zapper.pubkey == "f" * 64

    def test_kind_hint(self):
        zap = parse_zap_receipt(make_receipt("a", NOW, event_id="e1", kind_hint=30023))
        assert zap.zapped_event.kind == 30023

    def test_address_target(self):
        zap = parse_zap_receipt(make_receipt("a", NOW, address=f"30023:{SUBJECT}:my-article"))
        assert zap.zapped_event.id == f"30023:{SUBJECT}:my-article"
        assert zap.zapped_event.kind == 30023
        assert zap.zapped_event.author == SUBJECT

    def test_profile_zap_has_no_target(self):
        assert parse_zap_receipt(make_receipt("a", NOW)).zapped_event is None

    def test_parse_many_skips_invalid(self):
        bogus = Record(id="b", pubkey="x", created_at=NOW, kind=9735)
        zaps = parse_zap_receipts([make_receipt("a", NOW), bogus])
        assert [z.id for z in zaps] == ["a"]

    def test_to_dict(self):
        data = parse_zap_receipt(make_receipt("a", NOW, event_id="e1")).to_dict()
        assert data["amount"] == 21
        assert data["zapper"]["pubkey"] == ZAPPER
        assert data["zapped_event"] == {"id": "e1", "kind": None, "author": None}


class TestEnrich:
    def test_content_and_profile(self):
        zap = parse_zap_receipt(make_receipt("a", NOW, event_id="e1"))
        note = make_note("e1", NOW - 600, content="hello #nostr", tags=[["t", "Nostr"]])
        enriched = enrich_zap(zap, {"e1": note}, {ZAPPER: {"display_name": "Alice", "nip05": "alice@x"}})
        assert enriched.zapped_event.kind == 1
        assert enriched.zapped_event.content == "hello #nostr"
        assert enriched.zapped_event.created_at == NOW - 600
        assert enriched.zapped_event.hashtags == ["nostr"]
        assert enriched.zapper.name == "Alice"
        assert enriched.zapper.nip05 == "alice@x"

    def test_name_preferred_over_display_name(self):
        zap = parse_zap_receipt(make_receipt("a", NOW))
        enriched = enrich_zap(zap, {}, {ZAPPER: {"name": "alice", "display_name": "Alice"}})
        assert enriched.zapper.name == "alice"

    def test_nothing_known_returns_same_object(self):
        zap = parse_zap_receipt(make_receipt("a", NOW, event_id="e1"))
        assert enrich_zap(zap, {}, {}) is zap
