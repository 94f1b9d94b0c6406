"""Zap receipt validation and parsing (NIP-57).

A zap receipt is a kind-9735 record published by a lightning service
after an invoice was paid. The fields analytics needs are spread over
its tags::

    ["bolt11", "<invoice>"]          amount (human-readable part)
    ["description", "<json>"]        the zap request: zapper, comment, amount
    ["p", "<recipient>"]             subject
    ["P", "<zapper>"]                optional sender hint
    ["e", "<event id>"] / ["a", "<kind:pubkey:d>"]   zapped content
    ["k", "<kind>"]                  kind of the zapped content

Malformed receipts are dropped (``parse_zap_receipt`` returns None),
never raised.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, replace
from typing import Any

from zapspine.core.models import Record

ZAP_RECEIPT_KIND = 9735

_HRP = re.compile(r"^ln(bcrt|bc|tbs|tb|sb)(\d+)([munp])?$")

# millisatoshis per unit of the bolt11 amount, by multiplier
_MSATS_PER_UNIT: dict[str | None, int] = {
    None: 100_000_000_000,
    "m": 100_000_000,
    "u": 100_000,
    "n": 100,
}


@dataclass(frozen=True)
class Zapper:
    pubkey: str
    name: str | None = None
    nip05: str | None = None
    picture: str | None = None


@dataclass(frozen=True)
class ZappedEvent:
    """The content a zap was sent for; enriched from the content lookup."""

    id: str
    kind: int | None = None
    author: str | None = None
    content: str | None = None
    created_at: int | None = None
    tags: tuple[tuple[str, ...], ...] = ()

    @property
    def hashtags(self) -> list[str]:
        return sorted({t[1].lower() for t in self.tags if len(t) >= 2 and t[0] == "t" and t[1]})


@dataclass(frozen=True)
class ParsedZap:
    id: str
    amount: int
    created_at: int
    zapper: Zapper
    recipient: str
    comment: str = ""
    zapped_event: ZappedEvent | None = None
    receipt: Record | None = None

    def to_dict(self) -> dict[str, Any]:
        event = self.zapped_event
        return {
            "id": self.id,
            "amount": self.amount,
            "created_at": self.created_at,
            "zapper": {
                "pubkey": self.zapper.pubkey,
                "name": self.zapper.name,
                "nip05": self.zapper.nip05,
                "picture": self.zapper.picture,
            },
            "recipient": self.recipient,
            "comment": self.comment,
            "zapped_event": None
            if event is None
            else {"id": event.id, "kind": event.kind, "author": event.author},
        }


def is_valid_zap_receipt(record: Record) -> bool:
    """Kind 9735 carrying ``bolt11``, ``description`` and ``p`` tags."""
    if record.kind != ZAP_RECEIPT_KIND:
        return False
    return all(record.tag_value(name) for name in ("bolt11", "description", "p"))


def parse_bolt11_amount(invoice: str | None) -> int | None:
    """Amount in sats from a bolt11 invoice's human-readable part.

    Examples:
        >>> parse_bolt11_amount("lnbc2500u1pvjluez")
        250000
        >>> parse_bolt11_amount("lnbc1pvjluez") is None
        True
    """
    if not invoice:
        return None
    text = invoice.strip().lower()
    if text.startswith("lightning:"):
        text = text[len("lightning:") :]
    separator = text.rfind("1")
    if separator <= 0:
        return None
    match = _HRP.match(text[:separator])
    if match is None:
        return None

    value = int(match.group(2))
    multiplier = match.group(3)
    if multiplier == "p":
        msats = value // 10
    else:
        msats = value * _MSATS_PER_UNIT[multiplier]
    sats = msats // 1000
    return sats if sats > 0 else None


def parse_zap_request(description: str | None) -> dict[str, Any] | None:
    """Decode the embedded zap request; None when absent or not an object."""
    if not description:
        return None
    try:
        request = json.loads(description)
    except (json.JSONDecodeError, TypeError):
        return None
    return request if isinstance(request, dict) else None


def _request_tag(request: dict[str, Any], name: str) -> str | None:
    tags = request.get("tags")
    if not isinstance(tags, list):
        return None
    for tag in tags:
        if isinstance(tag, list) and len(tag) >= 2 and tag[0] == name and isinstance(tag[1], str):
            return tag[1]
    return None


def _request_amount(request: dict[str, Any] | None) -> int | None:
    if request is None:
        return None
    raw = _request_tag(request, "amount")
    if raw is None or not raw.isdigit():
        return None
    sats = int(raw) // 1000
    return sats if sats > 0 else None


def _zapped_event(record: Record) -> ZappedEvent | None:
    kind_hint = record.tag_value("k")
    kind = int(kind_hint) if kind_hint and kind_hint.isdigit() else None

    event_id = record.tag_value("e")
    if event_id:
        return ZappedEvent(id=event_id, kind=kind)

    address = record.tag_value("a")
    if address:
        parts = address.split(":", 2)
        if len(parts) == 3 and parts[0].isdigit():
            return ZappedEvent(id=address, kind=int(parts[0]), author=parts[1] or None)
        return ZappedEvent(id=address, kind=kind)
    return None


def parse_zap_receipt(record: Record) -> ParsedZap | None:
    """Parse a receipt into a ``ParsedZap``; None when it cannot be used."""
    if not is_valid_zap_receipt(record):
        return None

    request = parse_zap_request(record.tag_value("description"))
    amount = parse_bolt11_amount(record.tag_value("bolt11")) or _request_amount(request)
    if not amount or amount <= 0:
        return None

    zapper_pubkey = None
    if request is not None and isinstance(request.get("pubkey"), str) and request["pubkey"]:
        zapper_pubkey = request["pubkey"]
    zapper_pubkey = zapper_pubkey or record.tag_value("P") or record.pubkey

    comment = ""
    if request is not None and isinstance(request.get("content"), str):
        comment = request["content"]

    return ParsedZap(
        id=record.id,
        amount=amount,
        created_at=record.created_at,
        zapper=Zapper(pubkey=zapper_pubkey),
        recipient=record.tag_value("p") or "",
        comment=comment,
        zapped_event=_zapped_event(record),
        receipt=record,
    )


def parse_zap_receipts(records: list[Record]) -> list[ParsedZap]:
    """Parse every usable receipt, preserving order."""
    parsed = (parse_zap_receipt(r) for r in records)
    return [z for z in parsed if z is not None]


def zapper_pubkey(record: Record) -> str:
    """Sender of a receipt, without fully parsing it."""
    request = parse_zap_request(record.tag_value("description"))
    if request is not None and isinstance(request.get("pubkey"), str) and request["pubkey"]:
        return request["pubkey"]
    return record.tag_value("P") or record.pubkey


def enrich_zap(
    zap: ParsedZap,
    content: dict[str, Record],
    profiles: dict[str, dict],
) -> ParsedZap:
    """Attach content details and zapper profile metadata where known."""
    event = zap.zapped_event
    if event is not None and event.id in content:
        source = content[event.id]
        event = replace(
            event,
            kind=source.kind,
            author=source.pubkey,
            content=source.content,
            created_at=source.created_at,
            tags=source.tags,
        )

    zapper = zap.zapper
    profile = profiles.get(zapper.pubkey)
    if profile:
        name = profile.get("name") or profile.get("display_name")
        zapper = replace(
            zapper,
            name=name if isinstance(name, str) else None,
            nip05=profile.get("nip05") if isinstance(profile.get("nip05"), str) else None,
            picture=profile.get("picture") if isinstance(profile.get("picture"), str) else None,
        )

    if event is zap.zapped_event and zapper is zap.zapper:
        return zap
    return replace(zap, zapped_event=event, zapper=zapper)


__all__ = [
    "ZAP_RECEIPT_KIND",
    "Zapper",
    "ZappedEvent",
    "ParsedZap",
    "is_valid_zap_receipt",
    "parse_bolt11_amount",
    "parse_zap_request",
    "parse_zap_receipt",
    "parse_zap_receipts",
    "zapper_pubkey",
    "enrich_zap",
]
