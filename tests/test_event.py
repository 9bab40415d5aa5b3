"""Canonical form, identifiers, signing and verification."""

import dataclasses
import hashlib
import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from nostr_core.errors import InvalidEvent, KeyMismatch
from nostr_core.event import (
    Event,
    EventKind,
    UnsignedEvent,
    check_event_dict,
    compute_event_id,
    serialize_for_id,
)
from nostr_core.keys import KeyPair

from .conftest import G_X, FakeClock

ZERO_PUBKEY = "00" * 32


class TestCanonicalForm:
    def test_pinned_vector_zero_pubkey(self):
        event = UnsignedEvent(pubkey=ZERO_PUBKEY, created_at=0, kind=1, tags=[], content="test")
        assert event.serialize() == '[0,"' + ZERO_PUBKEY + '",0,1,[],"test"]'
        assert event.id == "2ccbdc8c74677ad9f141deb7f1e9ec4f5a2a4c6a91cac6c517b6c950c5b3b22f"

    def test_pinned_vector_generator_pubkey(self):
        event = UnsignedEvent(pubkey=G_X, created_at=1671588354, kind=1, content="GM")
        assert event.serialize() == f'[0,"{G_X}",1671588354,1,[],"GM"]'
        assert event.id == "ada98046cd8d2c4bf835f9843c00632972d76ceddb5d965e1c4ab482460f3093"

    def test_escaping_rules(self):
        event = UnsignedEvent(
            pubkey=G_X,
            created_at=1700000000,
            kind=1,
            tags=[["r", "wss://relay.example.com/"]],
            content="café \U0001F680\n",
        )
        expected = (
            f'[0,"{G_X}",1700000000,1,[["r","wss://relay.example.com/"]],'
            '"caf\\u00e9 \\ud83d\\ude80\\n"]'
        )
        assert event.serialize() == expected
        assert event.id == "5ebcfa6dacb031a29c41054cb6ac1b61a60a3743c37c0a34388cbb779c2b0b19"

    @pytest.mark.parametrize(
        "content,escaped",
        [
            ('say "hi"', 'say \\"hi\\"'),
            ("tab\there", "tab\\there"),
            ("back\\slash", "back\\\\slash"),
            ("bell\x07", "bell\\u0007"),
            ("a/b", "a/b"),
        ],
    )
    def test_control_and_quote_escaping(self, content, escaped):
        s = serialize_for_id(G_X, 0, 1, [], content)
        assert s == f'[0,"{G_X}",0,1,[],"{escaped}"]'

    def test_pubkey_is_lowercased(self):
        upper = serialize_for_id(G_X.upper(), 0, 1, [], "")
        assert upper == serialize_for_id(G_X, 0, 1, [], "")

    def test_id_is_sha256_of_serialization(self):
        tags = [["e", "aa" * 32], ["p", "bb" * 32]]
        s = serialize_for_id(G_X, 1700000000, 1, tags, "Hello, NOSTR!")
        assert compute_event_id(G_X, 1700000000, 1, tags, "Hello, NOSTR!") == hashlib.sha256(
            s.encode("utf-8")
        ).hexdigest()

    @given(
        content=st.text(),
        tags=st.lists(st.lists(st.text(), min_size=1, max_size=4), max_size=4),
        created_at=st.integers(min_value=0, max_value=2**40),
        kind=st.integers(min_value=0, max_value=65535),
    )
    def test_serialization_is_ascii_and_parses_back(self, content, tags, created_at, kind):
        s = serialize_for_id(G_X, created_at, kind, tags, content)
        assert s.isascii()
        assert json.loads(s) == [0, G_X, created_at, kind, tags, content]

    @given(content=st.text())
    def test_id_is_stable(self, content):
        a = UnsignedEvent(pubkey=G_X, created_at=5, kind=1, content=content)
        b = UnsignedEvent(pubkey=G_X, created_at=5, kind=1, content=content)
        assert a.id == b.id == a.id


class TestValidation:
    @pytest.mark.parametrize(
        "fields",
        [
            {"pubkey": "abc"},
            {"kind": -1},
            {"kind": True},
            {"kind": "1"},
            {"created_at": -5},
            {"created_at": 1.5},
            {"content": None},
            {"tags": [["ok"], [1]]},
            {"tags": "not a list"},
        ],
    )
    def test_bad_fields_raise_invalid_event(self, fields):
        base = {"pubkey": G_X, "created_at": 0, "kind": 1, "tags": [], "content": ""}
        base.update(fields)
        with pytest.raises(InvalidEvent):
            UnsignedEvent(**base)

    def test_tags_are_frozen(self):
        tags = [["t", "nostr"]]
        event = UnsignedEvent(pubkey=G_X, created_at=0, kind=1, tags=tags)
        tags[0].append("mutated")
        assert event.tags == (("t", "nostr"),)

    def test_open_kind_numbers(self):
        event = UnsignedEvent(pubkey=G_X, created_at=0, kind=54321)
        assert EventKind.name_of(event.kind) == "unknown"
        assert EventKind.name_of(EventKind.GIFT_WRAP) == "gift_wrap"

    @pytest.mark.parametrize(
        "kind,cls",
        [(1, "regular"), (0, "replaceable"), (3, "replaceable"), (10002, "replaceable"),
         (20001, "ephemeral"), (30023, "addressable"), (1059, "regular")],
    )
    def test_kind_classes(self, kind, cls):
        assert EventKind.classify(kind) == cls

    def test_now_uses_clock(self):
        event = UnsignedEvent.now(G_X, 1, content="x", clock=FakeClock(start=1234.9))
        assert event.created_at == 1234

    def test_tag_helpers(self):
        event = UnsignedEvent(pubkey=G_X, created_at=0, kind=1, tags=[["p", "a"], ["e", "b"], ["p", "c"], ["p"]])
        assert event.tag_values("p") == ["a", "c"]
        assert event.first_tag("e") == ("e", "b")
        assert event.first_tag("x") is None


class TestSignVerify:
    def test_sign_produces_verifiable_event(self, alice):
        signed = UnsignedEvent(pubkey=alice.public_key, created_at=1671588354, kind=1, content="GM").sign(alice)
        assert signed.id == "ada98046cd8d2c4bf835f9843c00632972d76ceddb5d965e1c4ab482460f3093"
        assert len(signed.sig) == 128
        assert signed.verify()

    def test_key_mismatch(self, alice, bob):
        event = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=1, content="hi")
        with pytest.raises(KeyMismatch):
            event.sign(bob)

    def test_zero_pubkey_cannot_be_signed(self, alice):
        event = UnsignedEvent(pubkey=ZERO_PUBKEY, created_at=0, kind=1, content="test")
        with pytest.raises(KeyMismatch):
            event.sign(alice)

    @pytest.mark.parametrize(
        "change",
        [
            {"content": "hiX"},
            {"kind": 2},
            {"created_at": 1},
            {"tags": (("t", "x"),)},
        ],
    )
    def test_tampering_fails_verification(self, alice, change):
        signed = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=1, content="hi").sign(alice)
        assert signed.verify()
        assert not dataclasses.replace(signed, **change).verify()

    def test_forged_id_fails(self, alice):
        signed = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=1, content="hi").sign(alice)
        other = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=1, content="bye")
        forged = dataclasses.replace(signed, content="bye", id=other.id)
        assert not forged.verify()

    def test_other_author_fails(self, alice, bob):
        signed = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=1, content="hi").sign(alice)
        assert not dataclasses.replace(signed, pubkey=bob.public_key).verify()

    def test_signed_event_is_frozen(self, alice):
        signed = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=1, content="hi").sign(alice)
        with pytest.raises(dataclasses.FrozenInstanceError):
            signed.content = "changed"

    @settings(max_examples=25, deadline=None)
    @given(content=st.text(), kind=st.integers(min_value=0, max_value=40000))
    def test_sign_then_verify(self, content, kind):
        kp = KeyPair.from_private_key("11" * 32)
        signed = UnsignedEvent(pubkey=kp.public_key, created_at=1, kind=kind, content=content).sign(kp)
        assert signed.verify()
        assert signed.unsigned().id == signed.id


class TestWireFormat:
    def test_dict_roundtrip(self, alice):
        signed = UnsignedEvent(
            pubkey=alice.public_key, created_at=10, kind=1, tags=[["t", "x"]], content="hi"
        ).sign(alice)
        d = signed.to_dict()
        assert d["tags"] == [["t", "x"]]
        assert Event.from_dict(d) == signed
        assert Event.from_json(signed.to_json()) == signed

    def test_missing_field(self, alice):
        d = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=1).sign(alice).to_dict()
        del d["sig"]
        with pytest.raises(InvalidEvent, match="missing field: sig"):
            Event.from_dict(d)

    def test_bad_json(self):
        with pytest.raises(InvalidEvent):
            Event.from_json("{not json")

    def test_rumor_dict_has_id_but_no_sig(self, alice):
        rumor = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=14, content="psst")
        d = rumor.to_dict()
        assert "sig" not in d
        assert d["id"] == rumor.id
        assert UnsignedEvent.from_dict(d) == rumor

    def test_check_event_dict(self, alice):
        d = UnsignedEvent(pubkey=alice.public_key, created_at=0, kind=1, content="hi").sign(alice).to_dict()
        assert check_event_dict(d) == (True, "ok")

        tampered = dict(d, content="hiX")
        assert check_event_dict(tampered) == (False, "id does not match computed id")

        bad_sig = dict(d, sig="00" * 64)
        assert check_event_dict(bad_sig) == (False, "invalid signature")

        ok, reason = check_event_dict(dict(d, kind="1"))
        assert not ok and "kind" in reason
