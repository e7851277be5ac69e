import pytest

from threshold_randomness.errors import InvalidSchemeHandle, SchemeAlreadyRegistered, UnsupportedScheme
from threshold_randomness.journal import Journal
from threshold_randomness.schemes.registry import SignatureScheme, SignatureSchemeRegistry


class _Scheme:
    def hash_message(self, message: bytes) -> bytes:
        return message

    def verify(self, message_point, signature, public_key=None):
        return signature == message_point, True


# ---------- registry ----------


def test_register_and_resolve() -> None:
    reg = SignatureSchemeRegistry()
    s = _Scheme()
    assert isinstance(s, SignatureScheme)
    reg.register("TOY", s)
    assert reg.is_supported("TOY")
    assert "TOY" in reg
    assert reg.resolve("TOY") is s
    assert reg.scheme_ids() == ["TOY"]
    assert len(reg) == 1


def test_registry_is_append_only() -> None:
    reg = SignatureSchemeRegistry()
    first = _Scheme()
    reg.register("TOY", first)
    with pytest.raises(SchemeAlreadyRegistered):
        reg.register("TOY", _Scheme())
    assert reg.resolve("TOY") is first


@pytest.mark.parametrize("scheme_id,handle", [("", _Scheme()), ("X", None), ("X", object())])
def test_registry_rejects_bad_handles(scheme_id, handle) -> None:
    reg = SignatureSchemeRegistry()
    with pytest.raises(InvalidSchemeHandle):
        reg.register(scheme_id, handle)
    assert len(reg) == 0


def test_resolve_unknown_scheme() -> None:
    reg = SignatureSchemeRegistry()
    assert not reg.is_supported("nope")
    assert 42 not in reg
    with pytest.raises(UnsupportedScheme) as ei:
        reg.resolve("nope")
    assert ei.value.to_dict()["details"]["scheme_id"] == "nope"


# ---------- journal ----------


class _Obj:
    def __init__(self) -> None:
        self.value = 1


def test_atomic_rolls_back_every_helper() -> None:
    j = Journal()
    obj, s, d, lst = _Obj(), {1}, {"a": 1}, ["x", "y"]

    with pytest.raises(RuntimeError):
        with j.atomic():
            j.assign(obj, "value", 2)
            j.set_add(s, 2)
            j.set_discard(s, 1)
            j.put(d, "a", 10)
            j.put(d, "b", 20)
            j.pop(d, "a")
            j.append(lst, "z")
            j.remove(lst, "x")
            raise RuntimeError("boom")

    assert obj.value == 1
    assert s == {1}
    assert d == {"a": 1}
    assert lst == ["x", "y"]
    assert len(j) == 0 and j.depth == 0


def test_nested_savepoint_rolls_back_only_inner_block() -> None:
    j = Journal()
    obj = _Obj()
    with j.atomic():
        j.assign(obj, "value", 2)
        with pytest.raises(ValueError):
            with j.atomic():
                assert j.depth == 2
                j.assign(obj, "value", 3)
                raise ValueError("inner")
        assert obj.value == 2
    assert obj.value == 2
    assert not j.in_transaction
    assert len(j) == 0


def test_outer_failure_undoes_committed_inner_block() -> None:
    j = Journal()
    d: dict = {}
    with pytest.raises(KeyError):
        with j.atomic():
            with j.atomic():
                j.put(d, "k", 1)
            raise KeyError("outer")
    assert d == {}


def test_mutations_outside_atomic_are_not_recorded() -> None:
    j = Journal()
    s: set = set()
    j.set_add(s, 1)
    assert s == {1}
    assert len(j) == 0
