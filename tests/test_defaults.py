from dataclasses import dataclass, field
from typing import Optional

from chatlog.defaults import get_default_tag, set_default, set_default_tag


@dataclass
class Inner:
    label: str = field(default="", metadata={"default": "inner"})
    size: int = field(default=0, metadata={"default": "3"})


@dataclass
class Sample:
    name: str = field(default="", metadata={"default": "anon"})
    count: int = field(default=0, metadata={"default": "42"})
    ratio: float = field(default=0.0, metadata={"default": "0.5"})
    enabled: bool = field(default=False, metadata={"default": "t"})
    bad: int = field(default=0, metadata={"default": "not-a-number"})
    ports: list[int] = field(default_factory=list, metadata={"default": "[80, 443]"})
    labels: dict[str, int] = field(default_factory=dict, metadata={"default": '{"a": 1}'})
    inner: Inner = field(default_factory=Inner, metadata={"default": '{"label": "from-json"}'})
    maybe: Optional[Inner] = field(default=None, metadata={"default": '{"size": 7}'})
    items: list[Inner] = field(default_factory=list)
    untagged: str = ""


@dataclass
class BrokenJson:
    values: list[int] = field(default_factory=list, metadata={"default": "[1,"})
    wrong: list[int] = field(default_factory=list, metadata={"default": '["x"]'})


@dataclass
class OtherTag:
    title: str = field(default="", metadata={"fallback": "chosen", "default": "ignored"})


def test_simple_fields_are_filled():
    sample = Sample()
    set_default(sample)
    assert sample.name == "anon"
    assert sample.count == 42
    assert sample.ratio == 0.5
    assert sample.enabled is True
    assert sample.untagged == ""


def test_unparsable_tag_leaves_zero():
    sample = Sample()
    set_default(sample)
    assert sample.bad == 0


def test_non_zero_values_are_kept():
    sample = Sample(name="given", count=1, ports=[22])
    set_default(sample)
    assert sample.name == "given"
    assert sample.count == 1
    assert sample.ports == [22]


def test_collections_decoded_from_json():
    sample = Sample()
    set_default(sample)
    assert sample.ports == [80, 443]
    assert sample.labels == {"a": 1}


def test_zero_nested_dataclass_decoded_then_filled():
    sample = Sample()
    set_default(sample)
    assert sample.inner.label == "from-json"
    assert sample.inner.size == 3


def test_non_zero_nested_dataclass_gets_field_defaults():
    sample = Sample(inner=Inner(label="x"))
    set_default(sample)
    assert sample.inner.label == "x"
    assert sample.inner.size == 3


def test_optional_decoded_without_recursion():
    sample = Sample()
    set_default(sample)
    assert sample.maybe == Inner(label="", size=7)


def test_optional_kept_when_set():
    existing = Inner(label="set", size=1)
    sample = Sample(maybe=existing)
    set_default(sample)
    assert sample.maybe is existing
    assert sample.maybe.label == "set"


def test_list_elements_are_filled():
    sample = Sample(items=[Inner(), Inner(label="y")])
    set_default(sample)
    assert [item.label for item in sample.items] == ["inner", "y"]
    assert all(item.size == 3 for item in sample.items)


def test_list_of_dataclasses_at_top_level():
    items = [Inner(), Inner(size=9)]
    set_default(items)
    assert items[0] == Inner(label="inner", size=3)
    assert items[1].size == 9


def test_invalid_json_leaves_value_unchanged():
    broken = BrokenJson()
    set_default(broken)
    assert broken.values == []
    assert broken.wrong == []


def test_custom_tag_is_used():
    previous = get_default_tag()
    set_default_tag("fallback")
    try:
        other = OtherTag()
        set_default(other)
        assert get_default_tag() == "fallback"
        assert other.title == "chosen"
    finally:
        set_default_tag(previous)
    assert get_default_tag() == "default"