"""Unit tests for attribute/directive resolution in resolver.py."""

from __future__ import annotations

import copy
from unittest.mock import patch

import pytest

from enhanced_images.config import EnhancedImageConfig
from enhanced_images.resolver import (
    HTML_ATTRIBUTES,
    ResolvedAttributes,
    is_element_attribute,
    is_relative_reference,
    merge_classes,
    resolve,
    split_by_keys,
    strip_query,
)


# ---------------------------------------------------------------------------
# Empty inputs
# ---------------------------------------------------------------------------


class TestEmpty:
    """No query and no config produce three empty strings."""

    def test_no_query_no_config(self) -> None:
        assert resolve("./a.jpg") == ResolvedAttributes("", "", "")

    def test_explicit_empty_config(self) -> None:
        assert resolve("./a.jpg", {}) == ResolvedAttributes("", "", "")

    def test_empty_sections(self) -> None:
        cfg = {"attributes": {}, "imagetoolsDirectives": {}}
        assert resolve("./a.jpg", cfg) == ResolvedAttributes("", "", "")

    def test_none_sections(self) -> None:
        cfg = {"attributes": None}
        assert resolve("./a.jpg", cfg) == ResolvedAttributes("", "", "")


# ---------------------------------------------------------------------------
# Classes
# ---------------------------------------------------------------------------


class TestClasses:
    """Class merge: config tokens first, then query tokens, deduplicated."""

    def test_config_then_query(self) -> None:
        cfg = {"attributes": {"class": "a b"}}
        result = resolve("./x.jpg?class=b;c", cfg)
        assert result.class_attribute == 'class="a b c"'

    def test_query_only(self) -> None:
        result = resolve("./x.jpg?class=my-class")
        assert result.class_attribute == 'class="my-class"'

    def test_config_only(self) -> None:
        cfg = {"attributes": {"class": "rounded"}}
        assert resolve("./x.jpg", cfg).class_attribute == 'class="rounded"'

    def test_repeated_class_keys(self) -> None:
        result = resolve("./x.jpg?class=a&w=10&class=b;a")
        assert result.class_attribute == 'class="a b"'

    def test_semicolon_tokens_trimmed(self) -> None:
        result = resolve("./x.jpg?class=%20a%20;%20b")
        assert result.class_attribute == 'class="a b"'

    def test_empty_tokens_dropped(self) -> None:
        result = resolve("./x.jpg?class=;a;;")
        assert result.class_attribute == 'class="a"'

    def test_whitespace_only_class_contributes_nothing(self) -> None:
        cfg = {"attributes": {"class": "   "}}
        result = resolve("./x.jpg?class=+", cfg)
        assert result.class_attribute == ""

    def test_config_whitespace_runs(self) -> None:
        cfg = {"attributes": {"class": "  a \t b  "}}
        assert resolve("./x.jpg", cfg).class_attribute == 'class="a b"'

    def test_class_not_in_attributes(self) -> None:
        cfg = {"attributes": {"class": "a", "loading": "lazy"}}
        result = resolve("./x.jpg?class=b", cfg)
        assert "class" not in result.element_attributes
        assert result.element_attributes == 'loading="lazy"'

    def test_class_not_in_directives(self) -> None:
        result = resolve("./x.jpg?class=b&w=400")
        assert "class" not in result.directive_params
        assert result.directive_params == "&w=400"

    def test_non_string_config_class(self) -> None:
        cfg = {"attributes": {"class": 5}}
        assert resolve("./x.jpg", cfg).class_attribute == 'class="5"'


class TestMergeClasses:
    """Tests for ``merge_classes()``."""

    def test_empty(self) -> None:
        assert merge_classes([], []) == ""

    def test_dedup_preserves_first_seen(self) -> None:
        assert merge_classes(["b", "a", "b"], ["c", "a"]) == 'class="b a c"'


# ---------------------------------------------------------------------------
# Partition
# ---------------------------------------------------------------------------


class TestPartition:
    """Allow-listed keys are attributes; everything else is a directive."""

    @pytest.mark.parametrize("key", ["fetchpriority", "loading", "decoding"])
    def test_html_keys_are_attributes(self, key: str) -> None:
        result = resolve(f"./x.jpg?{key}=v")
        assert result.element_attributes == f'{key}="v"'
        assert result.directive_params == ""

    @pytest.mark.parametrize("key", ["w", "format", "blur", "width", "fetch-priority"])
    def test_other_keys_are_directives(self, key: str) -> None:
        result = resolve(f"./x.jpg?{key}=v")
        assert result.directive_params == f"&{key}=v"
        assert result.element_attributes == ""

    def test_mixed(self) -> None:
        result = resolve("./x.jpg?class=my-class&fetchpriority=high&blur=5")
        assert result.class_attribute == 'class="my-class"'
        assert result.element_attributes == 'fetchpriority="high"'
        assert result.directive_params == "&blur=5"

    def test_allow_list(self) -> None:
        assert HTML_ATTRIBUTES == {"fetchpriority", "loading", "decoding", "class"}
        assert is_element_attribute("loading")
        assert not is_element_attribute("quality")

    def test_resolve_uses_classifier(self) -> None:
        with patch(
            "enhanced_images.resolver.is_element_attribute",
            side_effect=lambda key: key == "w",
        ) as classify:
            result = resolve("./x.jpg?w=400&loading=lazy")
        assert [c.args[0] for c in classify.call_args_list] == ["w", "loading"]
        assert result.element_attributes == 'w="400"'
        assert result.directive_params == "&loading=lazy"


class TestSplitByKeys:
    """Tests for ``split_by_keys()``."""

    def test_split_preserves_order(self) -> None:
        included, excluded = split_by_keys(
            {"w": 1, "loading": "lazy", "h": 2, "decoding": "async"},
            is_element_attribute,
        )
        assert list(included) == ["loading", "decoding"]
        assert list(excluded) == ["w", "h"]

    def test_empty(self) -> None:
        assert split_by_keys({}, is_element_attribute) == ({}, {})


# ---------------------------------------------------------------------------
# Override precedence
# ---------------------------------------------------------------------------


class TestOverride:
    """Query values override config values; positions are kept."""

    def test_attribute_override_in_place(self) -> None:
        cfg = {"attributes": {"fetchpriority": "auto", "loading": "eager", "decoding": "auto"}}
        result = resolve("./x.jpg?loading=lazy", cfg)
        assert result.element_attributes == (
            'fetchpriority="auto" loading="lazy" decoding="auto"'
        )

    def test_new_query_attribute_appended(self) -> None:
        cfg = {"attributes": {"loading": "eager"}}
        result = resolve("./x.jpg?decoding=async", cfg)
        assert result.element_attributes == 'loading="eager" decoding="async"'

    def test_directive_override_in_place(self) -> None:
        cfg = {"imagetoolsDirectives": {"quality": 100, "effort": "max"}}
        result = resolve("./x.jpg?quality=50&w=300", cfg)
        assert result.directive_params == "&quality=50&effort=max&w=300"

    def test_duplicate_query_key_last_wins(self) -> None:
        result = resolve("./x.jpg?w=100&h=5&w=200")
        assert result.directive_params == "&w=200&h=5"

    def test_config_attribute_not_html_key_kept(self) -> None:
        cfg = {"attributes": {"data-zoom": "true"}}
        result = resolve("./x.jpg", cfg)
        assert result.element_attributes == 'data-zoom="true"'


# ---------------------------------------------------------------------------
# Value rendering
# ---------------------------------------------------------------------------


class TestRendering:
    """Scalar stringification and query decoding."""

    def test_booleans_and_numbers(self) -> None:
        cfg = {
            "imagetoolsDirectives": {
                "normalize": True,
                "median": False,
                "quality": 100,
                "brightness": 0.9,
                "contrast": 1.0,
            },
        }
        result = resolve("./x.jpg", cfg)
        assert result.directive_params == (
            "&normalize=true&median=false&quality=100&brightness=0.9&contrast=1"
        )

    def test_blank_value_kept(self) -> None:
        assert resolve("./x.jpg?grayscale").directive_params == "&grayscale="

    def test_empty_key_dropped(self) -> None:
        assert resolve("./x.jpg?=5&w=1").directive_params == "&w=1"

    def test_percent_and_plus_decoded(self) -> None:
        result = resolve("./x.jpg?background=%23fff&tint=a+b")
        assert result.directive_params == "&background=#fff&tint=a b"

    def test_fragment_ignored(self) -> None:
        assert resolve("./x.jpg?w=1#frag").directive_params == "&w=1"

    def test_malformed_reference_raises(self) -> None:
        with pytest.raises(ValueError):
            resolve("http://[::1/a.jpg")

    def test_malformed_config_raises(self) -> None:
        with pytest.raises(ValueError):
            resolve("./x.jpg", {"attributes": {"loading": None}})


# ---------------------------------------------------------------------------
# Purity
# ---------------------------------------------------------------------------


class TestNoLeakage:
    """The shared config is never mutated by resolution."""

    _CFG = {
        "attributes": {"class": "a b", "loading": "eager"},
        "imagetoolsDirectives": {"quality": 100},
    }

    def test_mapping_config_unchanged(self) -> None:
        cfg = copy.deepcopy(self._CFG)
        resolve("./x.jpg?class=c&loading=lazy&quality=1", cfg)
        assert cfg == self._CFG

    def test_dataclass_config_unchanged(self) -> None:
        cfg = EnhancedImageConfig.from_dict(self._CFG)
        resolve("./x.jpg?class=c&loading=lazy&quality=1&w=2", cfg)
        assert cfg.attributes == self._CFG["attributes"]
        assert cfg.imagetools_directives == self._CFG["imagetoolsDirectives"]

    def test_repeated_calls_identical(self) -> None:
        cfg = EnhancedImageConfig.from_dict(self._CFG)
        first = [resolve("./a.jpg?class=c", cfg), resolve("./b.jpg?w=3", cfg)]
        second = [resolve("./a.jpg?class=c", cfg), resolve("./b.jpg?w=3", cfg)]
        assert first == second
        assert second[1].class_attribute == 'class="a b"'


# ---------------------------------------------------------------------------
# Reference helpers
# ---------------------------------------------------------------------------


class TestReferenceHelpers:
    """Tests for ``is_relative_reference()`` and ``strip_query()``."""

    @pytest.mark.parametrize("ref", [
        "./a.jpg", "../img/a.png", "a.jpg", "/static/a.jpg", "./a.jpg?w=1",
    ])
    def test_relative(self, ref: str) -> None:
        assert is_relative_reference(ref)

    @pytest.mark.parametrize("ref", [
        "https://example.com/a.jpg",
        "http://example.com/a.jpg?w=1",
        "//cdn.example.com/a.jpg",
        "data:image/png;base64,AAAA",
        "",
        "?w=1",
        "#top",
    ])
    def test_not_relative(self, ref: str) -> None:
        assert not is_relative_reference(ref)

    def test_strip_query(self) -> None:
        assert strip_query("./a.jpg?w=1&class=x") == "./a.jpg"

    def test_strip_query_and_fragment(self) -> None:
        assert strip_query("./a%20b.jpg?w=1#x") == "./a%20b.jpg"

    def test_strip_no_query(self) -> None:
        assert strip_query("../a.jpg") == "../a.jpg"
