"""Tests for resolver value types and normalisation helpers."""

import pytest

from exeforge.resolver.types import (
    DEFAULT_DESCRIPTION,
    Ecosystem,
    PackageSpec,
    canonicalize_pip_name,
    normalize_description,
    normalize_keywords,
)


class TestPackageSpec:
    def test_defaults_to_latest(self):
        spec = PackageSpec(name="cowsay", ecosystem="npm")
        assert spec.version == "latest"
        assert spec.is_latest is True
        assert spec.ecosystem is Ecosystem.NPM

    def test_blank_version_becomes_latest(self):
        assert PackageSpec(name="black", ecosystem=Ecosystem.PIP, version="  ").is_latest

    def test_exact_version(self):
        spec = PackageSpec(name="black", ecosystem="pip", version="24.1.0")
        assert spec.version == "24.1.0"
        assert spec.is_latest is False

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            PackageSpec(name=" ", ecosystem="npm")

    def test_unknown_ecosystem_rejected(self):
        with pytest.raises(ValueError):
            PackageSpec(name="x", ecosystem="cargo")


class TestNormalizeDescription:
    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_missing_gets_placeholder(self, value):
        assert normalize_description(value) == DEFAULT_DESCRIPTION

    def test_trimmed(self):
        assert normalize_description("  Fun cow  ") == "Fun cow"


class TestNormalizeKeywords:
    def test_list_keeps_order(self):
        assert normalize_keywords(["cow", "ascii", "", None, "fun"]) == ("cow", "ascii", "fun")

    def test_comma_separated(self):
        assert normalize_keywords("formatter, linting ,style") == ("formatter", "linting", "style")

    def test_space_separated(self):
        assert normalize_keywords("cli  terminal") == ("cli", "terminal")

    def test_repeats_dropped_keeping_first_position(self):
        assert normalize_keywords("cli, cli, tool") == ("cli", "tool")
        assert normalize_keywords(["b", "a", "b", " a "]) == ("b", "a")

    @pytest.mark.parametrize("value", [None, "", {}, 3])
    def test_empty(self, value):
        assert normalize_keywords(value) == ()


class TestCanonicalizePipName:
    def test_pep503(self):
        assert canonicalize_pip_name("Zope.Interface") == "zope-interface"
        assert canonicalize_pip_name("python__dateutil") == "python-dateutil"
