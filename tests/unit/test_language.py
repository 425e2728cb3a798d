"""Unit tests for lyrics/language.py."""

import pytest

from lyrics.language import classify, script_fractions
from lyrics.models import LanguageTag


class TestClassify:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("아이유 좋은 날", LanguageTag.KO),
            ("米津玄師 レモン", LanguageTag.JA),
            ("あいみょん マリーゴールド", LanguageTag.JA),
            ("周杰伦 晴天", LanguageTag.ZH),
            ("Ed Sheeran Perfect", LanguageTag.EN),
            ("", LanguageTag.UNKNOWN),
            ("1234 !!!", LanguageTag.UNKNOWN),
        ],
    )
    def test_tags(self, text, expected):
        assert classify(text) == expected

    def test_korean_before_english(self):
        # 3 Hangul of 6 characters clears the 0.3 Korean threshold.
        assert classify("BTS 봄날이") == LanguageTag.KO

    def test_ideographs_without_kana_are_chinese(self):
        assert classify("晴天") == LanguageTag.ZH

    def test_mixed_latin_below_threshold(self):
        # 2 Latin of 6 characters does not clear 0.5.
        assert classify("ab 1234") == LanguageTag.UNKNOWN


class TestScriptFractions:
    def test_whitespace_only(self):
        fractions = script_fractions("   ")
        assert all(v == 0.0 for v in fractions.values())

    def test_kana_pulls_in_ideographs(self):
        fractions = script_fractions("米津レモン")
        assert fractions[LanguageTag.JA] == 1.0
        assert fractions[LanguageTag.ZH] == pytest.approx(0.4)

    def test_whitespace_ignored(self):
        fractions = script_fractions("a b")
        assert fractions[LanguageTag.EN] == 1.0
