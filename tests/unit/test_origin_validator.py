"""Unit tests for origin pattern matching and the allow-list validator."""
import pytest

from consent_banner.api.origin_validator import (
    OriginValidator,
    ValidationResult,
    match_origin,
)


class TestMatchOrigin:

    @pytest.mark.parametrize('origin,pattern,expected', [
        ('https://app.example.com', 'https://app.example.com', True),
        ('https://app.example.com', 'https://api.example.com', False),
        ('https://app.example.com', 'https://app.example.com/', False),
        ('HTTPS://app.example.com', 'https://app.example.com', False),
    ])
    def test_plain_pattern_is_string_equality(self, origin, pattern, expected):
        assert match_origin(origin, pattern) is expected

    def test_dots_in_plain_pattern_are_literal(self):
        assert not match_origin('https://appXexample.com', 'https://app.example.com')

    def test_wildcard_matches_subdomain(self):
        assert match_origin('https://a.example.com', 'https://*.example.com')

    def test_wildcard_spans_multiple_labels(self):
        assert match_origin('https://a.b.example.com', 'https://*.example.com')

    def test_wildcard_requires_literal_suffix(self):
        assert not match_origin('https://example.com', 'https://*.example.com')

    def test_wildcard_dots_are_literal(self):
        assert not match_origin('https://aXexampleYcom', 'https://*.example.com')

    def test_wildcard_is_anchored(self):
        assert not match_origin('https://a.example.com.evil.test', 'https://*.example.com')
        assert not match_origin('evil://x/https://a.example.com', 'https://*.example.com')

    def test_wildcard_scheme_is_literal(self):
        assert not match_origin('http://a.example.com', 'https://*.example.com')

    def test_wildcard_matches_empty_run(self):
        assert match_origin('http://localhost:', 'http://localhost:*')
        assert match_origin('http://localhost:5173', 'http://localhost:*')

    def test_other_regex_metacharacters_are_literal(self):
        assert match_origin('https://a+b.example.com', 'https://a+b.*')
        assert not match_origin('https://aab.example.com', 'https://a+b.*')

    @pytest.mark.parametrize('origin,pattern', [
        ('', 'https://app.example.com'),
        ('https://app.example.com', ''),
        (None, 'https://app.example.com'),
        (42, '*'),
        ('https://app.example.com', None),
    ])
    def test_non_string_or_empty_inputs_never_match(self, origin, pattern):
        assert match_origin(origin, pattern) is False


class TestOriginValidator:

    @pytest.fixture
    def validator(self):
        return OriginValidator(['https://app.example.com', 'https://*.example.com'])

    def test_absent_origin_is_valid(self, validator):
        assert validator.is_valid(None) == ValidationResult(is_valid=True)

    def test_empty_origin_is_valid(self, validator):
        assert validator.is_valid('').is_valid

    def test_absent_origin_valid_even_with_empty_allow_list(self):
        assert OriginValidator([]).is_valid(None).is_valid

    def test_exact_pattern_match(self, validator):
        result = validator.is_valid('https://app.example.com')
        assert result.is_valid
        assert result.message is None

    def test_wildcard_pattern_match(self, validator):
        assert validator.is_valid('https://api.example.com').is_valid

    def test_unlisted_origin_rejected_with_message(self, validator):
        result = validator.is_valid('https://example.com')
        assert result == ValidationResult(
            is_valid=False, message='Origin https://example.com not allowed',
        )

    def test_non_string_origin_rejected(self, validator):
        result = validator.is_valid(['https://app.example.com'])
        assert not result.is_valid
        assert result.message == 'Invalid origin format'

    def test_pattern_order_does_not_matter(self):
        forward = OriginValidator(['https://*.example.com', 'https://other.test'])
        backward = OriginValidator(['https://other.test', 'https://*.example.com'])
        for origin in ('https://a.example.com', 'https://other.test', 'https://nope.test'):
            assert forward.is_valid(origin) == backward.is_valid(origin)

    def test_patterns_are_stripped_and_blanks_dropped(self):
        validator = OriginValidator([' https://a.test ', '', '   ', 'https://b.test'])
        assert validator.patterns == ('https://a.test', 'https://b.test')
