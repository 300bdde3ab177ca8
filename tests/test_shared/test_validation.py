"""Tests for shared validation utilities."""
import pytest
from shared.validation import (
    Validator, ValidationError, sanitize_text, strip_control_characters, contains_sql_injection, contains_xss
)


class TestValidator:
    """Test validation utilities."""

    def test_validate_string_length_success(self):
        """Test successful string length validation."""
        assert Validator.validate_string_length("test", "field", 1, 10) == "test"
        assert Validator.validate_string_length("  test  ", "field", 1, 10) == "test"

    def test_validate_string_length_failure(self):
        """Test string length validation failures."""
        with pytest.raises(ValidationError, match="field must be at least 5 characters"):
            Validator.validate_string_length("test", "field", 5, 10)

        with pytest.raises(ValidationError, match="field must be no more than 3 characters"):
            Validator.validate_string_length("testing", "field", 1, 3)

        with pytest.raises(ValidationError, match="field must be a string"):
            Validator.validate_string_length(42, "field", 1, 3)

    def test_length_is_checked_after_trimming(self):
        with pytest.raises(ValidationError, match="code must be at least 2 characters"):
            Validator.validate_safe_identifier("  a  ", "code", 2, 50)

    def test_validate_email_success(self):
        """Test successful email validation."""
        valid_emails = [
            "test@example.com",
            "user.name+tag@example.co.uk",
            "test.email@subdomain.example.com"
        ]
        for email in valid_emails:
            assert Validator.validate_email(email) == email

    def test_validate_email_normalizes_case(self):
        assert Validator.validate_email("  Artist@Studio.COM ") == "artist@studio.com"

    def test_validate_email_failure(self):
        """Test email validation failures."""
        invalid_emails = [
            "invalid-email",
            "@example.com",
            "test@",
            "test.example.com",
            "a" * 65 + "@example.com",
            "user@" + "a" * 250 + ".com",
        ]
        for email in invalid_emails:
            with pytest.raises(ValidationError, match="Invalid email format"):
                Validator.validate_email(email)

    def test_validate_password_strength(self):
        assert Validator.validate_password_strength("Passw0rdX") == "Passw0rdX"
        for weak in ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"]:
            with pytest.raises(ValidationError, match="Password must be at least 8 characters"):
                Validator.validate_password_strength(weak)

    def test_validate_hex_color(self):
        assert Validator.validate_hex_color("#ff00aa") == "#FF00AA"
        for bad in ["ff00aa", "#ff00a", "#gg00aa", "red"]:
            with pytest.raises(ValidationError, match="hex color"):
                Validator.validate_hex_color(bad)

    def test_validate_safe_filename(self):
        assert Validator.validate_safe_filename("shot_010_v001.mov") == "shot_010_v001.mov"
        with pytest.raises(ValidationError, match="path traversal"):
            Validator.validate_safe_filename("../etc/passwd")
        with pytest.raises(ValidationError, match="Invalid characters"):
            Validator.validate_safe_filename("my file.mov")

    def test_validate_choice_success(self):
        """Test successful choice validation."""
        choices = ["option1", "option2", "option3"]
        assert Validator.validate_choice("option1", "field", choices) == "option1"

    def test_validate_choice_failure(self):
        """Test choice validation failures."""
        with pytest.raises(ValidationError, match="field must be one of"):
            Validator.validate_choice("invalid", "field", ["option1", "option2"])

    def test_parse_bool_arg(self):
        assert Validator.parse_bool_arg("true", "latest") is True
        assert Validator.parse_bool_arg("0", "latest") is False
        assert Validator.parse_bool_arg(None, "latest") is None
        with pytest.raises(ValidationError, match="latest must be true or false"):
            Validator.parse_bool_arg("yes", "latest")


class TestInjectionDetection:
    """SQL injection and XSS detection on identifiers and free text."""

    @pytest.mark.parametrize("payload", [
        "x' OR '1'='1",
        "1; DROP TABLE users; --",
        "name UNION SELECT password FROM users",
        "INSERT INTO shots VALUES (1)",
        "DELETE FROM versions",
        "UPDATE users SET role='admin'",
        "EXEC xp_cmdshell('dir')",
    ])
    def test_sql_injection_rejected_in_identifiers(self, payload):
        assert contains_sql_injection(payload)
        with pytest.raises(ValidationError, match="dangerous SQL patterns"):
            Validator.validate_safe_identifier(payload, "code", 1, 255)

    @pytest.mark.parametrize("payload", [
        "<script>alert(1)</script>",
        "<img src=x onerror=alert(1)>",
        "javascript:alert(1)",
        "<iframe src='evil'></iframe>",
        "<svg onload=alert(1)>",
    ])
    def test_xss_rejected_in_identifiers(self, payload):
        assert contains_xss(payload)
        with pytest.raises(ValidationError, match="dangerous script content"):
            Validator.validate_safe_identifier(payload, "name", 1, 255)

    def test_ordinary_words_are_not_flagged(self):
        for text in ["Update the lighting pass", "Select the best take", "Drop shadow on the left",
                     "Shot 010 and 020 are approved"]:
            assert not contains_sql_injection(text)
            assert Validator.validate_safe_identifier(text, "name", 1, 255) == text


class TestSanitizeText:
    """Free-text sanitization keeps content, strips markup that could execute."""

    def test_plain_unicode_is_untouched(self):
        text = "Revisión del plano: ¡cámara más lenta! 日本語のノート 🎬"
        assert sanitize_text(text) == text
        assert Validator.validate_safe_text(text, "content") == text

    def test_ampersand_and_comparison_survive(self):
        text = "Fix R&D notes: frames 10 > 5"
        assert sanitize_text(text) == text

    def test_less_than_in_plain_text_survives(self):
        for text in ["a < b", "R&D says a < b", "frames <10 left", "1<2 && 3>2"]:
            assert sanitize_text(text) == text
            assert Validator.validate_safe_text(text, "content") == text

    def test_characters_kept_alongside_markup(self):
        assert sanitize_text("R&D <em>x</em>") == "R&D <em>x</em>"
        assert sanitize_text("R&D says a < b <em>now</em>") == "R&D says a < b <em>now</em>"

    def test_escaped_markup_does_not_become_live(self):
        cleaned = sanitize_text("<em>hi</em> &lt;script&gt;alert(1)&lt;/script&gt;")
        assert "<script" not in cleaned
        assert cleaned.startswith("<em>hi</em>")

    def test_script_element_removed_with_content(self):
        cleaned = sanitize_text("Hello <script>alert('x')</script>world")
        assert "alert" not in cleaned
        assert "<script" not in cleaned
        assert cleaned.startswith("Hello")

    def test_event_handlers_and_unknown_tags_stripped(self):
        cleaned = sanitize_text('<div onclick="steal()">Look <b>here</b></div>')
        assert "onclick" not in cleaned
        assert "<div" not in cleaned
        assert "Look" in cleaned

    def test_allowed_formatting_kept(self):
        assert sanitize_text("<p><strong>Approved</strong></p>") == "<p><strong>Approved</strong></p>"

    def test_html_comments_removed(self):
        assert sanitize_text("Keep<!-- hidden -->this") == "Keepthis"

    def test_control_characters_removed(self):
        assert strip_control_characters("a\x00b\x07c\td\n") == "abc\td\n"
        assert sanitize_text("  note\x00 text  ") == "note text"

    def test_safe_text_limits_and_blank(self):
        with pytest.raises(ValidationError, match="no more than 10 characters"):
            Validator.validate_safe_text("x" * 11, "content", 10)
        with pytest.raises(ValidationError, match="content must not be blank"):
            Validator.validate_safe_text("<script>x</script>", "content", allow_blank=False)
        assert Validator.validate_safe_text(None, "description") is None

    def test_safe_text_rejects_sql(self):
        with pytest.raises(ValidationError, match="dangerous SQL patterns"):
            Validator.validate_safe_text("ok'; DROP TABLE notes; --", "content")
