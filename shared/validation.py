"""Input validation and sanitization utilities.

Every user-supplied string passes through one of two gates before it reaches
the database:

- identifiers (codes, names, subjects) are trimmed, length-checked and
  rejected outright if they look like SQL or script injection;
- free text (descriptions, note content) is checked for SQL injection and
  then cleaned with bleach, keeping a small set of formatting tags.
"""
import re
import bleach


class ValidationError(Exception):
    """Raised when input validation fails."""
    pass


# C0 control characters except \t, \n and \r.
CONTROL_CHARS_PATTERN = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')

SQL_INJECTION_PATTERNS = [
    re.compile(r"(\bor\b|\band\b).*=.*--", re.IGNORECASE),
    re.compile(r"\bunion\b.*\bselect\b", re.IGNORECASE),
    re.compile(r"\bdrop\s+table\b", re.IGNORECASE),
    re.compile(r"\binsert\s+into\b", re.IGNORECASE),
    re.compile(r"\bdelete\s+from\b", re.IGNORECASE),
    re.compile(r"\bupdate\s+\w+\s+set\b", re.IGNORECASE),
    re.compile(r"\bexec(ute)?(\s|\()", re.IGNORECASE),
    re.compile(r";.*(/\*|--)"),
    re.compile(r"'.*\bor\b.*'.*='", re.IGNORECASE),
]

XSS_PATTERNS = [
    re.compile(r"<script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"vbscript\s*:", re.IGNORECASE),
    re.compile(r"data\s*:\s*text/html", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
    re.compile(r"<\s*(iframe|object|embed|svg|img|link|meta|style)\b", re.IGNORECASE),
]

# Elements whose *content* must go too, not only the tags.
DANGEROUS_BLOCK_PATTERN = re.compile(r'<(script|style)\b[^>]*>.*?</\1\s*>', re.IGNORECASE | re.DOTALL)
HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->', re.DOTALL)
# A tag starts right after '<'; "a < b" is a comparison, not markup.
TAG_PATTERN = re.compile(r'<[a-zA-Z/!?]')

ALLOWED_TAGS = ['p', 'br', 'strong', 'em', 'u', 'ul', 'ol', 'li', 'blockquote', 'code', 'pre']


def strip_control_characters(text):
    """Remove NUL and other non-printing control characters."""
    if not text:
        return text
    return CONTROL_CHARS_PATTERN.sub('', text)


def contains_sql_injection(text):
    if not text:
        return False
    return any(pattern.search(text) for pattern in SQL_INJECTION_PATTERNS)


def contains_xss(text):
    if not text:
        return False
    return any(pattern.search(text) for pattern in XSS_PATTERNS)


def _clean_markup(text):
    return bleach.clean(text, tags=ALLOWED_TAGS, attributes={}, strip=True).strip()


def _restore_escapes(cleaned):
    """Undo the entity escaping bleach applies to plain characters."""
    return cleaned.replace('&lt;', '<').replace('&gt;', '>').replace('&amp;', '&')


def sanitize_text(text):
    """Strip control characters and unsafe markup from free text.

    Plain text, including any unicode, is returned unchanged apart from
    surrounding whitespace. Only text that contains a real tag is run
    through bleach, and the `&`, `<` and `>` that bleach escaped are put back
    as long as doing so cannot bring markup back.
    """
    if not text:
        return text

    text = strip_control_characters(text).strip()

    # Fast path: no markup, nothing for bleach to do
    if not TAG_PATTERN.search(text):
        return text

    text = DANGEROUS_BLOCK_PATTERN.sub('', text)
    text = HTML_COMMENT_PATTERN.sub('', text)
    cleaned = _clean_markup(text)

    restored = _restore_escapes(cleaned)
    # Entities in the input (&lt;script&gt;) must not turn into live markup
    if contains_xss(restored) or _clean_markup(restored) != cleaned:
        return cleaned
    return restored


class Validator:
    """Input validation utilities."""

    EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9]+([._%+-][a-zA-Z0-9]+)*@([a-zA-Z0-9]+([.-][a-zA-Z0-9]+)*\.)+[a-zA-Z]{2,}$')
    HEX_COLOR_PATTERN = re.compile(r'^#[0-9A-Fa-f]{6}$')
    SAFE_FILENAME_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')
    PASSWORD_PATTERN = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,128}$')

    @staticmethod
    def validate_string_length(value, field_name, min_length=0, max_length=None):
        """Validate string length constraints on the trimmed value."""
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string")

        value = value.strip()
        if len(value) < min_length:
            raise ValidationError(f"{field_name} must be at least {min_length} characters")

        if max_length and len(value) > max_length:
            raise ValidationError(f"{field_name} must be no more than {max_length} characters")

        return value

    @staticmethod
    def validate_safe_identifier(value, field_name, min_length=1, max_length=255):
        """Validate a short identifier such as a code, name or subject.

        Injection attempts are rejected rather than cleaned, since an
        identifier that needed cleaning is not one the user meant to type.
        """
        value = Validator.validate_string_length(
            strip_control_characters(value) if isinstance(value, str) else value,
            field_name, min_length, max_length
        )
        if contains_sql_injection(value):
            raise ValidationError(f"{field_name} contains potentially dangerous SQL patterns")
        if contains_xss(value):
            raise ValidationError(f"{field_name} contains potentially dangerous script content")
        return value

    @staticmethod
    def validate_safe_text(value, field_name, max_length=5000, allow_blank=True):
        """Validate and sanitize a free-text field."""
        if value is None:
            return value
        if not isinstance(value, str):
            raise ValidationError(f"{field_name} must be a string")
        if len(value) > max_length:
            raise ValidationError(f"{field_name} must be no more than {max_length} characters")
        if contains_sql_injection(value):
            raise ValidationError(f"{field_name} contains potentially dangerous SQL patterns")
        cleaned = sanitize_text(value)
        if not allow_blank and not cleaned:
            raise ValidationError(f"{field_name} must not be blank")
        return cleaned

    @staticmethod
    def validate_email(email):
        """Validate email format (RFC 5321 length limits included)."""
        if not isinstance(email, str):
            raise ValidationError("Invalid email format")
        email = email.strip().lower()
        if len(email) > 254 or len(email.split('@', 1)[0]) > 64:
            raise ValidationError("Invalid email format")
        if not Validator.EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format")
        return email

    @staticmethod
    def validate_password_strength(password):
        if not isinstance(password, str) or not Validator.PASSWORD_PATTERN.match(password):
            raise ValidationError(
                "Password must be at least 8 characters and contain an uppercase letter, "
                "a lowercase letter and a number"
            )
        return password

    @staticmethod
    def validate_hex_color(value, field_name='color'):
        if not isinstance(value, str) or not Validator.HEX_COLOR_PATTERN.match(value):
            raise ValidationError(f"{field_name} must be a hex color like #RRGGBB")
        return value.upper()

    @staticmethod
    def validate_safe_filename(filename, field_name='filename'):
        """Reject path separators, traversal and anything outside [A-Za-z0-9._-]."""
        if not filename or not isinstance(filename, str):
            raise ValidationError(f"{field_name} is required")
        if '..' in filename or '/' in filename or '\\' in filename or '\x00' in filename:
            raise ValidationError(f"Invalid {field_name} - path traversal not allowed")
        if len(filename) > 255 or not Validator.SAFE_FILENAME_PATTERN.match(filename):
            raise ValidationError(f"Invalid characters in {field_name}")
        return filename

    @staticmethod
    def validate_choice(value, field_name, valid_choices):
        """Validate that value is in list of valid choices."""
        if value not in valid_choices:
            raise ValidationError(f"{field_name} must be one of: {', '.join(str(c) for c in valid_choices)}")
        return value

    @staticmethod
    def parse_bool_arg(value, field_name):
        """Parse a boolean query-string argument."""
        if value is None:
            return None
        lowered = value.strip().lower()
        if lowered in ('true', '1'):
            return True
        if lowered in ('false', '0'):
            return False
        raise ValidationError(f"{field_name} must be true or false")
