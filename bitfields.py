import re


_LITERAL_RE = re.compile(r"-?(0x[0-9a-f]+|0b[01]+|0d[0-9]+|[0-9]+)")
_BASES = {"0x": 16, "0b": 2, "0d": 10}


class ConfigurationError(ValueError):
    pass


def u32(val):
    return val & 0xffffffff


def s32(val):
    val &= 0xffffffff
    return val - 0x100000000 if val & 0x80000000 else val


def sign_extend(val, bits=16):
    return (val & ((1 << bits) - 1)) - (1 << bits) if (val & (1 << (bits - 1))) else val & ((1 << bits) - 1)


def check_widths(widths):
    if sum(widths) != 32:
        raise ConfigurationError(f"Field widths {tuple(widths)} sum to {sum(widths)}, expected 32")


def decompose(word, widths):
    """Split a 32-bit word into unsigned fields, most significant field first."""
    check_widths(widths)
    word = u32(word)
    fields = []
    shift = 32
    for width in widths:
        shift -= width
        fields.append((word >> shift) & ((1 << width) - 1))
    return fields


def compose(fields, widths):
    """Inverse of decompose()."""
    check_widths(widths)
    if len(fields) != len(widths):
        raise ConfigurationError(f"Expected {len(widths)} fields, got {len(fields)}")
    word = 0
    for value, width in zip(fields, widths):
        if value < 0 or value >= (1 << width):
            raise ConfigurationError(f"Field value {value} does not fit in {width} bits")
        word = (word << width) | value
    return word


def bits(hi, lo, word):
    if not 0 <= lo < hi <= 31:
        raise ConfigurationError(f"Invalid bit range [{hi}:{lo}]")
    return (u32(word) >> lo) & ((1 << (hi - lo + 1)) - 1)


def parse_int(text):
    """Parse a decimal, 0x, 0b or 0d literal with an optional leading minus."""
    s = str(text).strip().lower()
    if not _LITERAL_RE.fullmatch(s):
        raise ValueError(f"Could not interpret {text!r} as a number")
    negative = s.startswith("-")
    if negative:
        s = s[1:]
    base = _BASES.get(s[:2], 10)
    if s[:2] in _BASES:
        s = s[2:]
    value = int(s, base)
    return -value if negative else value


def parse_word(text):
    value = parse_int(text)
    if not -0x80000000 <= value <= 0xffffffff:
        raise ValueError(f"{text!r} does not fit in 32 bits")
    return u32(value)
