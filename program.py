import isa


def parse_lines(lines):
    """Decode one mnemonic per line; blank lines are skipped.

    Decode errors are re-raised with the 1-based line number attached.
    """
    instructions = []
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            instructions.append(isa.decode_mnemonic(line))
        except isa.DecodeError as e:
            e.line = lineno
            raise
    return instructions


def parse_text(text):
    return parse_lines(text.splitlines())


def parse_file(filename):
    with open(filename, "r") as f:
        return parse_lines(f)
