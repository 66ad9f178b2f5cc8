# decompiler.py
# Turn 32-bit machine words back into MIPS mnemonics, printed as a table

import sys

import isa
from bitfields import parse_word

HEADER = ("Instruction", "Fmt", "Decomposition", "Decomp hex", "Source")


def format_row(cols):
    return f"{cols[0]:<12} {cols[1]:<3} {cols[2]:<16} {cols[3]:<22} {cols[4]:<18}".rstrip()


def decompile_tokens(tokens):
    results = []
    for token in tokens:
        try:
            word = parse_word(token)
        except ValueError as e:
            print(f"[DECOMPILE] Skipping {token!r}: {e}")
            continue
        results.append(isa.decompile(word))
    return results


def decompile_lines(lines):
    tokens = []
    for line in lines:
        tokens.extend(line.split())
    return decompile_tokens(tokens)


def print_table(results, header=True, out=None):
    out = out or sys.stdout
    if header:
        print(format_row(HEADER), file=out)
    for result in results:
        print(format_row(result.columns()), file=out)
        for error in result.errors:
            print(f"{'':<12} ! {error}", file=out)


def print_supported(out=None):
    out = out or sys.stdout
    for name in isa.supported_mnemonics():
        proto = isa.prototype(name)
        print(f"{proto.example:<22} {proto.description}", file=out)


def _usage():
    print("Usage: python decompiler.py [OPTIONS] [FILE...]")
    print("Options:")
    print("  -n VALUE, --number=VALUE  Decompile VALUE (repeatable)")
    print("  --headerless              Suppress the table header")
    print("  --printsupported          List the supported instructions")
    print("  -h, --help                Print this message")


def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    numbers = []
    files = []
    header = True

    while args:
        arg = args.pop(0)
        if arg == "-n":
            if not args:
                print("Option -n requires a value")
                sys.exit(1)
            numbers.append(args.pop(0))
        elif arg.startswith("--number="):
            numbers.append(arg.split("=", 1)[1])
        elif arg == "--headerless":
            header = False
        elif arg == "--printsupported":
            print_supported()
            sys.exit(0)
        elif arg in ("-h", "--help"):
            _usage()
            sys.exit(0)
        elif arg.startswith("-") and len(arg) > 1:
            print(f"Unknown option: {arg}")
            sys.exit(1)
        else:
            files.append(arg)

    results = decompile_tokens(numbers)
    for filename in files:
        try:
            with open(filename, "r") as f:
                results.extend(decompile_lines(f))
        except OSError as e:
            print(f"[ERROR] {e}")
            sys.exit(1)
    if not numbers and not files:
        results = decompile_lines(sys.stdin)

    print_table(results, header=header)


if __name__ == "__main__":
    main()
