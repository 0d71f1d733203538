"""
nncircuit — entry point.

Usage:
    python -m nncircuit validate <file>
    python -m nncircuit flatten <file>
    python -m nncircuit layout <file> [--output-offset N]

Add ``-v`` anywhere for progress logging.
"""

import json
import logging
import sys

USAGE = "Usage: python -m nncircuit {validate|flatten|layout} <file> [--output-offset N] [-v]"


def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = "-v" in args
    args = [a for a in args if a != "-v"]
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    output_offset = None
    for i, a in enumerate(args):
        if a == "--output-offset" and i + 1 < len(args):
            try:
                output_offset = int(args[i + 1])
            except ValueError:
                print(f"--output-offset expects an integer, got '{args[i + 1]}'")
                sys.exit(2)
            if output_offset < 0:
                print(f"--output-offset must not be negative, got {output_offset}")
                sys.exit(2)
            del args[i:i + 2]
            break

    if len(args) != 2 or args[0] not in ("validate", "flatten", "layout"):
        print(USAGE)
        sys.exit(2)
    cmd, path = args

    from nncircuit.pipeline.diagram import DiagramLoadError, load_diagram_file
    from nncircuit.pipeline.flatten import flat_graph_to_dict
    from nncircuit.pipeline.layout import layout_to_dict
    from nncircuit.pipeline.runner import run_pipeline

    if cmd == "validate":
        print(f"Validating: {path}")
    try:
        data = load_diagram_file(path)
    except DiagramLoadError as e:
        print(e)
        if cmd == "validate":
            print("INVALID")
        sys.exit(1)

    result = run_pipeline(data, output_offset=output_offset, stop_after=cmd)
    if result.validation is not None:
        for diag in result.validation.diagnostics:
            print(diag)

    if cmd == "validate":
        print("VALID" if result.success else "INVALID")
    elif not result.success:
        print(result.message)
    elif cmd == "flatten":
        print(json.dumps(flat_graph_to_dict(result.graph), indent=2))
    else:
        print(json.dumps(layout_to_dict(result.layout), indent=2))

    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
