import argparse, json, logging, sys
from pathlib import Path

from .builder import convert_file
from .config import ConversionConfig
from .errors import ConversionError


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="abbyy2alto", description="ABBYY FineReader XML -> ALTO XML.")
    ap.add_argument("abbyy", type=Path, help="Input FineReader XML (v8 or v6 schema)")
    ap.add_argument("out", type=Path, help="Output ALTO XML; in per-page mode a base name (out.xml -> out_0001.xml, ...)")

    ap.add_argument("--env-file", type=str, default=None, help="Read ABBYY2ALTO_* defaults from this .env file")
    ap.add_argument("--whole-document", action="store_true", help="One ALTO file for all pages instead of one per page")
    ap.add_argument("--text-block-type", type=str, default=None, help="blockType treated as text (default: Text)")
    ap.add_argument("--serif-family", action="append", default=None,
                    help="Font family classified as serif; repeatable (default: Times New Roman)")
    ap.add_argument("--no-legacy-font-size", action="store_true",
                    help="Format FONTSIZE with one decimal instead of the historical suffix rule")
    ap.add_argument("--compact", action="store_true", help="Do not indent the output XML")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="-v: page progress, -vv: debug")
    return ap


def main(argv=None):
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=[logging.WARNING, logging.INFO, logging.DEBUG][min(args.verbose, 2)],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.abbyy.exists():
        print(f"ERROR: ABBYY XML not found: {args.abbyy}", file=sys.stderr)
        return 1

    config = ConversionConfig.from_env(
        args.env_file,
        per_page=False if args.whole_document else None,
        text_block_type=args.text_block_type,
        serif_families=tuple(args.serif_family) if args.serif_family else None,
        legacy_font_size=False if args.no_legacy_font_size else None,
        pretty_print=False if args.compact else None,
    )

    try:
        summary = convert_file(args.abbyy, args.out, config)
    except ConversionError as e:
        print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"ERROR: cannot write ALTO output: {e}", file=sys.stderr)
        return 2

    print(json.dumps(summary, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
