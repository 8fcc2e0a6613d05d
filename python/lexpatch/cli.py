import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import structlog

from lexpatch import __version__
from lexpatch.api import apply_all, open_session, suggestions_from_edits
from lexpatch.config import StreamSettings
from lexpatch.diff import track_changes
from lexpatch.errors import LexpatchError
from lexpatch.models import CompletionSummary, NoMatch, ProgressUpdate, Suggestion
from lexpatch.patch.locator import locate
from lexpatch.stream.endpoints import ENDPOINTS


def _configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _read_text(path: Path) -> str:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _load_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error parsing JSON from {path}: {e}", file=sys.stderr)
        sys.exit(1)


def _load_suggestions(path: Path) -> List[Suggestion]:
    data = _load_json(path)
    if not isinstance(data, list):
        print("Error: edits file must contain a JSON list", file=sys.stderr)
        sys.exit(1)
    return suggestions_from_edits([item for item in data if isinstance(item, dict)])


def handle_locate(args):
    document = _read_text(args.input)
    match = locate(document, args.snippet)
    if isinstance(match, NoMatch):
        print(f"Not found ({match.reason})", file=sys.stderr)
        sys.exit(1)

    result: Dict[str, Any] = {"strategy": match.strategy, "matched_text": match.matched_text}
    if match.is_structural:
        result.update(path=list(match.path), slot=match.slot, start=match.start, end=match.end)
    else:
        result.update(start=match.start, end=match.end)
    print(json.dumps(result, indent=2))


def handle_apply(args):
    document = _read_text(args.input)
    suggestions = _load_suggestions(args.edits)
    print(f"Applying {len(suggestions)} edits...", file=sys.stderr)

    content, results = apply_all(document, suggestions)

    output_path = args.output
    if not output_path:
        output_path = args.input.with_name(f"{args.input.stem}_patched{args.input.suffix}")
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(content)

    skipped = 0
    for suggestion, result in zip(suggestions, results):
        if result.success:
            print(f"[~] ({result.strategy}) '{suggestion.original}' -> '{suggestion.replacement}'", file=sys.stderr)
        else:
            skipped += 1
            print(f"[!] {result.reason}: '{suggestion.original}'", file=sys.stderr)

    print(f"✅ Saved to {output_path}", file=sys.stderr)
    print(f"Stats: {len(results) - skipped} applied, {skipped} skipped.", file=sys.stderr)
    if skipped > 0:
        sys.exit(1)


def handle_diff(args):
    changes = track_changes(_read_text(args.original), _read_text(args.modified))

    if args.json:
        print(json.dumps([c.model_dump() for c in changes], indent=2))
        return

    print(f"Found {len(changes)} changes:", file=sys.stderr)
    for c in changes:
        if c.action == "delete":
            print(f"[-] {c.old_text}")
        elif c.action == "insert":
            print(f"[+] {c.new_text}")
        else:
            print(f"[~] '{c.old_text}' -> '{c.new_text}'")


def handle_stream(args):
    payload = _load_json(args.payload) if args.payload else {}
    if not isinstance(payload, dict):
        print("Error: request payload must be a JSON object", file=sys.stderr)
        sys.exit(1)
    if args.contract_id:
        payload["contract_id"] = args.contract_id

    failures: List[Exception] = []

    def on_progress(update: ProgressUpdate):
        if update.suggestion is not None:
            s = update.suggestion
            marker = "+" if update.created else "~"
            print(f"[{marker}] {s.id}: {s.title or s.original or ''}", file=sys.stderr)
        elif update.message:
            print(f"... {update.message}", file=sys.stderr)

    def on_complete(summary: CompletionSummary):
        print(f"✅ Completed: {len(summary.suggestions)} suggestions (upstream total {summary.total})", file=sys.stderr)

    def on_error(error: Exception):
        failures.append(error)
        print(f"❌ {error}", file=sys.stderr)

    settings = StreamSettings.from_env(base_url=args.base_url, api_token=args.token)
    try:
        controller = open_session(args.endpoint, payload, on_progress, on_complete, on_error, settings=settings)
        session = controller.run()
    except (LexpatchError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps([s.model_dump(mode="json") for s in session.suggestions], indent=2))
    if failures:
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(prog="lexpatch", description="Lexpatch: stream and apply AI document suggestions")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Log strategy and stream details to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_locate = subparsers.add_parser("locate", help="Find a snippet in an HTML document")
    p_locate.add_argument("input", type=Path, help="HTML document")
    p_locate.add_argument("snippet", type=str, help="Text to find")
    p_locate.set_defaults(func=handle_locate)

    p_apply = subparsers.add_parser("apply", help="Apply JSON edits to an HTML document")
    p_apply.add_argument("input", type=Path, help="HTML document")
    p_apply.add_argument("edits", type=Path, help="JSON list of {original, replacement} edits")
    p_apply.add_argument("-o", "--output", type=Path, help="Output path (default: <input>_patched)")
    p_apply.set_defaults(func=handle_apply)

    p_diff = subparsers.add_parser("diff", help="Compare the visible text of two HTML documents")
    p_diff.add_argument("original", type=Path, help="Original HTML")
    p_diff.add_argument("modified", type=Path, help="Modified HTML")
    p_diff.add_argument("--json", action="store_true", help="Output raw JSON changes")
    p_diff.set_defaults(func=handle_diff)

    p_stream = subparsers.add_parser("stream", help="Stream suggestions from an analysis endpoint")
    p_stream.add_argument("endpoint", choices=sorted(ENDPOINTS), help="Endpoint name")
    p_stream.add_argument("payload", type=Path, nargs="?", help="JSON request body")
    p_stream.add_argument("--contract-id", type=str, help="Contract id for contract-scoped endpoints")
    p_stream.add_argument("--base-url", type=str, help="API base URL (default: $LEXPATCH_API_BASE_URL)")
    p_stream.add_argument("--token", type=str, help="Bearer token (default: $LEXPATCH_API_TOKEN)")
    p_stream.set_defaults(func=handle_stream)

    args = parser.parse_args()
    _configure_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
