"""
================================================================================
RUN EDITS FROM THE COMMAND LINE
================================================================================
Applies edit operations or a style preset to a video file or URL using the
same engine the API serves.

Usage:
    python tools/run_edit.py clip.mp4 --op trimVideo startTime=5 endTime=15
    python tools/run_edit.py clip.mp4 --op adjustBrightness brightness=10 --op applyFilter filter=cinematic
    python tools/run_edit.py https://example.com/clip.mp4 --style cinematic
    python tools/run_edit.py clip.mp4 --ops-json edits.json --local
    python tools/run_edit.py --list-styles

Exit status is 0 on success, 1 on an engine failure, 2 on bad arguments.

Author: Barrios A2I | 2026-01-11
================================================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from edit_engine.backend_selector import Backend
from edit_engine.batch_pipeline import EngineResult
from edit_engine.config import EngineConfig
from edit_engine.errors import MediaEngineError
from edit_engine.operation_catalog import OperationDescriptor
from edit_engine.orchestrator import MediaEditEngine, create_edit_engine
from edit_engine.style_presets import StylePresetExpander


def parse_parameter(pair: str) -> Dict[str, Any]:
    """key=value with JSON values where they parse (numbers, booleans)"""
    if "=" not in pair:
        raise argparse.ArgumentTypeError(f"Expected key=value, got: {pair}")
    key, raw = pair.split("=", 1)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return {key.strip(): value}


def build_descriptors(engine: MediaEditEngine, args: argparse.Namespace) -> List[OperationDescriptor]:
    descriptors = []
    if args.ops_json:
        entries = json.loads(Path(args.ops_json).read_text())
        for index, entry in enumerate(entries):
            descriptors.append(engine.catalog.descriptor(
                entry["type"], entry.get("parameters", {}), entry.get("order", index + 1)
            ))

    for index, op in enumerate(args.op or [], start=len(descriptors)):
        kind, *pairs = op
        parameters: Dict[str, Any] = {}
        for pair in pairs:
            parameters.update(parse_parameter(pair))
        descriptors.append(engine.catalog.descriptor(kind, parameters, index + 1))
    return descriptors


def print_result(result: EngineResult):
    print("\n" + "=" * 60)
    if result.success:
        print(f"OK ({result.backend.value if result.backend else '?'}, {result.duration_ms} ms)")
        print(f"Operations applied: {result.operations_applied}")
        print(f"Result: {result.result_url}")
    else:
        print(f"FAILED: {result.error_kind}")
        print(f"Message: {result.message}")
        if result.failed_operation_index is not None:
            print(f"Failed operation index: {result.failed_operation_index}")
    print("=" * 60)


async def run(args: argparse.Namespace) -> int:
    # Files on this machine are valid sources from the command line
    engine = create_edit_engine(replace(EngineConfig.from_env(), allow_local_sources=True))
    if args.local:
        engine = engine.pinned(Backend.LOCAL)

    if args.style:
        result = await engine.apply_style(args.source, args.style)
    else:
        try:
            descriptors = build_descriptors(engine, args)
        except MediaEngineError as e:
            print(f"Error: {e.message}")
            return 2
        if not descriptors:
            print("Error: give at least one --op, --ops-json or --style")
            return 2
        if len(descriptors) == 1:
            result = await engine.execute_operation(args.source, descriptors[0])
        else:
            result = await engine.execute_batch(args.source, descriptors)

    print_result(result)
    return 0 if result.success else 1


def main():
    parser = argparse.ArgumentParser(
        description="Apply edit operations or a style preset to a video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("source", nargs="?", help="Video file path or http(s) URL")
    parser.add_argument("--op", nargs="+", action="append", metavar="KIND [key=value ...]",
                        help="Operation kind followed by its parameters (repeatable)")
    parser.add_argument("--ops-json", help="JSON file with [{type, parameters, order}, ...]")
    parser.add_argument("--style", help="Style preset id")
    parser.add_argument("--local", action="store_true", help="Always use the local FFmpeg engine")
    parser.add_argument("--list-styles", action="store_true", help="List style presets and exit")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors")

    args = parser.parse_args()

    if args.list_styles:
        for style in StylePresetExpander().list_styles():
            print(f"{style['id']:<14} {style['description']}  [{', '.join(style['operations'])}]")
        return

    if not args.source:
        parser.error("source is required")

    load_dotenv()
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
