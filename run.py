"""CLI entrypoint."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv as _load_dotenv

from storefinder import config
from storefinder.errors import InvalidInputError
from storefinder.models import GeoPoint, Part, SearchRequest
from storefinder.pipeline import build_locator
from storefinder.reporting import render_summary, result_to_dict, write_json_object


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Find nearby stores likely to carry an appliance part")
    parser.add_argument("--part", required=True, help="Part name, e.g. 'Dishwasher Door Seal'")
    parser.add_argument("--category", default="", help="Part category, e.g. 'Seals & Gaskets'")
    parser.add_argument("--brand", default=None)
    location = parser.add_mutually_exclusive_group(required=True)
    location.add_argument("--zip", dest="postal_code", type=str, default=None, help="US ZIP code")
    location.add_argument("--lat", type=float, default=None)
    parser.add_argument("--lon", type=float, default=None)
    parser.add_argument("--max-distance", type=float, default=None, help="Maximum distance in miles")
    parser.add_argument("--cap", type=int, default=None, help="Maximum number of stores returned")
    parser.add_argument("--warm-start", action="store_true", help="Classify and search concurrently")
    parser.add_argument("--config", type=str, default=None, help="Path to locator_config.json")
    parser.add_argument("--out", type=str, default=None, help="Write the result as JSON to this path")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a summary")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if config.load_search_config(args.config):
        logging.getLogger(__name__).info("Loaded locator config overrides")

    part = Part(name=args.part, category=args.category, brand=args.brand)
    max_distance = args.max_distance if args.max_distance is not None else config.DEFAULT_MAX_DISTANCE_MILES
    cap = args.cap if args.cap is not None else config.DEFAULT_RESULT_CAP

    locator = build_locator(
        places_api_key=os.environ.get("GOOGLE_PLACES_API_KEY"),
        warm_start=args.warm_start,
    )
    try:
        if args.postal_code:
            result = locator.find_stores_by_postal_code(part, args.postal_code, max_distance, cap)
        else:
            if args.lon is None:
                print("--lon is required with --lat", file=sys.stderr)
                return 2
            request = SearchRequest(
                part=part,
                origin=GeoPoint(latitude=args.lat, longitude=args.lon),
                max_distance_miles=max_distance,
                result_cap=cap,
            )
            result = locator.find_stores(request)
    except InvalidInputError as exc:
        print(f"Invalid request: {exc}", file=sys.stderr)
        return 2
    finally:
        locator.close()

    payload = result_to_dict(result)
    if args.out:
        write_json_object(args.out, payload)
    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        for line in render_summary(result):
            print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
