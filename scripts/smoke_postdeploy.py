"""
Post-deploy smoke check of the web app: GET /health and /version.

  python scripts/smoke_postdeploy.py https://suppliers.example.com
  SMOKE_BASE_URL=https://suppliers.example.com python scripts/smoke_postdeploy.py
"""
import argparse
import logging
import sys
from numbers import Number
from pathlib import Path
from urllib.parse import urljoin

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import requests

from errors import ConfigurationMissing, OpsError
from scripts.cli_support import run_cli

logger = logging.getLogger(__name__)

TIMEOUT = 10


class SmokeCheckFailed(OpsError):
    pass


def _is_number(v) -> bool:
    return isinstance(v, Number) and not isinstance(v, bool)


def fetch_json(url: str, timeout: int = TIMEOUT) -> dict:
    try:
        r = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise SmokeCheckFailed(f"Request failed for {url}: {e}") from e
    if r.status_code != 200:
        raise SmokeCheckFailed(f"HTTP {r.status_code} for {url}")
    try:
        return r.json()
    except ValueError as e:
        raise SmokeCheckFailed(f"Invalid JSON from {url}: {e}") from e


def check_health(health: dict) -> None:
    if health.get("userSource") != "database":
        raise SmokeCheckFailed('userSource is not "database"')
    if not _is_number(health.get("usersCount")):
        raise SmokeCheckFailed("usersCount missing or not a number")
    if "roleCounts" in health and not isinstance(health["roleCounts"], dict):
        raise SmokeCheckFailed("roleCounts is not an object")
    for key in ("usersActiveCount", "usersInactiveCount"):
        if key in health and not _is_number(health[key]):
            raise SmokeCheckFailed(f"{key} is not a number")


def check_version(version: dict) -> None:
    if not version or not (version.get("version") or version.get("buildTime")):
        raise SmokeCheckFailed("version response has neither version nor buildTime")


def smoke(base_url: str, timeout: int = TIMEOUT) -> dict:
    base = base_url.rstrip("/") + "/"
    health = fetch_json(urljoin(base, "health"), timeout)
    check_health(health)
    logger.info("/health OK")
    version = fetch_json(urljoin(base, "version"), timeout)
    check_version(version)
    logger.info("/version OK")
    return {"health": health, "version": version}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Post-deploy smoke check (/health, /version)")
    ap.add_argument("base_url", nargs="?", default=None, help="App base URL (default: SMOKE_BASE_URL)")
    ap.add_argument("--timeout", type=int, default=TIMEOUT, help="Per-request timeout in seconds")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    def body(settings) -> int:
        base_url = args.base_url or settings.smoke_base_url
        if not base_url:
            raise ConfigurationMissing("Base URL required: smoke_postdeploy.py <BASE_URL> or SMOKE_BASE_URL.")
        smoke(base_url, args.timeout)
        print("Post-deploy check OK.")
        return 0

    return run_cli("smoke_postdeploy", args, body)


if __name__ == "__main__":
    sys.exit(main())
