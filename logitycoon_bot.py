#!/usr/bin/env python3
"""
LogiTycoon Automation Bot
Puts idle employees to sleep, repairs and refuels vehicles, accepts trips
and presses freight progress buttons.

Run one pass:
    python logitycoon_bot.py employee
    python logitycoon_bot.py all --config config.json
"""

import argparse
import asyncio
import logging
import sys
from typing import Dict, Iterable, List

import requests
from bs4 import BeautifulSoup

from bot_config import DEFAULT_CONFIG, endpoint, load_config, merge_config
from cycles import DOMAINS, CycleReport, CycleRunner
from page_fetcher import PageFetcher

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.5',
    'Connection': 'keep-alive',
    'Upgrade-Insecure-Requests': '1',
}


def setup_logging(log_file: str = "logitycoon_bot.log", level: int = logging.INFO):
    """File + console logging; the console stream is UTF-8 so the ✓/✗ marks never fail to encode"""
    utf8_console = open(1, 'w', encoding='utf-8', errors='replace', closefd=False)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(stream=utf8_console),
        ]
    )


class LogiTycoonBot:
    """Session holder and entry point for automation cycles"""

    def __init__(self, config_file: str = "config.json", config: Dict = None):
        self.config = merge_config(DEFAULT_CONFIG, config) if config is not None else load_config(config_file)
        self.base_url = self.config["base_url"]
        self.logged_in = False

        self.session = requests.Session()
        self.session.headers.update(BROWSER_HEADERS)

        self.fetcher = PageFetcher(
            self.session,
            self.base_url,
            timeout=self.config.get("request_timeout"),
            max_retries=self.config.get("max_retries", 0),
        )
        self.runner = CycleRunner(self.fetcher, self.config)

    # ── authentication ────────────────────────────────────────────────────────

    def login(self, session_token: str = None) -> bool:
        """Install the game's session cookie and check that it is still valid"""
        session_token = session_token or self.config.get("session_token")
        if not session_token:
            logger.error("session_token required in config.json (copy the PHPSESSID cookie from your browser)")
            return False
        return self.login_with_session_token(session_token)

    def login_with_session_token(self, session_token: str) -> bool:
        cookie_name = self.config.get("session_cookie_name", "PHPSESSID")
        self.session.cookies.clear()
        self.session.cookies.set(cookie_name, session_token)

        url = self.fetcher.resolve(endpoint(self.config["endpoints"], "employees_page"))
        try:
            logger.info("Verifying session token...")
            response = self.session.get(url, timeout=self.config.get("request_timeout"))
        except requests.RequestException as e:
            logger.error(f"Could not reach {url}: {e}")
            self.logged_in = False
            return False

        if response.status_code != 200:
            logger.error(f"HTTP {response.status_code} while verifying session")
            self.logged_in = False
            return False

        soup = BeautifulSoup(response.text, 'html.parser')
        on_login_page = 'login' in response.url.lower() or soup.find('input', {'type': 'password'}) is not None
        self.logged_in = not on_login_page
        if self.logged_in:
            logger.info("✓ Session token accepted")
        else:
            logger.error("Session token rejected - the game sent us to the login page")
        return self.logged_in

    # ── cycles ────────────────────────────────────────────────────────────────

    async def run_cycles_async(self, domains: Iterable[str]) -> List[CycleReport]:
        reports = []
        for domain in domains:
            reports.append(await self.runner.run_cycle(domain))
        return reports

    def run_cycles(self, domains: Iterable[str]) -> List[CycleReport]:
        return asyncio.run(self.run_cycles_async(domains))


def print_report(report: CycleReport):
    print(f"\n{'='*60}")
    print(f"{report.domain.upper()} CYCLE")
    print(f"{'='*60}")
    print(f"  Processed : {report.processed}")
    print(f"  Acted     : {report.acted}")
    print(f"  Skipped   : {report.skipped}")
    if report.error:
        print(f"  Error     : {report.error}")
    explained = set()
    for outcome in report.outcomes:
        error = outcome.to_error()
        if error is not None:
            explained.add(outcome.entity_id)
            print(f"  ✗ {outcome.entity_id} {outcome.action}: {error}")
    for entity_id, kind in report.failures.items():
        if entity_id not in explained:
            print(f"  ✗ {entity_id}: {kind.value}")
    print(f"{'='*60}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="LogiTycoon automation bot")
    parser.add_argument("domain", choices=DOMAINS + ("all",),
                        help="Which automation to run ('all' runs every acting domain)")
    parser.add_argument("--config", default="config.json",
                        help="Path to config file (default: config.json)")
    parser.add_argument("--verbose", action="store_true", help="Log debug output")
    args = parser.parse_args(argv)

    bot = LogiTycoonBot(args.config)
    setup_logging(bot.config.get("log_file", "logitycoon_bot.log"),
                  logging.DEBUG if args.verbose else logging.INFO)

    if not bot.login():
        print("✗ Login failed. Check session_token in your config")
        return 1

    domains = bot.config["loop"]["domains"] if args.domain == "all" else [args.domain]
    try:
        reports = bot.run_cycles(domains)
    except KeyboardInterrupt:
        print("\n✓ Bot stopped by user")
        return 130

    for report in reports:
        print_report(report)
    return 0 if all(r.error is None for r in reports) else 2


if __name__ == "__main__":
    sys.exit(main())
