#!/usr/bin/env python3
"""
LogiTycoon 24/7 AFK Mode
Repeats the automation cycles with random delays, breaks and session refreshes
"""

import argparse
import logging
import random
import time
from datetime import datetime

from bot_config import load_config
from logitycoon_bot import LogiTycoonBot, setup_logging


class AFK24x7Bot:
    """Wrapper for continuous operation"""

    def __init__(self, config_file: str = "config.json"):
        self.config_file = config_file
        self.bot = None
        self.stats = {
            'cycles_completed': 0,
            'actions': 0,
            'failures': 0,
            'errors': 0,
            'restarts': 0,
            'start_time': datetime.now(),
            'per_domain': {},  # {domain: actions}
        }

        self.loop_config = load_config(config_file)["loop"]
        self.cycles_before_break = self._next_break()
        self.session_refresh_hours = self.loop_config.get("session_refresh_hours", 3)
        self.last_session_refresh = datetime.now()

        setup_logging('afk_24x7.log')
        self.logger = logging.getLogger(__name__)

    def _next_break(self) -> int:
        return random.randint(
            self.loop_config.get("cycles_before_break_min", 20),
            self.loop_config.get("cycles_before_break_max", 40),
        )

    def print_stats(self):
        """Print current session statistics"""
        uptime = (datetime.now() - self.stats['start_time']).total_seconds()
        h, rem = divmod(int(uptime), 3600)
        m, s = divmod(rem, 60)
        uptime_str = f"{h}h {m}m {s}s" if h else f"{m}m {s}s"

        print(f"\n{'='*60}")
        print(f"📊 24/7 AFK MODE - SESSION STATS")
        print(f"{'='*60}")
        print(f"⏱️  Uptime     : {uptime_str}")
        print(f"🔁 Cycles     : {self.stats['cycles_completed']}")
        print(f"✅ Actions    : {self.stats['actions']}")
        for domain, count in sorted(self.stats['per_domain'].items()):
            print(f"   • {domain}: {count}")
        print(f"❌ Failures   : {self.stats['failures']}")
        print(f"⚠️  Errors     : {self.stats['errors']}")
        print(f"🔄 Restarts   : {self.stats['restarts']}")
        print(f"{'='*60}\n")

    def take_break(self):
        """Pause for a few minutes between batches of cycles"""
        duration = random.randint(
            self.loop_config.get("break_duration_min", 4) * 60,
            self.loop_config.get("break_duration_max", 12) * 60,
        )
        print(f"\n☕ Taking a {duration // 60} minute break after {self.stats['cycles_completed']} cycles")
        self.logger.info(f"Taking {duration // 60}m break after {self.stats['cycles_completed']} cycles")
        self._countdown(duration, "Break time remaining")
        print("✓ Break over, resuming...\n")
        self.cycles_before_break = self._next_break()

    def refresh_session(self):
        """Re-check the session cookie every few hours"""
        elapsed_hours = (datetime.now() - self.last_session_refresh).total_seconds() / 3600
        if elapsed_hours < self.session_refresh_hours:
            return
        self.logger.info("Refreshing session")
        if self.bot.login():
            self.last_session_refresh = datetime.now()
        else:
            self.logger.warning("Session refresh failed, forcing re-initialisation")
            self.bot = None

    def _countdown(self, seconds: float, message: str):
        total = int(seconds)
        for remaining in range(total, 0, -1):
            mins, secs = divmod(remaining, 60)
            print(f"\r{message}: {mins:02d}:{secs:02d}  ", end='', flush=True)
            time.sleep(1)
        if seconds > total:
            time.sleep(seconds - total)
        print("\r" + " " * 50 + "\r", end='', flush=True)

    def run_once(self):
        """One round of every configured domain; returns True when nothing failed"""
        reports = self.bot.run_cycles(self.loop_config.get("domains", []))
        clean = True
        for report in reports:
            self.stats['actions'] += report.acted
            self.stats['failures'] += len(report.failures)
            self.stats['per_domain'][report.domain] = (
                self.stats['per_domain'].get(report.domain, 0) + report.acted
            )
            if report.error:
                clean = False
                self.logger.warning(f"{report.domain} cycle error: {report.error}")
        self.stats['cycles_completed'] += 1
        return clean

    def run_forever(self):
        """Main loop with error recovery"""
        print("=" * 60)
        print("🌙 LogiTycoon 24/7 AFK MODE")
        print("=" * 60)
        print("Press Ctrl+C to stop gracefully\n")

        consecutive_errors = 0
        while True:
            try:
                if self.bot is None or consecutive_errors >= 3:
                    if consecutive_errors >= 3:
                        print(f"\n⚠️  Too many consecutive errors ({consecutive_errors}), reinitializing bot...")
                        self.stats['restarts'] += 1
                    self.bot = LogiTycoonBot(self.config_file)
                    if not self.bot.login():
                        print("✗ Login failed. Retrying in 60 seconds...")
                        self.bot = None
                        time.sleep(60)
                        continue
                    consecutive_errors = 0
                    self.last_session_refresh = datetime.now()

                self.refresh_session()
                if self.bot is None:
                    continue

                if self.run_once():
                    consecutive_errors = 0
                else:
                    consecutive_errors += 1
                    self.stats['errors'] += 1

                if self.stats['cycles_completed'] % 10 == 0:
                    self.print_stats()
                if self.stats['cycles_completed'] % self.cycles_before_break == 0:
                    self.take_break()

                delay = random.uniform(
                    self.loop_config.get("cycle_delay_min", 60),
                    self.loop_config.get("cycle_delay_max", 120),
                )
                self._countdown(delay, "Next cycle in")

            except KeyboardInterrupt:
                print("\n\n🛑 STOPPING BOT (User requested)")
                self.print_stats()
                break

            except Exception as e:
                consecutive_errors += 1
                self.stats['errors'] += 1
                self.logger.error(f"Unexpected error: {e}", exc_info=True)
                wait_time = min(60 * consecutive_errors, 300)
                print(f"Waiting {wait_time}s before retry... (error #{consecutive_errors})")
                time.sleep(wait_time)


def main():
    parser = argparse.ArgumentParser(description="Run LogiTycoon automation cycles continuously")
    parser.add_argument("--config", default="config.json", help="Path to config file")
    args = parser.parse_args()
    AFK24x7Bot(args.config).run_forever()


if __name__ == "__main__":
    main()
