"""Tests for configuration, session login and the command-line entry points"""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

import logitycoon_bot
import run_24_7
from bot_config import DEFAULT_CONFIG, DEFAULT_ENDPOINTS, endpoint, load_config, merge_config
from cycles import CycleReport
from dispatchers import REJECTED, ActionOutcome
from errors import ErrorKind
from logitycoon_bot import LogiTycoonBot


def page(text="<html>Employees</html>", status=200, url="https://game.test/eu1/index.php?a=employees"):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.url = url
    return resp


@pytest.fixture()
def bot():
    return LogiTycoonBot(config={"base_url": "https://game.test/eu1/", "session_token": "abc123"})


class TestConfig:
    def test_merge_is_recursive(self):
        merged = merge_config(DEFAULT_CONFIG, {"loop": {"domains": ["fuel"]}, "fuel_threshold": 50})

        assert merged["loop"]["domains"] == ["fuel"]
        assert merged["loop"]["cycle_delay_min"] == DEFAULT_CONFIG["loop"]["cycle_delay_min"]
        assert merged["fuel_threshold"] == 50
        assert DEFAULT_CONFIG["fuel_threshold"] == 99

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "missing.json")) == DEFAULT_CONFIG

    def test_invalid_json_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_config(str(path)) == DEFAULT_CONFIG

    def test_user_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "session_token": "s3cret",
            "endpoints": {"trips_page": "index.php?a=trips&sort=earnings"},
        }), encoding="utf-8")
        config = load_config(str(path))

        assert config["session_token"] == "s3cret"
        assert config["endpoints"]["trips_page"] == "index.php?a=trips&sort=earnings"
        assert config["endpoints"]["garage_page"] == DEFAULT_ENDPOINTS["garage_page"]

    def test_endpoint_template(self):
        assert endpoint(DEFAULT_ENDPOINTS, "freight_detail", "919") == "index.php?a=freight&n=919"
        assert endpoint(DEFAULT_ENDPOINTS, "repair") == "ajax/garage_repair.php"


class TestLogin:
    def test_valid_session(self, bot):
        with patch.object(bot.session, "get", return_value=page()) as get:
            assert bot.login()

        assert bot.logged_in
        assert bot.session.cookies.get("PHPSESSID") == "abc123"
        assert get.call_args[0][0] == "https://game.test/eu1/index.php?a=employees"

    def test_redirect_to_login_page(self, bot):
        login_page = page('<form><input type="password" name="pw"></form>',
                          url="https://game.test/eu1/index.php?a=login")
        with patch.object(bot.session, "get", return_value=login_page):
            assert not bot.login()
        assert not bot.logged_in

    def test_http_error(self, bot):
        with patch.object(bot.session, "get", return_value=page(status=502)):
            assert not bot.login()

    def test_unreachable_server(self, bot):
        with patch.object(bot.session, "get", side_effect=requests.ConnectionError("refused")):
            assert not bot.login()

    def test_missing_token(self):
        bot = LogiTycoonBot(config={"session_token": ""})
        with patch.object(bot.session, "get") as get:
            assert not bot.login()
        get.assert_not_called()

    def test_custom_cookie_name(self):
        bot = LogiTycoonBot(config={"session_token": "t", "session_cookie_name": "LTSESSION"})
        with patch.object(bot.session, "get", return_value=page()):
            bot.login()
        assert bot.session.cookies.get("LTSESSION") == "t"


class TestMain:
    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr(logitycoon_bot, "setup_logging", lambda *args, **kwargs: None)

    def test_login_failure(self, tmp_path):
        with patch.object(LogiTycoonBot, "login", return_value=False):
            assert logitycoon_bot.main(["employee", "--config", str(tmp_path / "none.json")]) == 1

    def test_runs_requested_domain(self, tmp_path):
        with patch.object(LogiTycoonBot, "login", return_value=True), \
                patch.object(LogiTycoonBot, "run_cycles", return_value=[CycleReport("fuel", processed=1)]) as run:
            assert logitycoon_bot.main(["fuel", "--config", str(tmp_path / "none.json")]) == 0
        run.assert_called_once_with(["fuel"])

    def test_all_uses_loop_domains(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"loop": {"domains": ["garage", "trips"]}}), encoding="utf-8")
        reports = [CycleReport("garage"), CycleReport("trips", error="HTTP 500")]
        with patch.object(LogiTycoonBot, "login", return_value=True), \
                patch.object(LogiTycoonBot, "run_cycles", return_value=reports) as run:
            assert logitycoon_bot.main(["all", "--config", str(path)]) == 2
        run.assert_called_once_with(["garage", "trips"])

    def test_rejects_unknown_domain(self):
        with pytest.raises(SystemExit):
            logitycoon_bot.main(["bank"])

    def test_report_explains_failures(self, capsys):
        report = CycleReport("garage", processed=2)
        report.outcomes.append(ActionOutcome("501", "repair", REJECTED, code="ERROR_NOT_ENOUGH_MONEY",
                                             message="Not enough money"))
        report.failures.update({"501": ErrorKind.ACTION_REJECTED, "601": ErrorKind.CANCELLED})

        logitycoon_bot.print_report(report)

        out = capsys.readouterr().out
        assert "✗ 501 repair: ERROR_NOT_ENOUGH_MONEY: Not enough money" in out
        assert "✗ 601: cancelled" in out
        assert "501: action_rejected" not in out


class TestAFKMode:
    def test_run_once_collects_stats(self, tmp_path, monkeypatch):
        monkeypatch.setattr(run_24_7, "setup_logging", lambda *args, **kwargs: None)
        afk = run_24_7.AFK24x7Bot(str(tmp_path / "none.json"))
        afk.bot = MagicMock()
        afk.bot.run_cycles.return_value = [
            CycleReport("employee", acted=2),
            CycleReport("fuel", acted=1, failures={"7": ErrorKind.ACTION_REJECTED}),
        ]

        assert afk.run_once()
        assert afk.stats["cycles_completed"] == 1
        assert afk.stats["actions"] == 3
        assert afk.stats["failures"] == 1
        assert afk.stats["per_domain"] == {"employee": 2, "fuel": 1}
        afk.bot.run_cycles.assert_called_once_with(DEFAULT_CONFIG["loop"]["domains"])

    def test_run_once_flags_cycle_errors(self, tmp_path, monkeypatch):
        monkeypatch.setattr(run_24_7, "setup_logging", lambda *args, **kwargs: None)
        afk = run_24_7.AFK24x7Bot(str(tmp_path / "none.json"))
        afk.bot = MagicMock()
        afk.bot.run_cycles.return_value = [CycleReport("garage", error="connection refused")]

        assert not afk.run_once()
