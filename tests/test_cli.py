import pytest

from serverboot import main as cli
from serverboot.main import EXIT_CONFIG_ERROR, EXIT_OK, EXIT_START_FAILED, main
from serverboot.server import ServerBootstrap


def test_bind_failure_exits_non_zero(occupied_port, capsys):
    exit_code = main(["--host", "127.0.0.1", "--port", str(occupied_port), "--log-format", "json"])

    assert exit_code == EXIT_START_FAILED
    out = capsys.readouterr().out
    assert "server_bind_failed" in out
    assert str(occupied_port) in out


def test_invalid_configuration_exits_with_config_error(monkeypatch):
    monkeypatch.setenv("SERVERBOOT_CORS_ENABLED", "sometimes")

    assert main([]) == EXIT_CONFIG_ERROR


def test_unknown_log_level_is_rejected_by_argparse():
    with pytest.raises(SystemExit) as excinfo:
        main(["--log-level", "chatty"])
    assert excinfo.value.code == 2


def test_interrupt_is_a_clean_exit(monkeypatch, free_port):
    seen = {}

    def _start(self, port=None, *, block=True):
        seen["config"] = self.config
        seen["middleware"] = self.installed_middleware
        raise KeyboardInterrupt

    monkeypatch.setattr(ServerBootstrap, "start", _start)

    exit_code = main(
        ["--host", "127.0.0.1", "--port", str(free_port), "--cors", "--no-request-logging"]
    )

    assert exit_code == EXIT_OK
    assert seen["config"].port == free_port
    assert seen["middleware"] == ["security_headers", "cors"]


def test_middleware_flags_only_override_when_given():
    args = cli._build_parser().parse_args(["--no-security-headers"])

    assert cli._middleware_overrides(args) == {"security_headers": {"enabled": False}}


def test_malformed_config_file_exits_with_config_error(tmp_path):
    config_file = tmp_path / "serverboot.toml"
    config_file.write_text('server = "oops"\n')

    assert main(["--config", str(config_file)]) == EXIT_CONFIG_ERROR
