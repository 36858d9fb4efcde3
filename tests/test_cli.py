"""
Tests for the command line interface.
"""

from click.testing import CliRunner

from wgdisco.cli import main
from wgdisco.signaling import derive_handle
from wgdisco.wg import Key, derive_public_key


def invoke(tmp_path, *args):
    runner = CliRunner()
    return runner.invoke(main, ["--settings", str(tmp_path / "settings.json"), *args])


class TestCli:
    """Tests for wgdisco subcommands."""

    def test_handle(self, tmp_path):
        key = Key.random()
        result = invoke(tmp_path, "handle", str(key))

        assert result.exit_code == 0
        assert derive_handle(key) in result.output

    def test_handle_bad_key(self, tmp_path):
        result = invoke(tmp_path, "handle", "not-a-key")
        assert result.exit_code == 1

    def test_parse(self, tmp_path):
        private, peer_a, peer_b = Key.generate(), Key.random(), Key.random()
        path = tmp_path / "wg0.conf"
        path.write_text(
            f"[Interface]\nPrivateKey = {private}\nAddress = 10.0.0.1/24\n"
            f"[Peer]\nPublicKey = {peer_a}\nAllowedIPs = 10.0.0.2\n"
            f"[Peer]\nPublicKey = {peer_b}\nEndpoint = 192.0.2.1:51820\nAllowedIPs = 10.0.0.3\n"
        )

        result = invoke(tmp_path, "parse", str(path))

        assert result.exit_code == 0
        assert "2 peers" in result.output
        assert str(derive_public_key(private)) in result.output

    def test_parse_error(self, tmp_path):
        path = tmp_path / "broken.conf"
        path.write_text("[Peer]\nPublicKey = AAAA\n")

        result = invoke(tmp_path, "parse", str(path))

        assert result.exit_code == 1

    def test_run_missing_interface_config(self, tmp_path):
        """A missing wg-quick file is reported, not raised."""
        settings = tmp_path / "settings.json"
        settings.write_text('{"wireguard_dir": "%s"}' % tmp_path)

        result = CliRunner().invoke(main, ["--settings", str(settings), "run", "wg0"])

        assert result.exit_code == 1
