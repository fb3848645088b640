"""
Test stagecrypt/commands.py
"""
import json
from base64 import b64decode

from click.testing import CliRunner

from stagecrypt.commands import cli

from .mocks import PAYLOAD, SAMPLE_CONFIG, SAMPLE_KEY, flip


class CliTestMixin:
    def run(self, *args):
        """
        Run command, config as first argument
        """
        runner = CliRunner()
        return runner.invoke(
            cli, [str(arg) for arg in args], obj={}, catch_exceptions=False
        )

    def cmd(self, tmp_path, *args, strategy="auto", key=SAMPLE_KEY):
        """
        Create valid config and run specified command

        The smart_open backends need the real filesystem, so these use tmp_path
        rather than pyfakefs.
        """
        filename = self.gen_config(tmp_path, "config.conf", strategy=strategy, key=key)
        return self.run(filename, *args)

    def gen_config(self, tmp_path, filename, strategy="auto", key=SAMPLE_KEY):
        path = tmp_path / filename
        path.write_text(SAMPLE_CONFIG.format(strategy=strategy, key=key))
        return path


class TestCommandTest(CliTestMixin):
    def test_config_does_not_exist__raises_error(self, tmp_path):
        result = self.run(tmp_path / "does_not_exist.conf", "test")
        assert result.exit_code == 2
        assert "does_not_exist.conf" in result.output
        assert "does not exist" in result.output

    def test_config_does_exist_but_invalid__raises_error(self, tmp_path):
        filename = self.gen_config(tmp_path, "invalid.conf", strategy="mmap")
        result = self.run(filename, "test")
        assert result.exit_code == 1
        assert (
            "Invalid config: The encryption strategy 'mmap' is not recognised"
            in result.output
        )

    def test_config_does_exist_and_is_valid__passes(self, tmp_path):
        result = self.cmd(tmp_path, "test")
        assert result.exit_code == 0
        assert "Config file syntax is correct" in result.output


class TestCommandGenkey(CliTestMixin):
    def test_default__256_bits(self, tmp_path):
        result = self.cmd(tmp_path, "genkey")
        assert result.exit_code == 0
        assert len(b64decode(result.output.strip())) == 32

    def test_size(self, tmp_path):
        result = self.cmd(tmp_path, "genkey", "--size", "128")
        assert result.exit_code == 0
        assert len(b64decode(result.output.strip())) == 16

    def test_invalid_size__raises_error(self, tmp_path):
        result = self.cmd(tmp_path, "genkey", "--size", "64")
        assert result.exit_code == 2


class TestCommandEncryptDecrypt(CliTestMixin):
    def setup_payload(self, tmp_path):
        source = tmp_path / "payload.bin"
        source.write_bytes(PAYLOAD)
        return source

    def test_round_trip(self, tmp_path):
        source = self.setup_payload(tmp_path)
        encrypted = tmp_path / "payload.enc"
        decrypted = tmp_path / "payload.out"

        result = self.cmd(tmp_path, "encrypt", source, encrypted)
        assert result.exit_code == 0
        assert encrypted.read_bytes() != PAYLOAD

        metadata = json.loads((tmp_path / "payload.enc.meta.json").read_text())
        assert sorted(metadata) == ["iv", "key", "mac", "matdesc"]
        assert json.loads(metadata["matdesc"])["smkId"] == "42"

        result = self.cmd(tmp_path, "decrypt", encrypted, decrypted)
        assert result.exit_code == 0
        assert decrypted.read_bytes() == PAYLOAD

    def test_round_trip__strategies_mixed(self, tmp_path):
        source = self.setup_payload(tmp_path)
        encrypted = tmp_path / "payload.enc"
        decrypted = tmp_path / "payload.out"

        result = self.cmd(
            tmp_path, "encrypt", source, encrypted, "--strategy", "stream"
        )
        assert result.exit_code == 0
        result = self.cmd(
            tmp_path, "decrypt", encrypted, decrypted, "--strategy", "buffer"
        )
        assert result.exit_code == 0
        assert decrypted.read_bytes() == PAYLOAD

    def test_metadata_option(self, tmp_path):
        source = self.setup_payload(tmp_path)
        encrypted = tmp_path / "payload.enc"
        meta = tmp_path / "elsewhere.json"

        self.cmd(tmp_path, "encrypt", source, encrypted, "--metadata", meta)
        assert meta.exists()
        assert not (tmp_path / "payload.enc.meta.json").exists()

        result = self.cmd(
            tmp_path, "decrypt", encrypted, tmp_path / "out", "--metadata", meta
        )
        assert result.exit_code == 0
        assert (tmp_path / "out").read_bytes() == PAYLOAD

    def test_tampered__raises_error_without_output(self, tmp_path):
        source = self.setup_payload(tmp_path)
        encrypted = tmp_path / "payload.enc"
        self.cmd(tmp_path, "encrypt", source, encrypted)
        encrypted.write_bytes(flip(encrypted.read_bytes(), 50))

        before = sorted(p.name for p in tmp_path.iterdir())
        result = self.cmd(
            tmp_path, "decrypt", encrypted, tmp_path / "out", "--strategy", "stream"
        )
        assert result.exit_code == 1
        assert f"Unable to decrypt {encrypted}: Authentication failed" in result.output
        assert sorted(p.name for p in tmp_path.iterdir()) == before

    def test_missing_metadata__raises_error(self, tmp_path):
        source = self.setup_payload(tmp_path)
        (tmp_path / "payload.bin.meta.json").write_text("not json")
        result = self.cmd(tmp_path, "decrypt", source, tmp_path / "out")
        assert result.exit_code == 1
        assert "The metadata is not valid JSON" in result.output

    def test_missing_source__raises_error(self, tmp_path):
        result = self.cmd(
            tmp_path, "encrypt", tmp_path / "missing.bin", tmp_path / "out"
        )
        assert result.exit_code == 1
        assert "Unable to encrypt" in result.output
        assert not (tmp_path / "out").exists()

    def test_metadata_write_fails__no_ciphertext(self, tmp_path):
        source = self.setup_payload(tmp_path)
        encrypted = tmp_path / "payload.enc"
        meta = tmp_path / "missing" / "payload.json"

        result = self.cmd(tmp_path, "encrypt", source, encrypted, "--metadata", meta)
        assert result.exit_code == 1
        assert f"Unable to encrypt {source}: Unable to create temporary file" in (
            result.output
        )
        assert not encrypted.exists()
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "config.conf",
            "payload.bin",
        ]

    def test_corrupted_descriptor__raises_error(self, tmp_path):
        source = self.setup_payload(tmp_path)
        encrypted = tmp_path / "payload.enc"
        self.cmd(tmp_path, "encrypt", source, encrypted)

        sidecar = tmp_path / "payload.enc.meta.json"
        metadata = json.loads(sidecar.read_text())
        metadata["matdesc"] = json.dumps({"keyWrap": 1})
        sidecar.write_text(json.dumps(metadata))

        result = self.cmd(tmp_path, "decrypt", encrypted, tmp_path / "out")
        assert result.exit_code == 1
        assert f"Unable to decrypt {encrypted}: The key wrap algorithm" in (
            result.output
        )
        assert not (tmp_path / "out").exists()

    def test_missing_key_section__raises_error(self, tmp_path):
        source = self.setup_payload(tmp_path)
        result = self.cmd(tmp_path, "encrypt", source, tmp_path / "out", key="")
        assert result.exit_code == 1
        assert "The config does not contain a key section" in result.output

    def test_verbose(self, tmp_path):
        source = self.setup_payload(tmp_path)
        result = self.cmd(tmp_path, "encrypt", source, tmp_path / "out", "-v")
        assert result.exit_code == 0


class TestCommandBenchmark(CliTestMixin):
    def test_benchmark(self, tmp_path):
        result = self.cmd(tmp_path, "benchmark", "--size", "64K", "--runs", "2")
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert [line.split()[0] for line in lines] == [
            "stream",
            "buffer",
            "stream",
            "buffer",
        ]
        assert all(f"{64 * 1024} bytes" in line for line in lines)

    def test_benchmark__memory(self, tmp_path):
        result = self.cmd(
            tmp_path, "benchmark", "--size", "16K", "--chunk-size", "1K", "--memory"
        )
        assert result.exit_code == 0
        assert result.output.count(" MB\n") == 2

    def test_benchmark__invalid_size__raises_error(self, tmp_path):
        result = self.cmd(tmp_path, "benchmark", "--size", "lots")
        assert result.exit_code == 2
        assert "The size must be a number of bytes" in result.output
