"""
Tests for CLI command implementations.
"""

import json

from filelock import FileLock

from flakeplan.cli.parser import CLI
from flakeplan.core.locking import lock_path_for
from flakeplan.cross.targets import DEFAULT_TARGETS


def run_cli(*argv):
    return CLI().run(list(argv))


class TestPlanCommand:
    """Test plan command."""

    def test_prints_json(self, declaration_file, capsys):
        """Test that the plan goes to stdout as JSON."""
        result = run_cli("--config", str(declaration_file), "plan")

        assert result == 0
        data = json.loads(capsys.readouterr().out)
        assert data["fingerprint"].startswith("sha256:")
        assert "riscv64gc-unknown-linux-gnu" in [u["target"] for u in data["units"]]

    def test_writes_output_file(self, declaration_file, tmp_path, capsys):
        """Test writing the plan to a file under a lock."""
        output = tmp_path / "out" / "plan.json"

        result = run_cli("--config", str(declaration_file), "-q", "plan", "--output", str(output))

        assert result == 0
        assert capsys.readouterr().out == ""
        assert json.loads(output.read_text())["units"]
        assert not [p for p in output.parent.iterdir() if p.name.endswith(".tmp")]

    def test_output_lock_held(self, declaration_file, tmp_path, capsys):
        """Test that a held output lock is reported with exit code 1."""
        output = tmp_path / "plan.json"

        with FileLock(lock_path_for(output)):
            result = run_cli(
                "--config", str(declaration_file), "plan", "-o", str(output), "--lock-timeout", "0.1"
            )

        assert result == 1
        assert "Error:" in capsys.readouterr().err
        assert not output.exists()

    def test_missing_declaration(self, tmp_path, capsys):
        """Test that a missing declaration exits with 1."""
        result = run_cli("--config", str(tmp_path / "missing.yaml"), "plan")

        assert result == 1
        assert "Declaration file not found" in capsys.readouterr().err

    def test_compile_error(self, rust_workspace, capsys):
        """Test that core errors are reported, not raised."""
        config = rust_workspace / "flakeplan.yaml"
        config.write_text("targets:\n  mips-unknown-linux-gnu: true\n")

        result = run_cli("--config", str(config), "plan")

        assert result == 1
        assert "mips-unknown-linux-gnu" in capsys.readouterr().err


class TestCheckCommand:
    """Test check command."""

    def test_valid(self, rust_workspace, capsys):
        """Test a declaration without issues."""
        config = rust_workspace / "flakeplan.yaml"
        config.write_text("exclude: [build]\n")

        assert run_cli("--config", str(config), "check") == 0
        assert "Declaration is valid" in capsys.readouterr().out

    def test_errors_exit_one(self, rust_workspace, capsys):
        """Test that validation errors give exit code 1."""
        config = rust_workspace / "flakeplan.yaml"
        targets = "\n".join(
            f"  {t.triple}: false" for t in DEFAULT_TARGETS if t.default_enabled
        )
        config.write_text(f"targets:\n{targets}\n")

        assert run_cli("--config", str(config), "check") == 1
        assert "Every target is disabled" in capsys.readouterr().out


class TestFingerprintCommand:
    """Test fingerprint command."""

    def test_prints_fingerprint(self, declaration_file, capsys):
        """Test printing the fingerprint only."""
        assert run_cli("--config", str(declaration_file), "fingerprint") == 0

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 1
        assert lines[0].startswith("sha256:")

    def test_list(self, declaration_file, capsys):
        """Test listing contributing files."""
        assert run_cli("--config", str(declaration_file), "fingerprint", "--list") == 0

        out = capsys.readouterr().out
        assert "x scripts/run.sh" in out or "- scripts/run.sh" in out
        assert "build/tmp.txt" not in out
        assert "flakeplan.yaml" not in out


class TestTargetsCommand:
    """Test targets command."""

    def test_enabled_only(self, declaration_file, capsys):
        """Test default listing shows enabled targets."""
        assert run_cli("--config", str(declaration_file), "targets") == 0

        out = capsys.readouterr().out
        assert "riscv64gc-unknown-linux-gnu" in out
        assert "wasm32-wasip2" not in out
        assert "x86_64-unknown-freebsd" not in out

    def test_all(self, declaration_file, capsys):
        """Test --all shows disabled targets and override sources."""
        assert run_cli("--config", str(declaration_file), "targets", "--all") == 0

        lines = {line.split()[0]: line for line in capsys.readouterr().out.splitlines()}
        assert "disabled" in lines["wasm32-wasip2"]
        assert "(override)" in lines["wasm32-wasip2"]
        assert "(default)" in lines["x86_64-unknown-freebsd"]


class TestShellCommand:
    """Test shell command."""

    def test_lists_tools_with_versions(self, declaration_file, capsys):
        """Test that base and declared tools are listed."""
        assert run_cli("--config", str(declaration_file), "shell") == 0

        out = capsys.readouterr().out.splitlines()
        assert "cargo-audit 0.20.1" in out
        assert out == sorted(out)

    def test_unknown_tool(self, rust_workspace, capsys):
        """Test that unresolved tools fail cleanly."""
        config = rust_workspace / "flakeplan.yaml"
        config.write_text("devShell:\n  packages: [cargo-make]\n")

        assert run_cli("--config", str(config), "shell") == 1
        assert "cargo-make" in capsys.readouterr().err
