"""Integration tests for CLI functionality."""

import pytest
import tempfile
import shutil
import yaml
from pathlib import Path
from click.testing import CliRunner

from code_reveal.cli.main import cli


class TestCLIInitialization:
    """Test CLI initialization and basic functionality."""

    def setup_method(self):
        """Set up test environment."""
        self.runner = CliRunner()
        self.temp_dir = Path(tempfile.mkdtemp())

    def teardown_method(self):
        """Clean up test environment."""
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_cli_help(self):
        result = self.runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert 'Code Reveal' in result.output
        for command in ('init', 'config', 'validate', 'demo'):
            assert command in result.output

    def test_init_creates_config(self):
        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir), 'init'])

        assert result.exit_code == 0
        assert (self.temp_dir / '.code-reveal' / 'config.yml').exists()

    def test_init_refuses_overwrite(self):
        self.runner.invoke(cli, ['--project-root', str(self.temp_dir), 'init'])

        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir), 'init'])

        assert result.exit_code == 0
        assert 'already exists' in result.output

    def test_config_shows_sections(self):
        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir), 'config'])

        assert result.exit_code == 0
        assert 'Reveal:' in result.output
        assert 'chars_per_tick: 5' in result.output
        assert 'max_history: 50' in result.output

    def test_validate_default_config(self):
        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir), 'validate'])

        assert result.exit_code == 0
        assert 'Configuration is valid' in result.output

    def test_validate_rejects_bad_config(self):
        config_path = self.temp_dir / 'bad.yml'
        config_path.write_text(yaml.dump({'reveal': {'chars_per_tick': 0}}))

        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir),
                                          '--config', str(config_path), 'validate'])

        assert result.exit_code == 1
        assert 'chars_per_tick' in result.output

    def test_invalid_config_path(self):
        result = self.runner.invoke(cli, ['--config', '/nonexistent/config.yml', 'validate'])

        assert result.exit_code != 0


class TestDemoCommand:
    """Test the demo command on the virtual clock."""

    def setup_method(self):
        self.runner = CliRunner()
        self.temp_dir = Path(tempfile.mkdtemp())

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_instant_demo_completes(self):
        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir),
                                          'demo', '--instant', '--no-color'])

        assert result.exit_code == 0, result.output
        assert 'completed' in result.output

    def test_demo_with_diff(self):
        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir),
                                          'demo', '--instant', '--show-diff', '--no-color',
                                          '--format', 'unified'])

        assert result.exit_code == 0, result.output
        assert 'Diff for src/services/authService.ts (revision 0 -> 1)' in result.output
        assert '+export async function logout(token: string): Promise<void> {' in result.output

    def test_demo_side_by_side(self):
        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir),
                                          'demo', '--instant', '--show-diff', '--no-color',
                                          '-F', 'side-by-side'])

        assert result.exit_code == 0, result.output
        assert ' | ' in result.output

    def test_demo_rejects_bad_pacing(self):
        result = self.runner.invoke(cli, ['--project-root', str(self.temp_dir),
                                          'demo', '--instant', '--chars-per-tick', '0'])

        assert result.exit_code == 1
        assert 'chars_per_tick' in result.output
