"""Tests for the download-ledger command-line interface."""
import contextlib
import io
from unittest.mock import patch

from DownloadLedger import cli
from DownloadLedger.core import auth
from DownloadLedger.settings import lib
from tests.base import BaseTestCase, FakeObserver, FakeSheetsService, make_creds


class CliTest(BaseTestCase):

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = cli.main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def seed_creds(self):
        paths = lib.ConfigPaths()
        paths.creds_path.parent.mkdir(parents=True, exist_ok=True)
        paths.creds_path.write_text(make_creds().to_json(), encoding='utf-8')
        return paths.creds_path

    def test_init_writes_template(self):
        code, out, _ = self.run_cli('init')
        self.assertEqual(code, 0)
        self.assertTrue(self.ledger_path.exists())
        self.assertIn(str(self.ledger_path), out)

        code, _, err = self.run_cli('init')
        self.assertEqual(code, 1)
        self.assertIn('--force', err)

        self.assertEqual(self.run_cli('init', '--force')[0], 0)

    def test_init_without_template_fails_cleanly(self):
        missing = FileNotFoundError(f'Ledger template not found: {self.tmp_dir / "missing.template"}')
        with patch.object(lib.ConfigPaths, 'write_ledger_template', side_effect=missing):
            code, _, err = self.run_cli('init')
        self.assertEqual(code, 1)
        self.assertIn('Error: Ledger template not found', err)
        self.assertFalse(self.ledger_path.exists())

    def test_init_with_explicit_config(self):
        target = self.tmp_dir / 'custom' / 'ledger.json'
        code, _, _ = self.run_cli('--config', str(target), 'init')
        self.assertEqual(code, 0)
        self.assertTrue(target.exists())

    def test_missing_config_is_fatal(self):
        code, _, err = self.run_cli('run')
        self.assertEqual(code, 1)
        self.assertIn('ledger config', err)

    def test_unwatchable_directory_is_fatal(self):
        self.write_ledger()
        code, _, err = self.run_cli('run', '--directory', str(self.tmp_dir / 'missing'))
        self.assertEqual(code, 1)
        self.assertIn('watched', err)

    def test_run_stops_on_interrupt(self):
        self.write_ledger()
        watch_dir = self.tmp_dir / 'Downloads'
        watch_dir.mkdir()

        with patch('DownloadLedger.core.sync.Synchronizer.run', side_effect=KeyboardInterrupt) as mock_run:
            code, _, _ = self.run_cli('run', '--directory', str(watch_dir))
        self.assertEqual(code, 0)
        mock_run.assert_called_once_with(str(watch_dir))

    def test_run_uses_watch_config(self):
        self.write_ledger()
        observer = FakeObserver(start_error=OSError('no inotify'))
        with patch('DownloadLedger.core.sync.Observer', return_value=observer):
            code, _, err = self.run_cli('run', '--directory', str(self.tmp_dir))
        self.assertEqual(code, 1)
        self.assertIn('no inotify', err)
        self.assertEqual(observer.path, str(self.tmp_dir))

    def test_show_prints_rows(self):
        self.write_ledger()
        self.seed_creds()
        service = FakeSheetsService([['a.torrent'], ['b.torrent']])

        with patch.object(cli, 'get_service', return_value=service) as mock_get_service:
            code, out, _ = self.run_cli('show')

        self.assertEqual(code, 0)
        self.assertIn('a.torrent', out)
        self.assertIn('2 rows.', out)
        self.assertEqual(mock_get_service.call_args.kwargs['timeout'], 60.0)

    def test_show_empty_ledger(self):
        self.write_ledger()
        self.seed_creds()
        with patch.object(cli, 'get_service', return_value=FakeSheetsService()):
            code, out, _ = self.run_cli('show')
        self.assertEqual(code, 0)
        self.assertIn('No data found.', out)

    def test_auth_without_client_secret_fails(self):
        self.write_ledger()
        code, _, err = self.run_cli('auth')
        self.assertEqual(code, 1)
        self.assertIn('Error:', err)

    def test_auth_with_cached_creds(self):
        self.write_ledger()
        creds_path = self.seed_creds()
        with patch.object(auth.InstalledAppFlowProvider, 'authorize') as mock_authorize:
            code, out, _ = self.run_cli('auth')
        self.assertEqual(code, 0)
        mock_authorize.assert_not_called()
        self.assertIn(str(creds_path), out)

    def test_sign_out(self):
        creds_path = self.seed_creds()
        code, out, _ = self.run_cli('sign-out')
        self.assertEqual(code, 0)
        self.assertFalse(creds_path.exists())
        self.assertIn('Deleted', out)

        code, out, _ = self.run_cli('sign-out')
        self.assertEqual(code, 0)
        self.assertIn('Not signed in.', out)
