import os
import json
import logging
import pytest
import requests
from unittest.mock import patch, MagicMock, AsyncMock

import main
from winsw_manager.errors import ConfigParseError, InvalidServiceError, MissingFieldError
from winsw_manager.models import ServiceState


@pytest.fixture
def definition_file(tmp_path, service_data):
    path = tmp_path / 'worker1.json'
    path.write_text(json.dumps(service_data))
    return str(path)


@pytest.fixture
def base_args(tmp_path):
    return ['--config-dir', str(tmp_path / 'prefs'), '--log-dir', str(tmp_path / 'logs'), '--no-admin-check']


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger('winsw_manager')
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def read_preferences(tmp_path):
    with open(tmp_path / 'prefs' / 'config.json') as f:
        return json.load(f)


class TestLoadServiceDefinition:

    def test_load(self, definition_file):
        """Test loading a service definition."""
        config = main.load_service_definition(definition_file, 'unused')
        assert config.id == 'worker1'

    def test_default_config_directory(self, tmp_path, service_data):
        """Test the preferred config directory is used when none is given."""
        del service_data['config_directory']
        path = tmp_path / 'def.json'
        path.write_text(json.dumps(service_data))

        config = main.load_service_definition(str(path), str(tmp_path / 'defaults'))

        assert config.config_directory == str(tmp_path / 'defaults')

    def test_invalid_json(self, tmp_path):
        """Test a broken definition file."""
        path = tmp_path / 'broken.json'
        path.write_text('{"id": ')

        with pytest.raises(ConfigParseError):
            main.load_service_definition(str(path), str(tmp_path))

    def test_invalid_definition(self, tmp_path, service_data):
        """Test a definition missing a required field."""
        del service_data['name']
        path = tmp_path / 'def.json'
        path.write_text(json.dumps(service_data))

        with pytest.raises(MissingFieldError):
            main.load_service_definition(str(path), str(tmp_path))


class TestDownloadWinsw:

    @patch('main.requests.get')
    def test_download(self, mock_get, tmp_path):
        """Test downloading the wrapper."""
        response = MagicMock()
        response.content = b'MZ fake executable'
        mock_get.return_value = response

        path = main.download_winsw('https://example.invalid/WinSW-x64.exe', str(tmp_path))

        assert path == os.path.join(str(tmp_path), 'winsw.exe')
        with open(path, 'rb') as f:
            assert f.read() == b'MZ fake executable'
        response.raise_for_status.assert_called_once()

    @patch('main.requests.get')
    def test_already_downloaded(self, mock_get, tmp_path):
        """Test an existing wrapper is not downloaded again."""
        (tmp_path / 'winsw.exe').write_bytes(b'MZ')

        main.download_winsw('https://example.invalid/WinSW-x64.exe', str(tmp_path))

        mock_get.assert_not_called()


class TestParseArguments:

    def test_service_file_required(self):
        """Test service commands need a definition file."""
        with pytest.raises(SystemExit):
            main.parse_arguments(['start'])

    def test_recent_without_service_file(self):
        """Test listing recent services needs no definition file."""
        args = main.parse_arguments(['recent'])
        assert args.command == 'recent'
        assert args.service_file is None


class TestMain:

    def test_render(self, definition_file, base_args, capsys):
        """Test printing the rendered document."""
        assert main.main(['render', definition_file] + base_args) == 0

        out = capsys.readouterr().out
        assert out.startswith('<service>')
        assert '<id>worker1</id>' in out

    def test_invalid_definition_fails(self, tmp_path, base_args):
        """Test a broken definition exits with an error."""
        path = tmp_path / 'broken.json'
        path.write_text('not json')

        assert main.main(['render', str(path)] + base_args) == 1

    def test_missing_definition_file_fails(self, tmp_path, base_args):
        """Test a missing definition file exits with an error."""
        assert main.main(['render', str(tmp_path / 'nope.json')] + base_args) == 1

    @patch('main.WinSWManager')
    def test_status(self, mock_manager_cls, definition_file, base_args, executable, capsys, tmp_path):
        """Test reporting service status."""
        manager = MagicMock()
        manager.status = AsyncMock(return_value=ServiceState.RUNNING)
        mock_manager_cls.return_value = manager

        assert main.main(['status', definition_file, '--winsw-path', executable] + base_args) == 0

        mock_manager_cls.assert_called_once_with(executable)
        manager.status.assert_awaited_once_with('worker1')
        assert 'worker1: running' in capsys.readouterr().out

    @patch('main.WinSWManager')
    def test_operation_records_recent_service(self, mock_manager_cls, definition_file, base_args,
                                              executable, tmp_path):
        """Test a successful operation is remembered."""
        manager = MagicMock()
        manager.start = AsyncMock(return_value=None)
        mock_manager_cls.return_value = manager

        assert main.main(['start', definition_file, '--winsw-path', executable] + base_args) == 0

        manager.start.assert_awaited_once()
        assert read_preferences(tmp_path)['recent_services'] == ['worker1']

    @patch('main.WinSWManager')
    def test_wrapper_path_is_remembered(self, mock_manager_cls, definition_file, base_args,
                                        executable, tmp_path):
        """Test the WinSW path used is stored and reused."""
        manager = MagicMock()
        manager.stop = AsyncMock(return_value=None)
        mock_manager_cls.return_value = manager

        assert main.main(['stop', definition_file, '--winsw-path', executable] + base_args) == 0
        assert read_preferences(tmp_path)['wrapper']['path'] == executable

        assert main.main(['stop', definition_file] + base_args) == 0
        assert mock_manager_cls.call_args_list[-1].args == (executable,)

    @patch('main.WinSWManager')
    def test_recent(self, mock_manager_cls, definition_file, base_args, executable, capsys):
        """Test listing recently used services."""
        manager = MagicMock()
        manager.start = AsyncMock(return_value=None)
        mock_manager_cls.return_value = manager
        assert main.main(['start', definition_file, '--winsw-path', executable] + base_args) == 0
        capsys.readouterr()

        assert main.main(['recent'] + base_args) == 0

        assert capsys.readouterr().out.splitlines() == ['worker1']

    @patch('main.WinSWManager')
    def test_grant(self, mock_manager_cls, definition_file, base_args, executable):
        """Test the grant command."""
        manager = MagicMock()
        manager.grant_control_access = AsyncMock(return_value=True)
        mock_manager_cls.return_value = manager

        assert main.main(['grant', definition_file, '--winsw-path', executable] + base_args) == 0
        manager.grant_control_access.assert_awaited_once()

    @patch('main.WinSWManager')
    def test_operation_error_fails(self, mock_manager_cls, definition_file, base_args, executable, tmp_path):
        """Test a failed operation exits with an error."""
        manager = MagicMock()
        manager.stop = AsyncMock(side_effect=InvalidServiceError('worker1'))
        mock_manager_cls.return_value = manager

        assert main.main(['stop', definition_file, '--winsw-path', executable] + base_args) == 1
        assert read_preferences(tmp_path)['recent_services'] == []

    def test_missing_winsw_fails(self, definition_file, base_args, tmp_path):
        """Test a missing wrapper executable exits with an error."""
        winsw = str(tmp_path / 'missing-winsw.exe')
        assert main.main(['start', definition_file, '--winsw-path', winsw] + base_args) == 1

    @patch('main.requests.get', side_effect=requests.ConnectionError('offline'))
    def test_download_failure(self, mock_get, definition_file, base_args):
        """Test a failed download exits with an error."""
        assert main.main(['start', definition_file] + base_args) == 1
