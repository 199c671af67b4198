"""
Configuration file for pytest.
"""
import os
import sys
import pytest

# Add the parent directory to sys.path to allow importing the application modules
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, parent_dir)

from winsw_manager.utils.process import CommandResult, CommandRunner, redact


class FakeRunner(CommandRunner):
    """
    CommandRunner that records commands instead of spawning processes.

    Responses are registered per command prefix; the longest matching
    prefix wins. A response is either (returncode, stdout, stderr) or a
    callable taking the command and returning such a tuple. Unmatched
    commands succeed with no output.
    """
    def __init__(self):
        super().__init__()
        self.calls = []
        self.responses = {}

    def respond(self, prefix, returncode=0, stdout='', stderr='', handler=None):
        self.responses[tuple(prefix)] = handler or (returncode, stdout, stderr)

    def commands_starting_with(self, *prefix):
        return [call for call in self.calls if tuple(call[:len(prefix)]) == prefix]

    async def run(self, cmd, secrets=()):
        cmd = list(cmd)
        self.calls.append(cmd)
        response = (0, '', '')
        for length in range(len(cmd), 0, -1):
            if tuple(cmd[:length]) in self.responses:
                response = self.responses[tuple(cmd[:length])]
                break
        if callable(response):
            response = response(cmd)
        returncode, stdout, stderr = response
        return CommandResult(
            command=redact(cmd, secrets), returncode=returncode, stdout=stdout, stderr=stderr
        )


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def executable():
    """An executable that exists on every test host."""
    return sys.executable


@pytest.fixture
def config_dir(tmp_path):
    return str(tmp_path / 'services')


@pytest.fixture
def service_data(executable, config_dir):
    """Minimal valid service definition."""
    return {
        'id': 'worker1',
        'name': 'Worker',
        'executable': executable,
        'config_directory': config_dir,
    }
