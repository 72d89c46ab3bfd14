import json

import pytest

import cli
from fakes import FakeDeployment, FakeSourceControl, FakeTracker, linear_commits
from models import ChangeRequest, EnvironmentReference, ExplicitRange
from transport.retry import reset_retry

SERVICE_ARGS = ['--bitbucket-url', 'https://bb.example.com', '--jira-url', 'https://jira.example.com']


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('BITBUCKET_URL', 'JIRA_URL', 'SPINNAKER_URL', 'BITBUCKET_TOKEN', 'JIRA_TOKEN', 'SPINNAKER_TOKEN'):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_retry()


def install_fakes(monkeypatch, source, tracker=None, deployment=None):
    seen = {}

    def build_gateways(services):
        seen['services'] = services
        return source, tracker or FakeTracker(), deployment

    monkeypatch.setattr(cli, 'build_gateways', build_gateways)
    return seen


def sample_source(**kwargs):
    crs = [ChangeRequest(5, 'Fix crash', 'MERGED', frozenset({'c1'}), repository_id='PROJ/app')]
    return FakeSourceControl(linear_commits('s0', 2), crs, **kwargs)


def test_range_text_output(monkeypatch, capsys):
    seen = install_fakes(monkeypatch, sample_source())
    code = cli.main(SERVICE_ARGS + ['range', 'PROJ/app', 's0', 'c2'])
    out = capsys.readouterr().out
    assert code == 0
    assert out.startswith('Changelog for PROJ/app: s0..c2\n2 commits, 1 change request, 0 issues\n')
    assert '#5 Fix crash [MERGED]' in out
    assert seen['services']['bitbucket'].base_url == 'https://bb.example.com'
    assert seen['services']['spinnaker'] is None


def test_json_to_file(monkeypatch, tmp_path):
    install_fakes(monkeypatch, sample_source())
    out_file = tmp_path / 'nested' / 'changelog.json'
    code = cli.main(SERVICE_ARGS + ['--output', 'json', '--out-file', str(out_file), 'range', 'PROJ/app', 's0', 'c2'])
    assert code == 0
    data = json.loads(out_file.read_text(encoding='utf-8'))
    assert [c['revisionId'] for c in data['commits']] == ['c2', 'c1']


def test_environment_command(monkeypatch, capsys):
    install_fakes(monkeypatch, sample_source(), deployment=FakeDeployment(['s0', 'c2'], ['PROJ/app']))
    code = cli.main(SERVICE_ARGS + ['--spinnaker-url', 'https://spin.example.com', 'environment', 'app', 'prod'])
    assert code == 0
    assert 'Changelog for PROJ/app: s0..c2' in capsys.readouterr().out


def test_partial_failure_exit_code(monkeypatch, capsys):
    install_fakes(monkeypatch, sample_source(fail_for=['c2']))
    code = cli.main(SERVICE_ARGS + ['--batch-size', '1', 'range', 'PROJ/app', 's0', 'c2'])
    captured = capsys.readouterr()
    assert code == cli.EXIT_PARTIAL
    assert '#5 Fix crash [MERGED]' in captured.out
    assert 'change_requests [c2]' in captured.err


def test_missing_revision_fails(monkeypatch, capsys):
    install_fakes(monkeypatch, sample_source(known={'s0'}))
    code = cli.main(SERVICE_ARGS + ['range', 'PROJ/app', 's0', 'c2'])
    assert code == cli.EXIT_FAILED
    assert 'Revision c2 was not found' in capsys.readouterr().err


def test_missing_service_url_is_usage_error(monkeypatch):
    install_fakes(monkeypatch, sample_source())
    with pytest.raises(SystemExit) as excinfo:
        cli.main(['--jira-url', 'https://jira.example.com', 'range', 'PROJ/app', 's0', 'c2'])
    assert excinfo.value.code == 2


def test_environment_requires_spinnaker(monkeypatch):
    install_fakes(monkeypatch, sample_source())
    with pytest.raises(SystemExit):
        cli.main(SERVICE_ARGS + ['environment', 'app', 'prod'])


def test_service_urls_from_env(monkeypatch, capsys):
    monkeypatch.setenv('BITBUCKET_URL', 'https://bb.env')
    monkeypatch.setenv('JIRA_URL', 'https://jira.env')
    seen = install_fakes(monkeypatch, sample_source())
    assert cli.main(['range', 'PROJ/app', 's0', 'c2']) == 0
    assert seen['services']['jira'].base_url == 'https://jira.env'


@pytest.mark.parametrize('flag,value', [('--max-in-flight', '0'), ('--batch-size', '-1'), ('--batch-size', 'many')])
def test_tuning_flags_must_be_positive(monkeypatch, flag, value):
    install_fakes(monkeypatch, sample_source())
    with pytest.raises(SystemExit) as excinfo:
        cli.main(SERVICE_ARGS + [flag, value, 'range', 'PROJ/app', 's0', 'c2'])
    assert excinfo.value.code == 2


def test_specifier_from_args():
    parser = cli.build_parser()
    assert cli.specifier_from_args(parser.parse_args(['range', 'PROJ/app', 'a', 'b'])) == ExplicitRange('PROJ/app', 'a', 'b')
    assert cli.specifier_from_args(parser.parse_args(['environment', 'app', 'prod'])) == EnvironmentReference('app', 'prod')
