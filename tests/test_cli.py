import json
import logging

import pytest

import keycloak_to_terragrunt as cli


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigure le logger racine"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def export_file(tmp_path, identity_export):
    path = tmp_path / 'demo.json'
    path.write_text(json.dumps(identity_export), encoding='utf-8')
    return path


class TestConvertCommand:
    def test_writes_tree(self, tmp_path, export_file, capsys):
        output_dir = tmp_path / 'out'
        assert cli.main(['convert', str(export_file), '--output-dir', str(output_dir)]) == 0
        assert (output_dir / 'keycloak/realms/demo/users/main.tf').is_file()
        assert (output_dir / 'keycloak/main.tf').is_file()
        assert '17 fichiers générés' in capsys.readouterr().out

    def test_json_output(self, export_file, capsys):
        assert cli.main(['convert', str(export_file), '--json', '--namespace', 'infra']) == 0
        files = json.loads(capsys.readouterr().out)
        assert files[0] == {'filePath': 'infra/realms/demo/main.tf', 'content': files[0]['content']}
        assert files[-1]['filePath'] == 'infra/variables.tf'

    def test_export_without_realm_writes_diagnostic(self, tmp_path):
        path = tmp_path / 'broken.json'
        path.write_text('{"enabled": true}', encoding='utf-8')
        output_dir = tmp_path / 'out'
        assert cli.main(['convert', str(path), '--output-dir', str(output_dir)]) == 0
        content = (output_dir / 'keycloak/realms/broken/main.tf').read_text(encoding='utf-8')
        assert 'missing "realm" property' in content

    def test_invalid_json(self, tmp_path):
        path = tmp_path / 'invalid.json'
        path.write_text('{"realm": ', encoding='utf-8')
        with pytest.raises(SystemExit) as error:
            cli.main(['convert', str(path)])
        assert error.value.code == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(SystemExit) as error:
            cli.main(['convert', str(tmp_path / 'absent.json')])
        assert error.value.code == 1


class FakeExporter:
    document = {'realm': 'demo', 'clients': [{'clientId': 'portal', 'secret': 's3cr3t'}]}

    def __init__(self, url, username, password, realm, **kwargs):
        self.options = kwargs

    def export_realm(self, include_users=False):
        return dict(self.document)


class TestExportCommand:
    def test_missing_parameters(self, monkeypatch):
        for name in ('KEYCLOAK_URL', 'KEYCLOAK_REALM', 'KEYCLOAK_USERNAME', 'KEYCLOAK_PASSWORD'):
            monkeypatch.delenv(name, raising=False)
        assert cli.main(['export', '--url', 'https://sso.example.com']) == 1

    def test_export_and_convert(self, tmp_path, monkeypatch):
        monkeypatch.setattr(cli, 'KeycloakExporter', FakeExporter)
        output_dir = tmp_path / 'out'
        secrets_file = tmp_path / 'secrets.auto.tfvars.json'
        raw_file = tmp_path / 'raw.json'
        code = cli.main(['export', '--url', 'https://sso.example.com', '--realm', 'demo',
                         '--username', 'admin', '--password', 'secret',
                         '--output-dir', str(output_dir), '--secrets-file', str(secrets_file),
                         '--save-export', str(raw_file)])
        assert code == 0
        assert (output_dir / 'keycloak/realms/demo/clients/main.tf').is_file()
        assert json.loads(secrets_file.read_text(encoding='utf-8')) == {'client_secrets': {'portal': 's3cr3t'}}
        assert json.loads(raw_file.read_text(encoding='utf-8'))['realm'] == 'demo'

    def test_export_error(self, monkeypatch):
        class FailingExporter(FakeExporter):
            def export_realm(self, include_users=False):
                raise cli.ExportError("Erreur d'authentification: 401", 401)

        monkeypatch.setattr(cli, 'KeycloakExporter', FailingExporter)
        assert cli.main(['export', '--url', 'https://sso.example.com', '--realm', 'demo',
                         '--username', 'admin', '--password', 'wrong']) == 1

    @pytest.mark.parametrize('option', ['--save-export', '--secrets-file'])
    def test_unwritable_side_file(self, tmp_path, monkeypatch, option):
        monkeypatch.setattr(cli, 'KeycloakExporter', FakeExporter)
        output_dir = tmp_path / 'out'
        code = cli.main(['export', '--url', 'https://sso.example.com', '--realm', 'demo',
                         '--username', 'admin', '--password', 'secret', '--output-dir', str(output_dir),
                         option, str(tmp_path / 'missing' / 'file.json')])
        assert code == 1
        assert not output_dir.exists()
