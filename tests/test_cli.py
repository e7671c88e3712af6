"""
Tests for the command line tool in direct mode.
"""

import openpyxl
import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from backend.models.schema import Leader, User
from scripts import gemini_cli


@pytest.fixture
def database_url(monkeypatch, tmp_path):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(gemini_cli, 'DATABASE_URL', url)
    monkeypatch.setattr(gemini_cli, 'BCRYPT_ROUNDS', 4)
    return url


def query_all(url, model):
    engine = create_engine(url)
    try:
        with sessionmaker(bind=engine)() as session:
            return session.query(model).all()
    finally:
        engine.dispose()


class TestCLI:

    def test_template(self, tmp_path):
        result = CliRunner().invoke(gemini_cli.cli, ['template', '--entity', 'voters', '--output', str(tmp_path)])

        assert result.exit_code == 0
        path = tmp_path / 'Plantilla_Planillados_GEMINI.xlsx'
        assert path.exists()
        assert openpyxl.load_workbook(path).sheetnames == ['Planillados', 'Instrucciones']

    def test_direct_import(self, database_url, tmp_path, xlsx_file):
        path = tmp_path / 'lideres.xlsx'
        path.write_bytes(xlsx_file(['Cédula', 'Nombres', 'Apellidos'], [['11223344', 'Carlos', 'Martinez']]))

        result = CliRunner().invoke(gemini_cli.cli, ['import', '--file', str(path), '--entity', 'leaders'])

        assert result.exit_code == 0, result.output
        assert 'Import finished' in result.output
        assert 'Imported: 1 (1 new, 0 updated)' in result.output
        assert [leader.cedula for leader in query_all(database_url, Leader)] == ['11223344']

    def test_direct_import_missing_columns(self, database_url, tmp_path, xlsx_file):
        path = tmp_path / 'lideres.xlsx'
        path.write_bytes(xlsx_file(['Cédula'], [['11223344']]))

        result = CliRunner().invoke(gemini_cli.cli, ['import', '--file', str(path), '--entity', 'leaders'])

        assert result.exit_code == 1
        assert 'Required fields are not mapped' in result.output

    def test_create_user(self, database_url):
        result = CliRunner().invoke(gemini_cli.cli, [
            'create-user', '--email', 'Admin@Campana.co', '--full-name', 'Admin', '--password', 'secreto123'
        ])

        assert result.exit_code == 0, result.output
        assert [user.email for user in query_all(database_url, User)] == ['admin@campana.co']

    def test_create_user_short_password(self, database_url):
        result = CliRunner().invoke(gemini_cli.cli, [
            'create-user', '--email', 'admin@campana.co', '--password', '123'
        ])
        assert result.exit_code == 1

    def test_create_user_password_over_bcrypt_limit(self, database_url):
        result = CliRunner().invoke(gemini_cli.cli, [
            'create-user', '--email', 'admin@campana.co', '--password', 'x' * 73
        ])
        assert result.exit_code == 1
        assert 'at most 72 bytes' in result.output
        assert query_all(database_url, User) == []
