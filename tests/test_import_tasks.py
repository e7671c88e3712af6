"""
Tests for the queued import task.

The task opens its own sessions, so it runs eagerly against a file-backed
SQLite database instead of the shared test connection.
"""

import json
import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import tasks.import_tasks as import_tasks
from backend.models.job import JobProgress, JobRun
from backend.models.schema import Base, Planillado
from services.excel_service import TEMPLATES


class FakeRedis:

    def __init__(self):
        self.values = {}
        self.published = []

    def setex(self, key, ttl, value):
        self.values[key] = value

    def publish(self, channel, data):
        self.published.append((channel, data))

    def lpush(self, key, value):
        pass

    def ltrim(self, key, start, end):
        pass


@pytest.fixture
def worker(monkeypatch, tmp_path):
    """Point the task module at a scratch database, Redis double and upload dir."""
    engine = create_engine(f"sqlite:///{tmp_path / 'worker.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine)
    fake_redis = FakeRedis()

    monkeypatch.setattr(import_tasks, 'SessionLocal', factory)
    monkeypatch.setattr(import_tasks, 'redis_client', fake_redis)
    monkeypatch.setattr(import_tasks, 'TEMP_UPLOAD_DIR', str(tmp_path))

    with factory() as session:
        session.add(JobRun(job_id='job-1', entity_type='planillados', status='pending', params={}))
        session.commit()

    yield factory, fake_redis
    engine.dispose()


def write_upload(tmp_path, name, content):
    path = tmp_path / name
    path.write_bytes(content)
    return str(path)


class TestImportSpreadsheetTask:

    def test_success(self, worker, tmp_path, xlsx_file):
        factory, fake_redis = worker
        config = TEMPLATES['planillados']
        path = write_upload(tmp_path, 'planillados.xlsx', xlsx_file(config['headers'], config['sample_rows']))

        outcome = import_tasks.import_spreadsheet.apply(args=[path, 'planillados', None], task_id='job-1')

        assert outcome.successful()
        assert outcome.result['created_count'] == 2
        assert not os.path.exists(path)

        with factory() as session:
            job = session.get(JobRun, 'job-1')
            assert job.status == 'success'
            assert job.started_at is not None
            assert job.result['created_count'] == 2
            assert session.query(Planillado).count() == 2
            stages = [p.stage for p in session.query(JobProgress).filter_by(job_id='job-1')]
            assert stages[0] == 'reading'

        progress = json.loads(fake_redis.values['job_progress:job-1'])
        assert progress['percent'] == 100

    def test_failure(self, worker, tmp_path):
        factory, fake_redis = worker
        path = write_upload(tmp_path, 'roto.xlsx', b'not a spreadsheet')

        outcome = import_tasks.import_spreadsheet.apply(args=[path, 'planillados', None], task_id='job-1')

        assert outcome.failed()
        assert not os.path.exists(path)
        with factory() as session:
            job = session.get(JobRun, 'job-1')
            assert job.status == 'failed'
            assert job.error['entity_type'] == 'planillados'

        assert json.loads(fake_redis.values['job_progress:job-1'])['stage'] == 'failed'

    def test_files_outside_upload_dir_are_kept(self, worker, tmp_path, monkeypatch, xlsx_file):
        monkeypatch.setattr(import_tasks, 'TEMP_UPLOAD_DIR', str(tmp_path / 'uploads'))
        path = write_upload(tmp_path, 'planillados.xlsx', xlsx_file(['cédula', 'nombres', 'apellidos'],
                                                                    [['12345678', 'Juan', 'Perez']]))

        import_tasks.import_spreadsheet.apply(args=[path, 'planillados', None], task_id='job-1')

        assert os.path.exists(path)
