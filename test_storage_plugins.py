"""Tests for storage plugins."""

import pytest
from botocore.exceptions import ClientError

from pdfbot.errors import ConfigurationError, StorageError
from pdfbot.models import Job
from pdfbot.storage_plugins import (
    LocalStorage,
    S3Storage,
    S3StorageConfig,
    create_storage_plugin,
)

JOB = Job(id="job1", url="https://example.com")

S3_OPTIONS = {
    "access_key_id": "key",
    "secret_access_key": "secret",
    "region": "eu-west-1",
    "bucket": "pdfs",
}


class FakeS3Client:
    def __init__(self, error=None):
        self.error = error
        self.uploads = []

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.error:
            raise self.error
        self.uploads.append((filename, bucket, key, ExtraArgs))


@pytest.fixture()
def artifact(tmp_path):
    path = tmp_path / "abc123.pdf"
    path.write_bytes(b"%PDF-1.4")
    return str(path)


class TestLocalStorage:
    def test_moves_file(self, tmp_path, artifact):
        plugin = LocalStorage(tmp_path / "pdf")

        location = plugin.upload(artifact, JOB)

        assert location == {"path": str(tmp_path / "pdf" / "job1.pdf")}
        assert (tmp_path / "pdf" / "job1.pdf").read_bytes() == b"%PDF-1.4"

    def test_missing_artifact(self, tmp_path):
        with pytest.raises(StorageError):
            LocalStorage(tmp_path / "pdf").upload(str(tmp_path / "missing.pdf"), JOB)


class TestS3Storage:
    @pytest.mark.parametrize("missing, message", [
        ("access_key_id", "No access key given"),
        ("secret_access_key", "No secret access key given"),
        ("region", "No region specified"),
        ("bucket", "No bucket was specified"),
    ])
    def test_missing_settings_fail_at_construction(self, missing, message):
        options = dict(S3_OPTIONS, **{missing: ""})
        with pytest.raises(ConfigurationError, match=message):
            S3Storage(client=FakeS3Client(), **options)

    def test_uploads_with_static_prefix(self, artifact):
        client = FakeS3Client()
        plugin = S3Storage(path="reports", client=client, **S3_OPTIONS)

        location = plugin.upload(artifact, JOB)

        assert location == {"bucket": "pdfs", "region": "eu-west-1", "key": "reports/abc123.pdf"}
        assert client.uploads == [
            (artifact, "pdfs", "reports/abc123.pdf", {"ContentType": "application/pdf"})
        ]

    def test_prefix_from_callable(self, artifact):
        plugin = S3Storage(path=lambda local, job: f"jobs/{job.id}", client=FakeS3Client(),
                           **S3_OPTIONS)
        assert plugin.upload(artifact, JOB)["key"] == "jobs/job1/abc123.pdf"

    def test_no_prefix(self, artifact):
        plugin = S3Storage(client=FakeS3Client(), **S3_OPTIONS)
        assert plugin.upload(artifact, JOB)["key"] == "abc123.pdf"

    def test_upload_error(self, artifact):
        error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        plugin = S3Storage(client=FakeS3Client(error=error), **S3_OPTIONS)

        with pytest.raises(StorageError, match="s3://pdfs/abc123.pdf"):
            plugin.upload(artifact, JOB)


class TestFactory:
    def test_defaults_to_local(self, tmp_path):
        plugin = create_storage_plugin(None, tmp_path)
        assert isinstance(plugin, LocalStorage)
        assert plugin.directory == tmp_path / "pdf"

    def test_from_dict(self, tmp_path):
        plugin = create_storage_plugin(dict(S3_OPTIONS, type="s3"), tmp_path, client=FakeS3Client())
        assert isinstance(plugin, S3Storage)

    def test_from_model(self, tmp_path):
        config = S3StorageConfig(**S3_OPTIONS)
        assert isinstance(create_storage_plugin(config, tmp_path, client=FakeS3Client()), S3Storage)

    def test_incomplete_s3_config(self, tmp_path):
        with pytest.raises(ConfigurationError):
            create_storage_plugin({"type": "s3", "bucket": "pdfs"}, tmp_path)

    def test_unknown_plugin(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unknown storage plugin"):
            create_storage_plugin({"type": "ftp"}, tmp_path)
