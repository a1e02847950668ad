from types import SimpleNamespace

import pytest

from app.core.exceptions import StorageError
from app.services.storage import ObjectStorage


@pytest.fixture
def object_storage() -> ObjectStorage:
    return ObjectStorage(
        endpoint="localhost:9000",
        access_key="testaccesskey",
        secret_key="testsecretaccesskey",
        bucket="deliverables",
        region="us-east-1",
        secure=False,
    )

def test_presigned_put_url(object_storage: ObjectStorage):
    url = object_storage.presigned_put_url("uploads/1/2/1700000000000-brief.pdf", 900)

    assert url.startswith("http://localhost:9000/deliverables/uploads/1/2/1700000000000-brief.pdf?")
    assert "X-Amz-Expires=900" in url
    assert "X-Amz-Signature=" in url

def test_presigned_get_url(object_storage: ObjectStorage):
    url = object_storage.presigned_get_url("uploads/1/2/1700000000000-brief.pdf", 300)

    assert "/deliverables/uploads/1/2/1700000000000-brief.pdf" in url
    assert "X-Amz-Expires=300" in url

def test_presign_expiry_out_of_range(object_storage: ObjectStorage):
    with pytest.raises(StorageError):
        object_storage.presigned_put_url("uploads/1/2/a.pdf", 8 * 24 * 3600)

def test_unconfigured_storage():
    storage = ObjectStorage(endpoint="localhost:9000", access_key="", secret_key="")

    assert storage.configured is False
    with pytest.raises(StorageError) as exc:
        storage.presigned_put_url("uploads/1/2/a.pdf", 900)
    assert exc.value.status_code == 500

def test_delete_objects_reports_failures(object_storage: ObjectStorage):
    calls = []

    def remove_objects(bucket_name, delete_object_list):
        calls.append((bucket_name, len(delete_object_list)))
        return iter([SimpleNamespace(name="uploads/1/2/b.pdf", message="Access Denied")])

    object_storage._client = SimpleNamespace(remove_objects=remove_objects)

    deleted, failed = object_storage.delete_objects(["uploads/1/2/a.pdf", "uploads/1/2/b.pdf", "uploads/1/2/a.pdf"])

    assert calls == [("deliverables", 2)]
    assert deleted == ["uploads/1/2/a.pdf"]
    assert failed == ["uploads/1/2/b.pdf"]

def test_delete_nothing(object_storage: ObjectStorage):
    object_storage._client = SimpleNamespace(remove_objects=None)

    assert object_storage.delete_objects([]) == ([], [])
