"""Unit tests for the local filesystem storage adapter"""

import pytest

from domain.errors import StorageError
from infrastructure.storage.local_storage_adapter import LOCAL_DOWNLOAD_PATH


class TestPutAndGet:
    @pytest.mark.asyncio
    async def test_round_trip_preserves_bytes_and_metadata(self, local_adapter):
        data = b"%PDF-1.4 license"
        stored = await local_adapter.put_object(
            "employees/1/licenses/a.pdf", data, "application/pdf", {"subject_id": "1"}
        )

        assert stored.size_bytes == len(data)
        assert stored.etag.startswith('"')

        obj = await local_adapter.get_object("employees/1/licenses/a.pdf")
        assert obj.data == data
        assert obj.content_type == "application/pdf"
        assert obj.metadata == {"subject_id": "1"}

    @pytest.mark.asyncio
    async def test_missing_object_raises_file_not_found(self, local_adapter):
        with pytest.raises(FileNotFoundError):
            await local_adapter.get_object("documents/missing.pdf")

    @pytest.mark.asyncio
    async def test_traversal_key_rejected_on_write(self, local_adapter):
        with pytest.raises(StorageError):
            await local_adapter.put_object("../../escape.txt", b"x", "text/plain")

    @pytest.mark.asyncio
    async def test_traversal_key_never_read(self, local_adapter):
        with pytest.raises(FileNotFoundError):
            await local_adapter.get_object("../conftest.py")

    @pytest.mark.asyncio
    async def test_metadata_directory_not_addressable(self, local_adapter):
        await local_adapter.put_object("documents/a.txt", b"x", "text/plain")
        with pytest.raises(FileNotFoundError):
            await local_adapter.get_object(".meta/documents/a.txt.json")


class TestDeleteAndList:
    @pytest.mark.asyncio
    async def test_delete_twice(self, local_adapter):
        await local_adapter.put_object("documents/a.txt", b"x", "text/plain")

        assert await local_adapter.delete_object("documents/a.txt") is True
        assert await local_adapter.delete_object("documents/a.txt") is False
        assert await local_adapter.object_exists("documents/a.txt") is False

    @pytest.mark.asyncio
    async def test_list_filters_by_prefix_and_hides_sidecars(self, local_adapter):
        await local_adapter.put_object("employees/1/a.txt", b"a", "text/plain")
        await local_adapter.put_object("employees/1/b.txt", b"bb", "text/plain")
        await local_adapter.put_object("employees/2/c.txt", b"c", "text/plain")

        listing = await local_adapter.list_objects("employees/1/")

        assert [f.key for f in listing] == ["employees/1/a.txt", "employees/1/b.txt"]
        assert listing[1].size == 2
        assert all(".meta" not in f.key for f in await local_adapter.list_objects(""))

    @pytest.mark.asyncio
    async def test_list_on_missing_root_is_empty(self, tmp_path):
        from infrastructure.storage.local_storage_adapter import LocalStorageAdapter

        adapter = LocalStorageAdapter(tmp_path / "never-created")
        assert await adapter.list_objects("") == []


class TestSignedUrlAndAccess:
    @pytest.mark.asyncio
    async def test_signed_url_is_internal_path(self, local_adapter):
        key = "employees/1/licenses/a.pdf"
        await local_adapter.put_object(key, b"x", "application/pdf")

        url = await local_adapter.generate_signed_url(key, 3600)

        assert url == f"{LOCAL_DOWNLOAD_PATH}/{key}"
        assert "Expires" not in url

    @pytest.mark.asyncio
    async def test_signed_url_for_missing_key(self, local_adapter):
        with pytest.raises(FileNotFoundError):
            await local_adapter.generate_signed_url("documents/none.pdf")

    @pytest.mark.asyncio
    async def test_check_access_creates_root(self, local_adapter, local_root):
        result = await local_adapter.check_access()
        assert result.has_access is True
        assert local_root.is_dir()
