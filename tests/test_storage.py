"""Tests for image storage and conversation history."""
import base64
import json
from unittest.mock import MagicMock

import pytest

from mcp_chat.storage.history import RedisHistoryStore
from mcp_chat.storage.image_storage import (
    ImageStorage,
    ImageUploadError,
    decode_base64_image,
    extension_for,
    parse_data_url,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PNG_B64 = base64.b64encode(PNG_BYTES).decode()


@pytest.fixture
def minio_client():
    client = MagicMock()
    client.bucket_exists.return_value = True
    return client


@pytest.fixture
def storage(minio_client):
    return ImageStorage(minio_client, "image-store", "http://cdn.local/")


class TestHelpers:

    def test_parse_data_url(self):
        assert parse_data_url(f"data:image/png;base64,{PNG_B64}") == ("image/png", PNG_B64)
        assert parse_data_url("http://example.com/a.png") is None

    def test_decode_accepts_prefix(self):
        assert decode_base64_image(f"data:image/png;base64,{PNG_B64}") == PNG_BYTES
        assert decode_base64_image(PNG_B64) == PNG_BYTES

    def test_decode_rejects_garbage(self):
        with pytest.raises(ImageUploadError):
            decode_base64_image("not base64!!")

    @pytest.mark.parametrize("mime_type, ext", [
        ("image/png", "png"),
        ("image/jpeg", "jpeg"),
        ("image/svg+xml", "svg"),
        ("application", "png"),
    ])
    def test_extension_for(self, mime_type, ext):
        assert extension_for(mime_type) == ext


class TestImageStorage:

    @pytest.mark.asyncio
    async def test_upload_path_and_url(self, storage, minio_client):
        result = await storage.upload(PNG_B64, "image/png", "s1", "m1", filename="tool_shot_0_1.png")

        assert result.storage_path == "s1/m1/tool_shot_0_1.png"
        assert result.public_url == "http://cdn.local/image-store/s1/m1/tool_shot_0_1.png"
        args, kwargs = minio_client.put_object.call_args
        assert args[0] == "image-store"
        assert args[1] == "s1/m1/tool_shot_0_1.png"
        assert args[2].read() == PNG_BYTES
        assert args[3] == len(PNG_BYTES)
        assert kwargs["content_type"] == "image/png"

    @pytest.mark.asyncio
    async def test_generated_filename(self, storage):
        result = await storage.upload(PNG_BYTES, "image/jpeg", "s1", "m1")

        name = result.storage_path.rsplit("/", 1)[1]
        assert name.startswith("image_")
        assert name.endswith(".jpeg")

    @pytest.mark.asyncio
    async def test_creates_missing_bucket_once(self, storage, minio_client):
        minio_client.bucket_exists.return_value = False

        await storage.upload(PNG_BYTES, "image/png", "s1", "m1")
        await storage.upload(PNG_BYTES, "image/png", "s1", "m2")

        minio_client.make_bucket.assert_called_once_with("image-store")
        policy = json.loads(minio_client.set_bucket_policy.call_args.args[1])
        assert policy["Statement"][0]["Action"] == ["s3:GetObject"]

    @pytest.mark.asyncio
    async def test_invalid_payload(self, storage, minio_client):
        with pytest.raises(ImageUploadError):
            await storage.upload("%%%", "image/png", "s1", "m1")
        minio_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreachable_storage(self, storage, minio_client):
        minio_client.put_object.side_effect = ConnectionError("Connection refused")

        with pytest.raises(ImageUploadError, match="Connection refused"):
            await storage.upload(PNG_BYTES, "image/png", "s1", "m1")

    @pytest.mark.asyncio
    async def test_unreachable_bucket_check(self, storage, minio_client):
        minio_client.bucket_exists.side_effect = OSError("Name or service not known")

        with pytest.raises(ImageUploadError):
            await storage.upload(PNG_BYTES, "image/png", "s1", "m1")


class TestRedisHistoryStore:

    def test_append_pushes_and_refreshes_ttl(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        store = RedisHistoryStore(client, ttl=60)

        message_id = store.append("s1", "user", "hi", [{"url": "http://x/a.png", "mimeType": "image/png"}])

        key, raw = pipe.rpush.call_args.args
        message = json.loads(raw)
        assert key == "chat:history:s1"
        assert message["id"] == message_id
        assert message["role"] == "user"
        assert message["images"][0]["url"] == "http://x/a.png"
        pipe.expire.assert_called_once_with("chat:history:s1", 60)
        pipe.execute.assert_called_once()

    def test_read(self):
        client = MagicMock()
        client.lrange.return_value = [json.dumps({"id": "1", "role": "user", "content": "hi"})]

        assert RedisHistoryStore(client, ttl=60).read("s1") == [{"id": "1", "role": "user", "content": "hi"}]
        client.lrange.assert_called_once_with("chat:history:s1", 0, -1)
