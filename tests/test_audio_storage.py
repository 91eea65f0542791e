from pathlib import Path

import pytest

from tts_backend.services.audio_storage import AudioStorage, AudioStorageError


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def storage(tmp_path: Path) -> AudioStorage:
    return AudioStorage(tmp_path / "audio", "https://tts.example.com/")


@pytest.mark.anyio
async def test_save_writes_file_and_returns_public_url(storage: AudioStorage) -> None:
    url = await storage.save("a1b2c3", b"ID3fake")

    assert url == "https://tts.example.com/audio/a1b2c3.mp3"
    assert (storage.directory / "a1b2c3.mp3").read_bytes() == b"ID3fake"
    assert not list(storage.directory.glob("*.tmp"))


@pytest.mark.anyio
async def test_save_overwrites_same_name(storage: AudioStorage) -> None:
    await storage.save("clip", b"first")
    await storage.save("clip", b"second")

    assert (storage.directory / "clip.mp3").read_bytes() == b"second"


@pytest.mark.anyio
async def test_empty_payload_is_rejected(storage: AudioStorage) -> None:
    with pytest.raises(AudioStorageError):
        await storage.save("clip", b"")


@pytest.mark.parametrize("name", ["../escape", "a/b", "", "name.mp3"])
def test_unsafe_names_are_rejected(storage: AudioStorage, name: str) -> None:
    with pytest.raises(AudioStorageError):
        storage.path_for(name)


@pytest.mark.anyio
async def test_delete_url(storage: AudioStorage) -> None:
    url = await storage.save("gone", b"data")

    assert await storage.delete_url(url) is True
    assert not (storage.directory / "gone.mp3").exists()
    assert await storage.delete_url(url) is False
