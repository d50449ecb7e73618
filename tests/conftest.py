import os

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine

# Force test database before importing app (which reads DATABASE_URL at import time)
TEST_DATABASE_URL = "sqlite:///./test_framechain.db"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from framechain.api.main import app, database  # noqa: E402
from framechain.container import build_services  # noqa: E402
from framechain.errors import ProviderError  # noqa: E402
from framechain.models import FrameChainConfig, GenerationMode  # noqa: E402
from framechain.providers import (  # noqa: E402
    EnhancementProvider,
    GenerationProvider,
    LocalBlobStorage,
    MemoryCache,
    StorageFrameExtractor,
)
from framechain.store import Base, seed_defaults  # noqa: E402

USER_ID = "user-1"
SOURCE_IMAGE = "https://cdn.test/uploads/source.jpg"


class FakeGenerationProvider(GenerationProvider):
    """Records every call and fails on the call indices listed in ``fail_on``."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)
        self.on_call = None  # optional async hook, called with the call index

    async def generate(self, model_id, mode, payload):
        index = len(self.calls)
        self.calls.append({"model_id": model_id, "mode": mode, "payload": dict(payload)})
        if self.on_call is not None:
            await self.on_call(index)
        if index in self.fail_on:
            raise ProviderError("Generation failed: 502 upstream timeout", status=502)
        return f"https://cdn.test/videos/{index}.mp4"


class FakeEnhancementProvider(EnhancementProvider):
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def enhance(self, model, input_url, scale_factor, target_resolution=None, preserve_audio=True):
        self.calls.append({"model": model.id, "input_url": input_url, "scale_factor": scale_factor})
        if self.fail:
            raise ProviderError("Prediction failed: CUDA out of memory")
        return f"https://cdn.test/enhanced/{len(self.calls)}.mp4"


@pytest.fixture
def test_config(tmp_path):
    return FrameChainConfig.from_dict(
        {
            "database": {"url": TEST_DATABASE_URL},
            "storage": {
                "root_dir": str(tmp_path / "media"),
                "public_base_url": "https://cdn.test/media",
            },
            "enhancement": {"process_on_queue": False},
        }
    )


@pytest.fixture(scope="function")
async def db():
    # Create tables via synchronous SQLAlchemy
    engine = create_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(engine)
    engine.dispose()

    await database.connect()
    await seed_defaults(database)

    yield database

    # Clean up: disconnect and drop all tables
    await database.disconnect()
    engine = create_engine(TEST_DATABASE_URL)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def generation_provider():
    return FakeGenerationProvider()


@pytest.fixture
def enhancement_provider():
    return FakeEnhancementProvider()


@pytest.fixture
def services(db, test_config, generation_provider, enhancement_provider):
    storage = LocalBlobStorage(test_config.storage.root_dir, test_config.storage.public_base_url)
    return build_services(
        db,
        test_config,
        generation_provider=generation_provider,
        frame_extractor=StorageFrameExtractor(storage),
        enhancement_provider=enhancement_provider,
        storage=storage,
        cache=MemoryCache(),
    )


@pytest.fixture
def make_timeline(services):
    """Factory: a timeline owned by USER_ID with ``n`` pending segments."""

    async def _make(
        n=3,
        user_id=USER_ID,
        first_mode=GenerationMode.IMAGE_TO_VIDEO,
        source_url=SOURCE_IMAGE,
        model_id="test-model",
    ):
        timeline = await services.timelines.create(user_id, "Test timeline")
        for i in range(n):
            await services.segments.create(
                timeline.id,
                i,
                model_id,
                duration_sec=5,
                generation_mode=first_mode if i == 0 else GenerationMode.IMAGE_TO_VIDEO,
                prompt_text=f"shot {i}",
                source_url=source_url if i == 0 else None,
            )
        return timeline

    return _make


@pytest.fixture(scope="function")
async def client(services):
    # ASGITransport does not run the lifespan, so services are attached directly
    app.state.services = services
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers={"X-User-Id": USER_ID}
    ) as ac:
        yield ac
    app.state.services = None
