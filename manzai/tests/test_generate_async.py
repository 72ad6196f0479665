import random

import pytest
from httpx import ASGITransport, AsyncClient

from manzai.main import create_app
from manzai.tests.mocks import FakeGenerator, make_script, make_settings


@pytest.mark.asyncio
async def test_generate_over_asgi_transport():
    app = create_app(
        settings_obj=make_settings(),
        generator=FakeGenerator(default=make_script(turns=24)),
        rng=random.Random(1),
    )
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        res = await ac.post("/api/generate", json={"theme": "宇宙旅行", "length": 350})

        assert res.status_code == 200
        body = res.json()
        assert body["meta"]["actual_length"] <= body["meta"]["max_length"]
        assert body["text"].endswith("B: もういいよ！")
