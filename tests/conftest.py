import os

import pytest

# Set testing environment flags before importing settings
os.environ["APP_ENV"] = "test"
os.environ["CACHE_ENABLED"] = "1"
os.environ.pop("LOG_DIR", None)

from linkcard.link_preview import LinkPreview
from tests.doubles import ARTICLE_HTML, FakeTransport, ImmediateExecutor, Outcomes


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def outcomes():
    return Outcomes()


@pytest.fixture
def fake_transport():
    return FakeTransport(pages={"https://example.com/article": ARTICLE_HTML})


@pytest.fixture
def make_pipeline():
    created = []

    def _make(transport, cache=None, work_executor=None, completion_executor=None, **kwargs):
        pipeline = LinkPreview(
            transport=transport,
            cache=cache,
            work_executor=work_executor or ImmediateExecutor(),
            completion_executor=completion_executor or ImmediateExecutor(),
            **kwargs,
        )
        created.append(pipeline)
        return pipeline

    yield _make
    for pipeline in created:
        pipeline.close()
