import pytest

from tests.fakes import FakeClient, data_uri, png_bytes, studio_handler


@pytest.fixture
def site_image():
    return data_uri(png_bytes())


@pytest.fixture
def studio_client():
    return FakeClient(studio_handler)
