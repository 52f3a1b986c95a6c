# tests/conftest.py
import base64
import io

import pytest
from PIL import Image

from paintplan.models import Inventory, Paint, Thinner, Varnish


@pytest.fixture
def inventory():
    return Inventory(
        paints=[
            Paint(id="p1", brand="Vallejo", name="Black", hex="#000000"),
            Paint(id="p2", brand="Vallejo", name="White", hex="#FFFFFF"),
            Paint(id="p3", brand="Citadel", name="Gold", hex="#D4AF37"),
            Paint(id="p4", brand="Citadel", name="Dark Red", hex="#8B0000"),
            Paint(id="p5", brand="Vallejo", name="Blue", hex="#0000FF"),
        ],
        thinners=[Thinner(id="t1", brand="Vallejo", name="Thinner Medium")],
        varnishes=[Varnish(id="v1", brand="Vallejo", name="Matt Varnish", finish="Fosco")],
    )


@pytest.fixture
def jpeg_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (1600, 1200), (200, 40, 40)).save(buf, format="JPEG")
    return buf.getvalue()


@pytest.fixture
def jpeg_b64(jpeg_bytes):
    return base64.b64encode(jpeg_bytes).decode("ascii")
