import pathlib

import pytest
from PIL import Image

import avatar
import config

OPTION_NAMES = ["1.png", "2.png", "10.png"]
BAND_HEIGHT = 60


def layer_color(category_idx, layer_idx, option_idx):
    return (40 * category_idx + 10, 30 * layer_idx + 5, 60 * option_idx + 20, 255)


def band_image(layer_idx, color):
    """Transparent canvas with one opaque horizontal band per layer."""
    img = Image.new("RGBA", config.CANVAS_SIZE, (0, 0, 0, 0))
    top = layer_idx * BAND_HEIGHT
    img.paste(color, (0, top, config.CANVAS_SIZE[0], top + BAND_HEIGHT))
    return img


def write_layer_dir(directory: pathlib.Path, images):
    directory.mkdir(parents=True, exist_ok=True)
    for name, img in images.items():
        img.save(directory / name)


@pytest.fixture
def asset_root(tmp_path):
    """Three options per layer; each layer paints its own band."""
    root = tmp_path / "data"
    write_layer_dir(
        root / "background",
        {
            name: Image.new("RGBA", config.CANVAS_SIZE, (200, 200, 60 * idx + 20, 255))
            for idx, name in enumerate(OPTION_NAMES)
        },
    )
    for category in avatar.Category:
        for layer_idx, (layer, directory) in enumerate(config.LAYERS):
            if layer in config.SHARED_LAYERS:
                continue
            write_layer_dir(
                root / category.name.lower() / directory,
                {
                    name: band_image(layer_idx, layer_color(category.value, layer_idx, idx))
                    for idx, name in enumerate(OPTION_NAMES)
                },
            )

    # OS metadata that is not an image
    (root / "male" / "hair" / ".DS_Store").write_bytes(b"\x00\x00\x00\x01Bud1")
    (root / "male" / "hair" / "Thumbs.db").write_bytes(b"not an image")
    return root


@pytest.fixture
def catalog(asset_root):
    return avatar.load_catalog(asset_root)


BLEND_COLORS = {
    "background": (0, 0, 255, 255),
    "face": (255, 0, 0, 128),
    "clothes": (0, 255, 0, 100),
    "mouth": (255, 255, 0, 80),
    "hair": (0, 255, 255, 150),
    "eye": (255, 0, 255, 60),
}


@pytest.fixture
def blend_catalog(tmp_path):
    """A single semi-transparent solid colour per layer."""
    root = tmp_path / "blend"
    write_layer_dir(
        root / "background",
        {"bg.png": Image.new("RGBA", config.CANVAS_SIZE, BLEND_COLORS["background"])},
    )
    for category in avatar.Category:
        for layer, directory in config.LAYERS:
            if layer in config.SHARED_LAYERS:
                continue
            write_layer_dir(
                root / category.name.lower() / directory,
                {f"{layer}.png": Image.new("RGBA", config.CANVAS_SIZE, BLEND_COLORS[layer])},
            )
    return avatar.load_catalog(root)


@pytest.fixture
def blend_colors():
    return dict(BLEND_COLORS)
